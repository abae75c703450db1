"""Depositor-facing share accounting."""

from vault_engine.vault.pooled_vault import PooledVault

__all__ = ['PooledVault']

"""
Vault Engine - Autonomous capital allocation for a two-venue yield vault.

Purpose:
    Decides how the vault's capital is split between a "safe" and a
    "growth" yield source, hedges directional exposure, compounds
    rewards and trips a circuit breaker on excess drawdown.

Packages:
    - core: Orchestrator, settings, access control, exceptions
    - risk: Price validation, volatility bands, circuit breaker
    - strategy: Rebalance policy, hedging engine, auto-compounder
    - adapters: Yield sources, price feeds, asset ledger
    - governance: Parameter-change timelock
    - vault: Share accounting for depositors
    - monitoring: Snapshots for dashboards
    - cli: vault-engine command

Usage:
    from vault_engine.core.strategy_engine import StrategyEngine

    engine = StrategyEngine.build(settings, feed, safe, growth, ledger)
    report = engine.execute_cycle(keeper)
"""

__version__ = '0.1.0'

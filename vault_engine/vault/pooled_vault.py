"""
Pooled Vault - Share accounting in front of the strategy engine.

Depositors exchange base asset for shares priced at total assets over
total supply. Assets go straight to the engine via deploy_capital();
redemptions pull them back via withdraw_capital(). Any part of a
redemption the venues cannot settle immediately is recorded as a
pending claim and paid out by claim_redemption() once it arrives.

The vault itself holds no strategy logic.
"""

import logging
from collections import defaultdict
from typing import Dict

from vault_engine.adapters.asset_ledger import AssetLedger
from vault_engine.core.access import Principal
from vault_engine.core.exceptions import InsufficientBalance, InvalidParameter
from vault_engine.core.strategy_engine import StrategyEngine
from vault_engine.utils.fixed_point import WAD, format_wad, mul_div, safe_sub

logger = logging.getLogger('VAULT.POOLED')


class PooledVault:
    """
    Share-issuing vault.

    total_assets = engine managed value
                 + base asset sitting in the vault account
                 - redemptions already owed to depositors

    Usage:
        vault = PooledVault(engine, ledger, principal=principals.vault)
        shares = vault.deposit('alice', to_wad('100'))
        vault.redeem('alice', shares)
    """

    def __init__(
        self,
        engine: StrategyEngine,
        ledger: AssetLedger,
        principal: Principal,
        account: str = 'vault',
    ):
        self.engine = engine
        self.ledger = ledger
        self.principal = principal
        self.account = account

        self.balances: Dict[str, int] = defaultdict(int)
        self.total_supply = 0
        self.pending_redemptions: Dict[str, int] = defaultdict(int)

        logger.info(f"PooledVault initialized: account={account}")

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def pending_total(self) -> int:
        return sum(self.pending_redemptions.values())

    def free_balance(self) -> int:
        """Base asset in the vault account not reserved for pending claims."""
        return safe_sub(self.ledger.balance_of(self.account), self.pending_total)

    def total_assets(self) -> int:
        return self.engine.total_managed_value() + self.free_balance()

    def price_per_share(self) -> int:
        """Assets per share in WAD (1.0 before the first deposit)."""
        if self.total_supply == 0:
            return WAD
        return mul_div(self.total_assets(), WAD, self.total_supply)

    def shares_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def convert_to_shares(self, assets: int) -> int:
        total = self.total_assets()
        if self.total_supply == 0 or total == 0:
            return assets
        return mul_div(assets, self.total_supply, total)

    def convert_to_assets(self, shares: int) -> int:
        if self.total_supply == 0:
            return shares
        return mul_div(shares, self.total_assets(), self.total_supply)

    # ------------------------------------------------------------------
    # Deposits and redemptions
    # ------------------------------------------------------------------

    def deposit(self, account: str, assets: int) -> int:
        """
        Move assets from account into the engine and mint shares.

        Returns:
            Shares minted

        Raises:
            InvalidParameter: If assets is not positive or would mint zero shares
            InsufficientBalance: If account cannot cover assets
        """
        if assets <= 0:
            raise InvalidParameter(f"Deposit must be positive, got {assets}")

        shares = self.convert_to_shares(assets)
        if shares == 0:
            raise InvalidParameter(f"Deposit of {format_wad(assets)} mints zero shares")

        self.ledger.debit(account, assets)
        self.engine.deploy_capital(self.principal, assets)
        self.balances[account] += shares
        self.total_supply += shares

        logger.info(
            f"Deposit: {account} {format_wad(assets)} -> {format_wad(shares)} shares "
            f"(supply={format_wad(self.total_supply)})"
        )
        return shares

    def redeem(self, account: str, shares: int) -> int:
        """
        Burn shares and pay out their assets.

        Free vault balance is used first, then the engine. Whatever the
        engine cannot settle now becomes a pending claim for account. When
        no venue can serve the rest, the shares for it are given back.

        Returns:
            Assets paid to account now
        """
        if shares <= 0:
            raise InvalidParameter(f"Redeem must be positive, got {shares}")
        if shares > self.shares_of(account):
            raise InsufficientBalance(
                f"{account} holds {format_wad(self.shares_of(account))} shares, "
                f"cannot redeem {format_wad(shares)}"
            )

        assets = self.convert_to_assets(shares)
        self.balances[account] -= shares
        self.total_supply -= shares

        paid = min(assets, self.free_balance())
        remaining = assets - paid
        unfilled = 0
        if remaining > 0:
            owed_before = self.engine.owed_to_vault
            paid += self.engine.withdraw_capital(self.principal, remaining)
            owed = self.engine.owed_to_vault - owed_before
            if owed > 0:
                self.pending_redemptions[account] += owed
                logger.warning(f"Redemption for {account}: {format_wad(owed)} pending settlement")
            unfilled = assets - paid - owed

        if unfilled > 0:
            # Venues unavailable: the unfilled part stays invested as shares
            restored = mul_div(shares, unfilled, assets)
            self.balances[account] += restored
            self.total_supply += restored
            logger.warning(
                f"Redemption for {account} short by {format_wad(unfilled)}: "
                f"{format_wad(restored)} shares restored"
            )

        if paid > 0:
            self.ledger.transfer(self.account, account, paid)

        logger.info(
            f"Redeem: {account} {format_wad(shares)} shares -> {format_wad(paid)} paid "
            f"of {format_wad(assets)}"
        )
        return paid

    def claim_redemption(self, account: str) -> int:
        """Pay out as much of account's pending redemption as has arrived."""
        owed = self.pending_redemptions.get(account, 0)
        amount = min(owed, self.ledger.balance_of(self.account))
        if amount == 0:
            return 0
        self.pending_redemptions[account] -= amount
        self.ledger.transfer(self.account, account, amount)
        logger.info(f"Pending redemption claimed: {account} {format_wad(amount)}")
        return amount

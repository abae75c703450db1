"""
Asset Ledger - Base-asset balances held outside the engine.

The engine keeps custody of its own idle balance. Whenever assets leave
engine custody (bounties, redemptions, emergency sweeps) they are credited
here; when they enter (vault deposits) they are debited here.
Accounts are plain strings.
"""
import logging
from collections import defaultdict
from typing import Dict

from vault_engine.core.exceptions import InsufficientBalance
from vault_engine.utils.fixed_point import format_wad

logger = logging.getLogger('ADAPTER.LEDGER')


class AssetLedger:
    """
    In-memory balance book.

    Usage:
        ledger = AssetLedger()
        ledger.credit('alice', to_wad('10'))
        ledger.transfer('alice', 'bob', to_wad('1'))
    """

    def __init__(self):
        self._balances: Dict[str, int] = defaultdict(int)

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def credit(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Cannot credit negative amount: {amount}")
        self._balances[account] += amount
        logger.debug(f"Credit {format_wad(amount)} -> {account}")

    def debit(self, account: str, amount: int) -> None:
        """
        Remove amount from account.

        Raises:
            InsufficientBalance: If account holds less than amount
        """
        if amount < 0:
            raise ValueError(f"Cannot debit negative amount: {amount}")
        if amount > self.balance_of(account):
            raise InsufficientBalance(
                f"{account} holds {format_wad(self.balance_of(account))}, "
                f"cannot debit {format_wad(amount)}"
            )
        self._balances[account] -= amount
        logger.debug(f"Debit {format_wad(amount)} <- {account}")

    def transfer(self, source: str, recipient: str, amount: int) -> None:
        self.debit(source, amount)
        self.credit(recipient, amount)

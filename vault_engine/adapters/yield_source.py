"""
Yield Source Adapters - Venue interface and in-memory implementation.

The engine moves capital between two yield sources ("safe" and "growth").
Adapters are thin pass-throughs to an external venue; every call may fail
independently with YieldSourceError.

Withdrawals are two-phase: request_withdraw() starts the exit and
claim_withdraw() collects whatever has settled. Anything requested but
not yet collected is reported through has_pending_withdrawal so the
engine can retry on its next cycle.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Set

from vault_engine.core.exceptions import YieldSourceError
from vault_engine.utils.fixed_point import bps_mul, format_wad, safe_sub

logger = logging.getLogger('ADAPTER.YIELD')


class YieldSource(ABC):
    """
    Abstract base class for yield-source adapters.

    Methods:
        deposit_value: Deposit base-asset value, return value credited
        request_withdraw: Start a withdrawal, return amount requested
        claim_withdraw: Collect settled withdrawals, return amount received
        claim_rewards: Harvest rewards, return their value in base units
        total_value: Current value held at the venue (including in-flight exits)
    """

    name: str

    @abstractmethod
    def deposit_value(self, amount: int) -> int:
        pass

    @abstractmethod
    def request_withdraw(self, amount: int) -> int:
        pass

    @abstractmethod
    def claim_withdraw(self) -> int:
        pass

    @abstractmethod
    def claim_rewards(self) -> int:
        pass

    @abstractmethod
    def total_value(self) -> int:
        pass

    @property
    @abstractmethod
    def has_pending_withdrawal(self) -> bool:
        pass


class InMemoryYieldSource(YieldSource):
    """
    Simulated venue for dry runs and tests.

    Features:
        - Optional withdrawal delay (exits stay pending until it elapses)
        - Reward accrual collected by claim_rewards()
        - Deposit haircut in bps to model swap slippage
        - Multi-position mode: each deposit opens a position and
          withdrawals draw from the first position only
        - Failure injection per operation name

    Usage:
        venue = InMemoryYieldSource('growth', clock, withdrawal_delay_seconds=3600)
        venue.deposit_value(to_wad('100'))
        venue.accrue_rewards(to_wad('1'))
        venue.fail_next('claim_rewards')
    """

    def __init__(
        self,
        name: str,
        clock,
        withdrawal_delay_seconds: int = 0,
        deposit_haircut_bps: int = 0,
        multi_position: bool = False,
    ):
        self.name = name
        self._clock = clock
        self.withdrawal_delay_seconds = withdrawal_delay_seconds
        self.deposit_haircut_bps = deposit_haircut_bps
        self.multi_position = multi_position

        self.positions: List[int] = []
        self._pending_amount = 0
        self._pending_ready_at = 0
        self._accrued_rewards = 0
        self._fail_once: Set[str] = set()
        self._fail_always: Set[str] = set()

        logger.info(
            f"InMemoryYieldSource '{name}' initialized: "
            f"delay={withdrawal_delay_seconds}s, haircut={deposit_haircut_bps}bps, "
            f"multi_position={multi_position}"
        )

    # -- failure injection --------------------------------------------------

    def fail_next(self, operation: str) -> None:
        """Make the next call to `operation` raise YieldSourceError."""
        self._fail_once.add(operation)

    def fail_always(self, operation: str, enabled: bool = True) -> None:
        if enabled:
            self._fail_always.add(operation)
        else:
            self._fail_always.discard(operation)

    def _maybe_fail(self, operation: str) -> None:
        if operation in self._fail_once:
            self._fail_once.discard(operation)
            raise YieldSourceError(f"{self.name}.{operation} failed")
        if operation in self._fail_always:
            raise YieldSourceError(f"{self.name}.{operation} unavailable")

    # -- simulation hooks ---------------------------------------------------

    def accrue_rewards(self, amount: int) -> None:
        self._accrued_rewards += amount

    def apply_return_bps(self, bps: int) -> None:
        """Mark every position up (positive bps) or down (negative bps)."""
        self.positions = [p + (p * bps) // 10_000 for p in self.positions]
        self.positions = [p for p in self.positions if p > 0]

    # -- YieldSource --------------------------------------------------------

    def deposit_value(self, amount: int) -> int:
        self._maybe_fail('deposit_value')
        if amount <= 0:
            raise YieldSourceError(f"{self.name}: deposit amount must be positive")

        credited = safe_sub(amount, bps_mul(amount, self.deposit_haircut_bps))
        if self.multi_position or not self.positions:
            self.positions.append(credited)
        else:
            self.positions[0] += credited

        logger.debug(f"{self.name}: deposited {format_wad(amount)}, credited {format_wad(credited)}")
        return credited

    def request_withdraw(self, amount: int) -> int:
        self._maybe_fail('request_withdraw')
        if not self.positions:
            return 0

        # Only the first position is drawn down, even when others exist.
        taken = min(amount, self.positions[0])
        self.positions[0] -= taken
        if self.positions[0] == 0:
            self.positions.pop(0)

        self._pending_amount += taken
        self._pending_ready_at = self._clock() + self.withdrawal_delay_seconds
        logger.debug(f"{self.name}: withdrawal requested {format_wad(taken)}")
        return taken

    def claim_withdraw(self) -> int:
        self._maybe_fail('claim_withdraw')
        if self._pending_amount == 0 or self._clock() < self._pending_ready_at:
            return 0

        amount = self._pending_amount
        self._pending_amount = 0
        logger.debug(f"{self.name}: withdrawal claimed {format_wad(amount)}")
        return amount

    def claim_rewards(self) -> int:
        self._maybe_fail('claim_rewards')
        rewards = self._accrued_rewards
        self._accrued_rewards = 0
        return rewards

    def total_value(self) -> int:
        self._maybe_fail('total_value')
        return sum(self.positions) + self._pending_amount

    @property
    def has_pending_withdrawal(self) -> bool:
        return self._pending_amount > 0

    @property
    def pending_amount(self) -> int:
        return self._pending_amount

    def __repr__(self) -> str:
        return (
            f"InMemoryYieldSource(name={self.name!r}, positions={len(self.positions)}, "
            f"pending={self._pending_amount})"
        )

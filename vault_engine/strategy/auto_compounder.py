"""
Auto-Compounder - Harvest cadence, caller bounty and compound history.

History is a fixed-capacity ring buffer: a preallocated list written at
a cursor that advances modulo capacity. Once full, each new record
overwrites the oldest.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from vault_engine.core.access import Principal, non_reentrant, require_caller
from vault_engine.core.exceptions import CompoundTooSoon, InvalidParameter
from vault_engine.core.settings import CompounderSettings, apply_updates
from vault_engine.utils.clock import Clock, system_clock
from vault_engine.utils.fixed_point import BPS, bps_mul, format_wad, mul_div, safe_sub

logger = logging.getLogger('STRATEGY.COMPOUNDER')

SECONDS_PER_YEAR = 365 * 24 * 3_600


@dataclass(frozen=True)
class CompoundRecord:
    """One completed harvest-and-compound event."""
    timestamp: int
    harvested: int
    compounded: int
    bounty_paid: int
    caller: str


class CompoundHistory:
    """
    Bounded circular buffer of CompoundRecord.

    Attributes:
        capacity: Number of slots
        cursor: Next slot to write
        count: Total records ever written (not capped)
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._slots: List[Optional[CompoundRecord]] = [None] * capacity
        self.cursor = 0
        self.count = 0

    def append(self, record: CompoundRecord) -> None:
        self._slots[self.cursor] = record
        self.cursor = (self.cursor + 1) % self.capacity
        self.count += 1

    def __len__(self) -> int:
        return min(self.count, self.capacity)

    def recent(self, n: int) -> List[CompoundRecord]:
        """Up to n most recent records, newest first."""
        available = min(n, self.count, self.capacity)
        records = []
        for offset in range(1, available + 1):
            index = (self.cursor - offset) % self.capacity
            records.append(self._slots[index])
        return records

    def latest(self) -> Optional[CompoundRecord]:
        if self.count == 0:
            return None
        return self._slots[(self.cursor - 1) % self.capacity]


class AutoCompounder:
    """
    Enforce compound cadence and account for bounties.

    Usage:
        compounder = AutoCompounder(CompounderSettings(), orchestrator=ENGINE, governance=GOV)
        if compounder.can_compound():
            bounty = compounder.calculate_bounty(harvested)
            ...pay bounty, redeploy remainder...
            compounder.record_compound(ENGINE, 'keeper-1', harvested, bounty)
    """

    def __init__(
        self,
        settings: CompounderSettings,
        orchestrator: Principal,
        governance: Principal,
        clock: Clock = system_clock,
    ):
        self.settings = settings
        self.orchestrator = orchestrator
        self.governance = governance
        self._clock = clock

        self.history = CompoundHistory(settings.history_capacity)
        self.last_compound_at = 0
        self.total_harvested = 0
        self.total_compounded = 0
        self.total_bounties_paid = 0

        logger.info(
            f"AutoCompounder initialized: min_interval={settings.min_compound_interval_seconds}s, "
            f"bounty={settings.bounty_bps}bps, capacity={settings.history_capacity}"
        )

    def can_compound(self) -> bool:
        """True when the minimum interval since the last compound has elapsed."""
        elapsed = self._clock() - self.last_compound_at
        return elapsed >= self.settings.min_compound_interval_seconds

    def time_until_next_compound(self) -> int:
        ready_at = self.last_compound_at + self.settings.min_compound_interval_seconds
        return max(ready_at - self._clock(), 0)

    def calculate_bounty(self, harvested: int) -> int:
        """harvested * bounty_bps / 10,000."""
        return bps_mul(harvested, self.settings.bounty_bps)

    @non_reentrant
    def record_compound(
        self,
        caller: Principal,
        harvester: str,
        harvested: int,
        bounty: int,
    ) -> CompoundRecord:
        """
        Record a completed compound.

        Args:
            caller: Must be the orchestrator
            harvester: Account that triggered the cycle and received the bounty
            harvested: Total value harvested (WAD)
            bounty: Bounty actually paid (WAD)

        Raises:
            NotAuthorized: If caller is not the orchestrator
            CompoundTooSoon: If the minimum interval has not elapsed
        """
        require_caller(caller, self.orchestrator, 'record_compound')
        if not self.can_compound():
            error_msg = (
                f"Compound too soon: {self.time_until_next_compound()}s remaining "
                f"of {self.settings.min_compound_interval_seconds}s interval"
            )
            logger.error(error_msg)
            raise CompoundTooSoon(error_msg)

        now = self._clock()
        compounded = safe_sub(harvested, bounty)
        record = CompoundRecord(
            timestamp=now,
            harvested=harvested,
            compounded=compounded,
            bounty_paid=bounty,
            caller=harvester,
        )

        self.last_compound_at = now
        self.total_harvested += harvested
        self.total_compounded += compounded
        self.total_bounties_paid += bounty
        self.history.append(record)

        logger.info(
            f"Compound #{self.history.count}: harvested={format_wad(harvested)}, "
            f"compounded={format_wad(compounded)}, bounty={format_wad(bounty)} -> {harvester}"
        )
        return record

    def get_recent_compounds(self, n: int) -> List[CompoundRecord]:
        """Up to n most recent records in reverse chronological order."""
        return self.history.recent(n)

    @property
    def compound_count(self) -> int:
        return self.history.count

    def estimate_apy_bps(self, total_value: int) -> int:
        """
        Rough annualized yield in bps.

        Extrapolates the single most recent compound across
        SECONDS_PER_YEAR // min_compound_interval_seconds periods, with no
        compounding and no averaging. Treat the result as a low-confidence
        indicator only: one large or small harvest swings it arbitrarily.
        """
        latest = self.history.latest()
        if latest is None or total_value == 0:
            return 0
        periods_per_year = SECONDS_PER_YEAR // self.settings.min_compound_interval_seconds
        return mul_div(latest.compounded * periods_per_year, BPS, total_value)

    def update_parameters(self, caller: Principal, **changes: Any) -> CompounderSettings:
        """
        Governance update of interval and bounty.

        history_capacity is fixed at construction and cannot be changed here.
        """
        require_caller(caller, self.governance, 'AutoCompounder.update_parameters')
        if 'history_capacity' in changes and changes['history_capacity'] != self.history.capacity:
            raise InvalidParameter("history_capacity cannot change after construction")
        self.settings = apply_updates(self.settings, changes)
        logger.warning(f"Compounder parameters updated: {changes}")
        return self.settings

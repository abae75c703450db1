"""
Rebalance Policy - Drift- and time-triggered rebalancing decisions.

Compares the current safe/growth split with the Risk Manager's
volatility-adjusted targets and decides whether capital should move.
Rate limiting always wins over drift: a drift-only trigger inside the
minimum interval is suppressed.
"""

import logging
from dataclasses import dataclass
from typing import Any, Tuple

from vault_engine.core.access import Principal, require_caller
from vault_engine.core.exceptions import InvalidParameter
from vault_engine.core.settings import RebalanceSettings, apply_updates
from vault_engine.risk.risk_manager import RiskManager
from vault_engine.utils.clock import Clock, system_clock
from vault_engine.utils.fixed_point import BPS, abs_diff, bps_mul, bps_of, format_wad

logger = logging.getLogger('STRATEGY.REBALANCE')

MAX_URGENCY = 10


@dataclass(frozen=True)
class RebalanceAction:
    """
    Outcome of one evaluation. Never persisted.

    Deltas are target minus current: positive means the venue needs
    capital moved in.
    """
    needs_rebalance: bool
    safe_delta: int = 0
    growth_delta: int = 0
    urgency: int = 0
    max_drift_bps: int = 0
    time_triggered: bool = False

    @classmethod
    def none(cls, max_drift_bps: int = 0) -> 'RebalanceAction':
        return cls(needs_rebalance=False, max_drift_bps=max_drift_bps)


class RebalancePolicy:
    """
    Decide when and how much to rebalance between the two venues.

    A rebalance is warranted when:
        max(drift_safe, drift_growth) >= drift_threshold_bps, or
        time since last rebalance >= max_rebalance_interval_seconds

    A drift-only trigger is suppressed while the time since the last
    rebalance is below min_rebalance_interval_seconds. Before the first
    recorded rebalance neither interval applies.

    Usage:
        policy = RebalancePolicy(risk, RebalanceSettings(), orchestrator=ENGINE, governance=GOV)
        action = policy.evaluate(safe_value, growth_value)
        if action.needs_rebalance:
            ...move capital...
            policy.record(ENGINE)
    """

    def __init__(
        self,
        risk_manager: RiskManager,
        settings: RebalanceSettings,
        orchestrator: Principal,
        governance: Principal,
        clock: Clock = system_clock,
    ):
        self.risk_manager = risk_manager
        self.settings = settings
        self.orchestrator = orchestrator
        self.governance = governance
        self._clock = clock

        self.last_rebalance_at = 0
        self.rebalance_count = 0

        logger.info(
            f"RebalancePolicy initialized: drift_threshold={settings.drift_threshold_bps}bps, "
            f"min_interval={settings.min_rebalance_interval_seconds}s, "
            f"max_interval={settings.max_rebalance_interval_seconds}s, "
            f"targets={settings.safe_target_bps}/{settings.growth_target_bps}"
        )

    def evaluate(self, safe_value: int, growth_value: int) -> RebalanceAction:
        """
        Compute whether to rebalance and the per-venue deltas.

        Args:
            safe_value: Value currently held in the safe venue (WAD)
            growth_value: Value currently held in the growth venue (WAD)

        Returns:
            RebalanceAction; needs_rebalance is False when total is zero
        """
        total = safe_value + growth_value
        if total == 0:
            return RebalanceAction.none()

        target_safe_bps, target_growth_bps = self.risk_manager.get_volatility_adjusted_allocation()

        current_safe_bps = bps_of(safe_value, total)
        current_growth_bps = bps_of(growth_value, total)
        safe_drift = abs_diff(current_safe_bps, target_safe_bps)
        growth_drift = abs_diff(current_growth_bps, target_growth_bps)
        max_drift = max(safe_drift, growth_drift)

        drift_triggered = max_drift >= self.settings.drift_threshold_bps
        time_triggered = False
        rate_limited = False

        if self.last_rebalance_at > 0:
            elapsed = self._clock() - self.last_rebalance_at
            time_triggered = elapsed >= self.settings.max_rebalance_interval_seconds
            rate_limited = elapsed < self.settings.min_rebalance_interval_seconds

        if not (drift_triggered or time_triggered):
            logger.debug(f"No rebalance: drift={max_drift}bps")
            return RebalanceAction.none(max_drift)

        if rate_limited and not time_triggered:
            logger.info(
                f"Rebalance suppressed by rate limit: drift={max_drift}bps, "
                f"{self.time_until_allowed()}s until allowed"
            )
            return RebalanceAction.none(max_drift)

        target_safe_value = bps_mul(total, target_safe_bps)
        target_growth_value = bps_mul(total, target_growth_bps)
        action = RebalanceAction(
            needs_rebalance=True,
            safe_delta=target_safe_value - safe_value,
            growth_delta=target_growth_value - growth_value,
            urgency=min(max_drift // 100, MAX_URGENCY),
            max_drift_bps=max_drift,
            time_triggered=time_triggered,
        )

        logger.info(
            f"Rebalance warranted: current={current_safe_bps}/{current_growth_bps}bps, "
            f"target={target_safe_bps}/{target_growth_bps}bps, drift={max_drift}bps, "
            f"safe_delta={format_wad(action.safe_delta)}, "
            f"growth_delta={format_wad(action.growth_delta)}, "
            f"urgency={action.urgency}, time_triggered={time_triggered}"
        )
        return action

    def record(self, caller: Principal) -> int:
        """
        Mark a rebalance as executed.

        Returns:
            Total number of recorded rebalances

        Raises:
            NotAuthorized: If caller is not the orchestrator
        """
        require_caller(caller, self.orchestrator, 'RebalancePolicy.record')
        self.last_rebalance_at = self._clock()
        self.rebalance_count += 1
        logger.info(f"Rebalance #{self.rebalance_count} recorded")
        return self.rebalance_count

    def time_until_allowed(self) -> int:
        """Seconds until a drift-only rebalance is no longer rate limited."""
        if self.last_rebalance_at == 0:
            return 0
        allowed_at = self.last_rebalance_at + self.settings.min_rebalance_interval_seconds
        return max(allowed_at - self._clock(), 0)

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def get_targets(self) -> Tuple[int, int]:
        """Governance baseline (safe_bps, growth_bps)."""
        return self.settings.safe_target_bps, self.settings.growth_target_bps

    def set_targets(self, caller: Principal, safe_bps: int, growth_bps: int) -> None:
        """
        Replace the baseline allocation targets.

        Raises:
            NotAuthorized: If caller is not governance
            InvalidParameter: If the pair does not sum to 10,000
        """
        require_caller(caller, self.governance, 'RebalancePolicy.set_targets')
        if safe_bps + growth_bps != BPS:
            raise InvalidParameter(
                f"Targets must sum to {BPS} bps, got {safe_bps} + {growth_bps}"
            )
        self.settings = apply_updates(
            self.settings, {'safe_target_bps': safe_bps, 'growth_target_bps': growth_bps}
        )
        logger.warning(f"Allocation targets updated: {safe_bps}/{growth_bps}")

    def set_thresholds(
        self,
        caller: Principal,
        drift_threshold_bps: int,
        min_interval_seconds: int,
        max_interval_seconds: int,
    ) -> None:
        """
        Replace drift and cadence thresholds together.

        Raises:
            NotAuthorized: If caller is not governance
            InvalidParameter: If min interval exceeds max or drift is out of range
        """
        require_caller(caller, self.governance, 'RebalancePolicy.set_thresholds')
        self.settings = apply_updates(self.settings, {
            'drift_threshold_bps': drift_threshold_bps,
            'min_rebalance_interval_seconds': min_interval_seconds,
            'max_rebalance_interval_seconds': max_interval_seconds,
        })
        logger.warning(
            f"Rebalance thresholds updated: drift={drift_threshold_bps}bps, "
            f"interval={min_interval_seconds}s..{max_interval_seconds}s"
        )

    def update_parameters(self, caller: Principal, **changes: Any) -> RebalanceSettings:
        require_caller(caller, self.governance, 'RebalancePolicy.update_parameters')
        self.settings = apply_updates(self.settings, changes)
        logger.warning(f"Rebalance parameters updated: {changes}")
        return self.settings

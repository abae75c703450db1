"""
Risk Manager - Price validation, volatility regime and drawdown circuit breaker.

This module owns three pieces of state:
    - Volatility state: band, smoothed price-change accumulator, last price
    - Circuit breaker: active flag, activation time, high-water mark
    - Risk thresholds: RiskSettings, changeable only by governance

Every check is synchronous. Capital-safety checks raise and log at
CRITICAL; the orchestrator lets them abort the cycle.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Tuple

from vault_engine.adapters.price_feed import PriceFeed
from vault_engine.core.access import Principal, non_reentrant, require_caller
from vault_engine.core.exceptions import (
    AllocationExceedsLimit,
    CircuitBreakerTriggered,
    InvalidPrice,
    PriceValidationError,
    SlippageTooHigh,
    StalePrice,
)
from vault_engine.core.settings import RECOVERY_THRESHOLD_BPS, RiskSettings, apply_updates
from vault_engine.risk.volatility import VolatilityBand
from vault_engine.utils.clock import Clock, system_clock
from vault_engine.utils.fixed_point import (
    BPS,
    abs_diff,
    bps_of,
    format_wad,
    mul_div,
    scale_to_wad,
)

logger = logging.getLogger('RISK.MANAGER')


@dataclass(frozen=True)
class BandTransition:
    """Record of a volatility band change."""
    timestamp: int
    previous: VolatilityBand
    current: VolatilityBand
    accumulator_bps: int


class RiskManager:
    """
    Validate prices, classify volatility and guard against drawdown.

    Volatility smoothing:
        change = |price - last_price| / last_price  (bps)
        if more than one volatility window has elapsed since the last update:
            accumulator = change
        else:
            accumulator = (accumulator + change) / 2

    Circuit breaker:
        Trips when value falls more than max_drawdown_bps below the
        high-water mark. Resets only after the cooldown has elapsed AND
        value has recovered to at least 95% of the high-water mark.

    Usage:
        risk = RiskManager(feed, RiskSettings(), orchestrator=ENGINE, governance=GOV)
        risk.update_volatility()
        if risk.is_execution_allowed():
            safe_bps, growth_bps = risk.get_volatility_adjusted_allocation()
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        settings: RiskSettings,
        orchestrator: Principal,
        governance: Principal,
        clock: Clock = system_clock,
    ):
        self.price_feed = price_feed
        self.settings = settings
        self.orchestrator = orchestrator
        self.governance = governance
        self._clock = clock

        # Volatility state
        self.volatility_band = VolatilityBand.LOW
        self.volatility_accumulator_bps = 0
        self.last_price = 0
        self.last_volatility_update = 0
        self.band_transitions: Deque[BandTransition] = deque(maxlen=100)

        # Circuit breaker state
        self.circuit_breaker_active = False
        self.circuit_breaker_activated_at = 0
        self.high_water_mark = 0
        self.last_checked_value = 0
        self.last_checked_at = 0

        logger.info(
            f"RiskManager initialized: staleness={settings.price_staleness_seconds}s, "
            f"max_drawdown={settings.max_drawdown_bps}bps, "
            f"cooldown={settings.circuit_breaker_cooldown_seconds}s, "
            f"max_slippage={settings.max_slippage_bps}bps, "
            f"max_allocation={settings.max_allocation_bps}bps"
        )

    # ------------------------------------------------------------------
    # Price validation
    # ------------------------------------------------------------------

    def get_validated_price(self, feed: Optional[PriceFeed] = None) -> int:
        """
        Read a price feed and return its answer as a WAD.

        Args:
            feed: Feed to read (defaults to the configured feed)

        Returns:
            Positive price scaled to 18 decimals

        Raises:
            StalePrice: If the answer is older than price_staleness_seconds,
                        or the feed's round is incomplete
            InvalidPrice: If the answer is zero or negative
        """
        data = (feed or self.price_feed).latest_price()
        age = self._clock() - data.updated_at

        if age > self.settings.price_staleness_seconds:
            logger.error(
                f"Stale price: age={age}s exceeds {self.settings.price_staleness_seconds}s"
            )
            raise StalePrice(
                f"Price is {age}s old (max {self.settings.price_staleness_seconds}s)"
            )

        if data.value <= 0:
            logger.error(f"Invalid price: {data.value}")
            raise InvalidPrice(f"Price must be positive, got {data.value}")

        if not data.round_complete:
            logger.error(
                f"Incomplete round: answered_in_round={data.answered_in_round} "
                f"< round_id={data.round_id}"
            )
            raise StalePrice(
                f"Round {data.round_id} incomplete (answered in {data.answered_in_round})"
            )

        return scale_to_wad(data.value, data.decimals)

    def is_price_fresh(self) -> bool:
        """Informational staleness check; never raises on bad feed data."""
        try:
            self.get_validated_price()
        except (PriceValidationError, LookupError) as e:
            logger.warning(f"Price feed not usable: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Volatility
    # ------------------------------------------------------------------

    @non_reentrant
    def update_volatility(self) -> VolatilityBand:
        """
        Refresh the volatility accumulator from the current price.

        Callable by anyone. The first reading only seeds last_price.
        last_price and the update timestamp always advance, whether or
        not the band changes.

        Returns:
            Current volatility band after the update

        Raises:
            StalePrice, InvalidPrice: If the feed cannot be used
        """
        price = self.get_validated_price()
        now = self._clock()

        if self.last_price == 0:
            self.last_price = price
            self.last_volatility_update = now
            logger.info(f"Volatility seeded: reference price={format_wad(price)}")
            return self.volatility_band

        change_bps = mul_div(abs_diff(price, self.last_price), BPS, self.last_price)
        elapsed = now - self.last_volatility_update

        if elapsed > self.settings.volatility_window_seconds:
            self.volatility_accumulator_bps = change_bps
        else:
            self.volatility_accumulator_bps = (self.volatility_accumulator_bps + change_bps) // 2

        new_band = VolatilityBand.classify(self.volatility_accumulator_bps)
        if new_band is not self.volatility_band:
            transition = BandTransition(
                timestamp=now,
                previous=self.volatility_band,
                current=new_band,
                accumulator_bps=self.volatility_accumulator_bps,
            )
            self.band_transitions.append(transition)
            log = logger.warning if new_band is VolatilityBand.EXTREME else logger.info
            log(
                f"Volatility band {self.volatility_band} -> {new_band} "
                f"(accumulator={self.volatility_accumulator_bps}bps, change={change_bps}bps)"
            )
            self.volatility_band = new_band
        else:
            logger.debug(
                f"Volatility unchanged: {new_band} "
                f"(accumulator={self.volatility_accumulator_bps}bps, change={change_bps}bps)"
            )

        self.last_price = price
        self.last_volatility_update = now
        return self.volatility_band

    def get_volatility_adjusted_allocation(self) -> Tuple[int, int]:
        """(safe_bps, growth_bps) for the current band. Always sums to 10,000."""
        return self.volatility_band.allocation

    def is_execution_allowed(self) -> bool:
        """False while the breaker is active or volatility is extreme."""
        return not self.circuit_breaker_active and self.volatility_band.allows_execution

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    @non_reentrant
    def check_drawdown(self, caller: Principal, current_value: int) -> int:
        """
        Update the high-water mark and trip the breaker on excess drawdown.

        Args:
            caller: Must be the orchestrator
            current_value: Total managed value (WAD)

        Returns:
            Current drawdown in bps

        Raises:
            NotAuthorized: If caller is not the orchestrator
            CircuitBreakerTriggered: If drawdown exceeds max_drawdown_bps.
                The breaker stays active after the raise.
        """
        require_caller(caller, self.orchestrator, 'check_drawdown')
        now = self._clock()

        if current_value > self.high_water_mark:
            logger.debug(
                f"High-water mark raised: {format_wad(self.high_water_mark)} -> "
                f"{format_wad(current_value)}"
            )
            self.high_water_mark = current_value

        drawdown_bps = 0
        if self.high_water_mark > 0:
            drawdown_bps = mul_div(
                self.high_water_mark - current_value, BPS, self.high_water_mark
            )

        if drawdown_bps > self.settings.max_drawdown_bps:
            if not self.circuit_breaker_active:
                self.circuit_breaker_active = True
                self.circuit_breaker_activated_at = now
            error_msg = (
                f"CIRCUIT BREAKER: drawdown={drawdown_bps}bps exceeds "
                f"{self.settings.max_drawdown_bps}bps "
                f"(value={format_wad(current_value)}, hwm={format_wad(self.high_water_mark)})"
            )
            logger.critical(error_msg)
            raise CircuitBreakerTriggered(error_msg)

        self.last_checked_value = current_value
        self.last_checked_at = now
        return drawdown_bps

    @non_reentrant
    def try_reset_circuit_breaker(self, caller: Principal, current_value: int) -> bool:
        """
        Deactivate the breaker once cooldown and recovery are both satisfied.

        Returns:
            True if the breaker was reset by this call
        """
        require_caller(caller, self.orchestrator, 'try_reset_circuit_breaker')
        if not self.circuit_breaker_active:
            return False

        elapsed = self._clock() - self.circuit_breaker_activated_at
        if elapsed < self.settings.circuit_breaker_cooldown_seconds:
            logger.info(
                f"Circuit breaker cooling down: {elapsed}s of "
                f"{self.settings.circuit_breaker_cooldown_seconds}s"
            )
            return False

        recovery_floor = mul_div(self.high_water_mark, RECOVERY_THRESHOLD_BPS, BPS)
        if current_value < recovery_floor:
            logger.info(
                f"Circuit breaker held: value={format_wad(current_value)} below "
                f"recovery floor {format_wad(recovery_floor)}"
            )
            return False

        self.circuit_breaker_active = False
        self.circuit_breaker_activated_at = 0
        logger.warning(
            f"Circuit breaker reset: value={format_wad(current_value)}, "
            f"hwm={format_wad(self.high_water_mark)}"
        )
        return True

    # ------------------------------------------------------------------
    # Execution checks
    # ------------------------------------------------------------------

    def validate_slippage(self, expected: int, actual: int) -> None:
        """
        Reject an outcome that undershoots the expected amount too far.

        Raises:
            SlippageTooHigh: If (expected - actual) / expected > max_slippage_bps
        """
        if actual >= expected or expected == 0:
            return

        slippage_bps = mul_div(expected - actual, BPS, expected)
        if slippage_bps > self.settings.max_slippage_bps:
            error_msg = (
                f"CRITICAL SLIPPAGE: {slippage_bps}bps exceeds "
                f"{self.settings.max_slippage_bps}bps "
                f"(expected {format_wad(expected)}, actual {format_wad(actual)})"
            )
            logger.critical(error_msg)
            raise SlippageTooHigh(error_msg)

        if slippage_bps * 2 >= self.settings.max_slippage_bps:
            logger.warning(
                f"High slippage: {slippage_bps}bps "
                f"(limit {self.settings.max_slippage_bps}bps)"
            )

    def validate_allocation(self, protocol_value: int, total_value: int) -> None:
        """
        Reject a venue share above the single-venue cap.

        Raises:
            AllocationExceedsLimit: If protocol_value / total_value > max_allocation_bps
        """
        share_bps = bps_of(protocol_value, total_value)
        if share_bps > self.settings.max_allocation_bps:
            error_msg = (
                f"ALLOCATION LIMIT: venue share {share_bps}bps exceeds "
                f"{self.settings.max_allocation_bps}bps "
                f"(venue {format_wad(protocol_value)} of {format_wad(total_value)})"
            )
            logger.critical(error_msg)
            raise AllocationExceedsLimit(error_msg)

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def update_parameters(self, caller: Principal, **changes: Any) -> RiskSettings:
        """
        Replace risk thresholds.

        Raises:
            NotAuthorized: If caller is not governance
            InvalidParameter: If any value is out of bounds
        """
        require_caller(caller, self.governance, 'RiskManager.update_parameters')
        self.settings = apply_updates(self.settings, changes)
        logger.warning(f"Risk parameters updated: {changes}")
        return self.settings

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_risk_status(self) -> Dict[str, Any]:
        return {
            'volatility_band': self.volatility_band.value,
            'volatility_accumulator_bps': self.volatility_accumulator_bps,
            'last_price': self.last_price,
            'last_volatility_update': self.last_volatility_update,
            'circuit_breaker_active': self.circuit_breaker_active,
            'circuit_breaker_activated_at': self.circuit_breaker_activated_at,
            'high_water_mark': self.high_water_mark,
            'last_checked_value': self.last_checked_value,
            'execution_allowed': self.is_execution_allowed(),
        }

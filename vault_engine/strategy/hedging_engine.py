"""
Hedging Engine - Single short hedge against directional exposure.

States:
    NO HEDGE --update_hedge (size > 0, collateral > 0)--> ACTIVE
    ACTIVE   --update_hedge (exposure moved >= threshold)--> ACTIVE (adjusted)
    ACTIVE   --close_hedge / adverse funding / zero exposure--> NO HEDGE

Profit and loss is settled into a cumulative ledger on every adjustment
and close, always at the position's entry price against the current price.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict

from vault_engine.core.access import Principal, non_reentrant, require_caller
from vault_engine.core.settings import HedgeSettings, apply_updates
from vault_engine.risk.risk_manager import RiskManager
from vault_engine.risk.volatility import VolatilityBand
from vault_engine.utils.clock import Clock, system_clock
from vault_engine.utils.fixed_point import BPS, abs_diff, bps_mul, format_wad, mul_div

logger = logging.getLogger('STRATEGY.HEDGE')


class HedgeAction(Enum):
    """Result of a hedge state-machine step."""
    UNCHANGED = "unchanged"
    OPENED = "opened"
    ADJUSTED = "adjusted"
    CLOSED = "closed"


@dataclass
class HedgePosition:
    """
    Current short hedge. All zero and inactive when there is no hedge.

    entry_price is nonzero whenever active is True.
    """
    active: bool = False
    exposure_amount: int = 0
    hedge_size: int = 0
    collateral_used: int = 0
    entry_price: int = 0
    open_timestamp: int = 0
    hedge_ratio_bps: int = 0


def calculate_short_pnl(hedge_size: int, entry_price: int, current_price: int) -> int:
    """
    Signed PnL of a short position of hedge_size opened at entry_price.

    Profit when price falls:  size * (entry - current) / entry
    Loss when price rises:   -size * (current - entry) / entry
    """
    if entry_price == 0 or hedge_size == 0:
        return 0
    if current_price <= entry_price:
        return mul_div(hedge_size, entry_price - current_price, entry_price)
    return -mul_div(hedge_size, current_price - entry_price, entry_price)


class HedgingEngine:
    """
    Size, adjust and close a short hedge.

    Sizing:
        target_size = exposure * hedge_ratio_bps / 10,000
        size is capped so that size * margin_bps / 10,000 <= available collateral

    Usage:
        hedger = HedgingEngine(risk, HedgeSettings(), orchestrator=ENGINE, governance=GOV)
        action = hedger.update_hedge(ENGINE, exposure=growth_value, available_collateral=safe_value)
        hedger.check_funding_rate(ENGINE, funding_rate_bps=-150)
    """

    def __init__(
        self,
        risk_manager: RiskManager,
        settings: HedgeSettings,
        orchestrator: Principal,
        governance: Principal,
        clock: Clock = system_clock,
    ):
        self.risk_manager = risk_manager
        self.settings = settings
        self.orchestrator = orchestrator
        self.governance = governance
        self._clock = clock

        self.position = HedgePosition()
        self.realized_pnl = 0
        self.hedges_opened = 0
        self.adjustments = 0

        logger.info(
            f"HedgingEngine initialized: ratio={settings.hedge_ratio_bps}bps, "
            f"adjust_threshold={settings.adjust_threshold_bps}bps, "
            f"max_funding={settings.max_funding_rate_bps}bps, margin={settings.margin_bps}bps"
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @non_reentrant
    def update_hedge(
        self,
        caller: Principal,
        exposure: int,
        available_collateral: int,
    ) -> HedgeAction:
        """
        Open, adjust or close the hedge for the given exposure.

        Args:
            caller: Must be the orchestrator
            exposure: Directional exposure to offset (WAD)
            available_collateral: Collateral the hedge may draw on (WAD)

        Returns:
            HedgeAction describing the transition taken

        Raises:
            NotAuthorized: If caller is not the orchestrator
            StalePrice, InvalidPrice: If the reference price is unusable
        """
        require_caller(caller, self.orchestrator, 'update_hedge')
        ratio = self.settings.hedge_ratio_bps
        target_size = self._cap_by_collateral(bps_mul(exposure, ratio), available_collateral)

        if not self.position.active:
            if target_size > 0 and available_collateral > 0:
                price = self.risk_manager.get_validated_price()
                self._open(exposure, target_size, price, ratio)
                return HedgeAction.OPENED
            return HedgeAction.UNCHANGED

        if exposure == 0 or target_size == 0:
            self._close("exposure or collateral exhausted")
            return HedgeAction.CLOSED

        change_bps = mul_div(
            abs_diff(exposure, self.position.exposure_amount), BPS, self.position.exposure_amount
        )
        if change_bps < self.settings.adjust_threshold_bps:
            logger.debug(
                f"Hedge unchanged: exposure moved {change_bps}bps "
                f"(threshold {self.settings.adjust_threshold_bps}bps)"
            )
            return HedgeAction.UNCHANGED

        price = self.risk_manager.get_validated_price()
        pnl = self._settle(price)
        previous_size = self.position.hedge_size
        self.position.exposure_amount = exposure
        self.position.hedge_size = target_size
        self.position.collateral_used = bps_mul(target_size, self.settings.margin_bps)
        self.position.entry_price = price
        self.position.hedge_ratio_bps = ratio
        self.adjustments += 1

        logger.info(
            f"Hedge adjusted: size {format_wad(previous_size)} -> {format_wad(target_size)}, "
            f"exposure={format_wad(exposure)}, entry={format_wad(price)}, "
            f"realized={format_wad(pnl)}"
        )
        return HedgeAction.ADJUSTED

    @non_reentrant
    def close_hedge(self, caller: Principal, settle: bool = True) -> int:
        """
        Close the active hedge, settling its PnL.

        Args:
            caller: Must be the orchestrator
            settle: When False the position is cleared without pricing it,
                    for emergencies where the price feed is unusable

        Returns:
            PnL realized by this close (0 when no hedge was active)
        """
        require_caller(caller, self.orchestrator, 'close_hedge')
        if not self.position.active:
            logger.debug("close_hedge: no active hedge")
            return 0
        if not settle:
            logger.error(
                f"Hedge cleared without settlement: size={format_wad(self.position.hedge_size)}, "
                f"entry={format_wad(self.position.entry_price)}"
            )
            self.position = HedgePosition()
            return 0
        return self._close("explicit close")

    @non_reentrant
    def check_funding_rate(self, caller: Principal, funding_rate_bps: int) -> bool:
        """
        Force-close the hedge when funding runs against the short.

        A negative rate means shorts pay. The hedge is closed when shorts
        pay more than max_funding_rate_bps.

        Returns:
            True if the hedge was closed
        """
        require_caller(caller, self.orchestrator, 'check_funding_rate')
        if not self.position.active:
            return False

        if self.is_funding_adverse(funding_rate_bps):
            logger.warning(
                f"Adverse funding {funding_rate_bps}bps exceeds "
                f"{self.settings.max_funding_rate_bps}bps, closing hedge"
            )
            self._close("adverse funding")
            return True
        return False

    def is_funding_adverse(self, funding_rate_bps: int) -> bool:
        """True when shorts pay more than max_funding_rate_bps."""
        return -funding_rate_bps > self.settings.max_funding_rate_bps

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cap_by_collateral(self, size: int, available_collateral: int) -> int:
        max_size = mul_div(available_collateral, BPS, self.settings.margin_bps)
        return min(size, max_size)

    def _open(self, exposure: int, size: int, price: int, ratio: int) -> None:
        self.position = HedgePosition(
            active=True,
            exposure_amount=exposure,
            hedge_size=size,
            collateral_used=bps_mul(size, self.settings.margin_bps),
            entry_price=price,
            open_timestamp=self._clock(),
            hedge_ratio_bps=ratio,
        )
        self.hedges_opened += 1
        logger.info(
            f"Hedge opened: size={format_wad(size)}, exposure={format_wad(exposure)}, "
            f"collateral={format_wad(self.position.collateral_used)}, "
            f"entry={format_wad(price)}, ratio={ratio}bps"
        )

    def _settle(self, price: int) -> int:
        pnl = calculate_short_pnl(self.position.hedge_size, self.position.entry_price, price)
        self.realized_pnl += pnl
        return pnl

    def _close(self, reason: str) -> int:
        price = self.risk_manager.get_validated_price()
        pnl = self._settle(price)
        logger.info(
            f"Hedge closed ({reason}): size={format_wad(self.position.hedge_size)}, "
            f"entry={format_wad(self.position.entry_price)}, exit={format_wad(price)}, "
            f"pnl={format_wad(pnl)}, cumulative={format_wad(self.realized_pnl)}"
        )
        self.position = HedgePosition()
        return pnl

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_position(self) -> HedgePosition:
        """Copy of the current position."""
        return replace(self.position)

    def get_unrealized_pnl(self) -> int:
        if not self.position.active:
            return 0
        price = self.risk_manager.get_validated_price()
        return calculate_short_pnl(self.position.hedge_size, self.position.entry_price, price)

    def get_recommended_hedge_ratio(self) -> int:
        """Base ratio scaled by the current volatility band."""
        base = self.settings.hedge_ratio_bps
        band = self.risk_manager.volatility_band
        if band is VolatilityBand.LOW:
            return base // 2
        if band is VolatilityBand.MEDIUM:
            return base
        if band is VolatilityBand.HIGH:
            return min(base * 3 // 2, BPS)
        return BPS

    def get_hedge_status(self) -> Dict[str, Any]:
        return {
            'active': self.position.active,
            'hedge_size': self.position.hedge_size,
            'exposure_amount': self.position.exposure_amount,
            'entry_price': self.position.entry_price,
            'realized_pnl': self.realized_pnl,
            'hedges_opened': self.hedges_opened,
            'adjustments': self.adjustments,
        }

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def update_parameters(self, caller: Principal, **changes: Any) -> HedgeSettings:
        require_caller(caller, self.governance, 'HedgingEngine.update_parameters')
        self.settings = apply_updates(self.settings, changes)
        logger.warning(f"Hedge parameters updated: {changes}")
        return self.settings

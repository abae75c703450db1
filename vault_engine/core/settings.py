"""
Typed parameter sets for every engine component.

Pydantic models validate bounds once at load time; component setters
re-check the same bounds when governance changes a value at runtime.

Example:
    from vault_engine.utils.config import get_config
    from vault_engine.core.settings import EngineSettings

    settings = EngineSettings.from_config(get_config())
    settings.rebalance.drift_threshold_bps  # 500
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from vault_engine.core.exceptions import InvalidParameter
from vault_engine.utils.fixed_point import BPS

MAX_BOUNTY_BPS = 500
HISTORY_CAPACITY = 100
RECOVERY_THRESHOLD_BPS = 9_500

HOUR = 3_600
DAY = 24 * HOUR


class RiskSettings(BaseModel):
    """Risk Manager thresholds."""
    model_config = ConfigDict(extra='forbid')

    price_staleness_seconds: int = Field(HOUR, gt=0, description="Max feed age")
    volatility_window_seconds: int = Field(HOUR, gt=0, description="Accumulator reset window")
    max_drawdown_bps: int = Field(1_000, gt=0, le=BPS, description="Breaker trip level")
    circuit_breaker_cooldown_seconds: int = Field(DAY, ge=0)
    max_slippage_bps: int = Field(100, ge=0, le=BPS)
    max_allocation_bps: int = Field(5_000, gt=0, le=BPS, description="Single-venue cap")


class RebalanceSettings(BaseModel):
    """Drift and cadence thresholds for the Rebalance Policy."""
    model_config = ConfigDict(extra='forbid')

    drift_threshold_bps: int = Field(500, gt=0, le=BPS)
    min_rebalance_interval_seconds: int = Field(6 * HOUR, ge=0)
    max_rebalance_interval_seconds: int = Field(7 * DAY, gt=0)
    safe_target_bps: int = Field(7_000, ge=0, le=BPS)
    growth_target_bps: int = Field(3_000, ge=0, le=BPS)

    @model_validator(mode='after')
    def check_consistency(self) -> 'RebalanceSettings':
        if self.safe_target_bps + self.growth_target_bps != BPS:
            raise ValueError(
                f"targets must sum to {BPS} bps, got "
                f"{self.safe_target_bps} + {self.growth_target_bps}"
            )
        if self.min_rebalance_interval_seconds > self.max_rebalance_interval_seconds:
            raise ValueError("min_rebalance_interval_seconds exceeds max interval")
        return self


class HedgeSettings(BaseModel):
    """Hedging Engine sizing and exit thresholds."""
    model_config = ConfigDict(extra='forbid')

    hedge_ratio_bps: int = Field(5_000, ge=0, le=BPS)
    adjust_threshold_bps: int = Field(1_000, gt=0, le=BPS)
    max_funding_rate_bps: int = Field(100, ge=0, le=BPS, description="Max adverse funding")
    margin_bps: int = Field(5_000, gt=0, le=BPS, description="Collateral per unit of size")


class CompounderSettings(BaseModel):
    """Auto-Compounder cadence and caller incentive."""
    model_config = ConfigDict(extra='forbid')

    min_compound_interval_seconds: int = Field(HOUR, gt=0)
    bounty_bps: int = Field(50, ge=0, le=MAX_BOUNTY_BPS)
    history_capacity: int = Field(HISTORY_CAPACITY, gt=0)


class GovernanceSettings(BaseModel):
    """Timelock delays for parameter changes."""
    model_config = ConfigDict(extra='forbid')

    timelock_delay_seconds: int = Field(2 * DAY, ge=0)
    grace_period_seconds: int = Field(14 * DAY, gt=0)


class EngineSettings(BaseModel):
    """Aggregate of all component settings."""
    model_config = ConfigDict(extra='forbid')

    risk: RiskSettings = Field(default_factory=RiskSettings)
    rebalance: RebalanceSettings = Field(default_factory=RebalanceSettings)
    hedge: HedgeSettings = Field(default_factory=HedgeSettings)
    compounder: CompounderSettings = Field(default_factory=CompounderSettings)
    governance: GovernanceSettings = Field(default_factory=GovernanceSettings)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EngineSettings':
        return cls.model_validate(data or {})

    @classmethod
    def from_config(cls, config) -> 'EngineSettings':
        """
        Build settings from the `engine:` section of a Config.

        Args:
            config: vault_engine.utils.config.Config instance

        Raises:
            pydantic.ValidationError: If any value is out of bounds
        """
        return cls.from_dict(config.get_section('engine'))


def apply_updates(settings: BaseModel, changes: Dict[str, Any]) -> BaseModel:
    """
    Return a copy of settings with changes applied and re-validated.

    Raises:
        InvalidParameter: If a key is unknown or a value is out of bounds
    """
    try:
        return type(settings).model_validate({**settings.model_dump(), **changes})
    except ValidationError as e:
        raise InvalidParameter(str(e)) from e

"""
Engine Snapshot - Read-only view of engine state for dashboards.

A snapshot is a plain pydantic model built from the live components. It
carries no references back into the engine and is safe to serialize.
"""
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from vault_engine.core.strategy_engine import StrategyEngine
from vault_engine.strategy.auto_compounder import CompoundRecord

SNAPSHOT_VERSION = '1.0'


class AllocationSnapshot(BaseModel):
    safe_bps: int = Field(0, ge=0)
    growth_bps: int = Field(0, ge=0)


class HedgeSnapshot(BaseModel):
    active: bool = False
    hedge_size: int = 0
    exposure_amount: int = 0
    entry_price: int = 0
    realized_pnl: int = 0
    hedges_opened: int = 0
    adjustments: int = 0


class CompoundSnapshot(BaseModel):
    timestamp: int
    harvested: int
    compounded: int
    bounty_paid: int
    caller: str

    @classmethod
    def from_record(cls, record: CompoundRecord) -> 'CompoundSnapshot':
        return cls(
            timestamp=record.timestamp,
            harvested=record.harvested,
            compounded=record.compounded,
            bounty_paid=record.bounty_paid,
            caller=record.caller,
        )


class EngineSnapshot(BaseModel):
    """
    Point-in-time engine state.

    All amounts are WAD integers; all ratios are bps.
    """
    model_config = ConfigDict(extra='forbid')

    version: str = SNAPSHOT_VERSION
    taken_at: int
    cycle_count: int = 0
    paused: bool = False

    volatility_band: str
    volatility_accumulator_bps: int = 0
    last_price: int = 0

    circuit_breaker_active: bool = False
    circuit_breaker_activated_at: int = 0
    high_water_mark: int = 0

    total_value: int = 0
    idle_balance: int = 0
    owed_to_vault: int = 0
    pending_withdrawals: Dict[str, bool] = Field(default_factory=dict)

    current_allocation: AllocationSnapshot = Field(default_factory=AllocationSnapshot)
    target_allocation: AllocationSnapshot = Field(default_factory=AllocationSnapshot)

    hedge: HedgeSnapshot = Field(default_factory=HedgeSnapshot)

    compound_count: int = 0
    total_harvested: int = 0
    total_bounties_paid: int = 0
    recent_compounds: List[CompoundSnapshot] = Field(default_factory=list)


def build_snapshot(engine: StrategyEngine, recent_compounds: int = 10) -> EngineSnapshot:
    """
    Capture the engine's current state.

    Args:
        engine: Wired StrategyEngine
        recent_compounds: Number of compound records to include, newest first
    """
    risk = engine.risk_manager
    compounder = engine.auto_compounder
    target_safe, target_growth = risk.get_volatility_adjusted_allocation()

    return EngineSnapshot(
        taken_at=engine.now(),
        cycle_count=engine.cycle_count,
        paused=engine.paused,
        volatility_band=risk.volatility_band.value,
        volatility_accumulator_bps=risk.volatility_accumulator_bps,
        last_price=risk.last_price,
        circuit_breaker_active=risk.circuit_breaker_active,
        circuit_breaker_activated_at=risk.circuit_breaker_activated_at,
        high_water_mark=risk.high_water_mark,
        total_value=engine.total_managed_value(),
        idle_balance=engine.idle_balance,
        owed_to_vault=engine.owed_to_vault,
        pending_withdrawals=dict(engine.pending_withdrawal),
        current_allocation=AllocationSnapshot(**engine.get_current_allocation()),
        target_allocation=AllocationSnapshot(safe_bps=target_safe, growth_bps=target_growth),
        hedge=HedgeSnapshot(**engine.hedging_engine.get_hedge_status()),
        compound_count=compounder.compound_count,
        total_harvested=compounder.total_harvested,
        total_bounties_paid=compounder.total_bounties_paid,
        recent_compounds=[
            CompoundSnapshot.from_record(r) for r in compounder.get_recent_compounds(recent_compounds)
        ],
    )

"""
Strategy components driven by the orchestrator.

Modules:
    - rebalance_policy: When and how much to move between venues
    - hedging_engine: Short hedge state machine
    - auto_compounder: Compound cadence, bounty and history
"""

from vault_engine.strategy.auto_compounder import AutoCompounder, CompoundRecord
from vault_engine.strategy.hedging_engine import HedgeAction, HedgingEngine
from vault_engine.strategy.rebalance_policy import RebalanceAction, RebalancePolicy

__all__ = [
    'AutoCompounder',
    'CompoundRecord',
    'HedgeAction',
    'HedgingEngine',
    'RebalanceAction',
    'RebalancePolicy',
]

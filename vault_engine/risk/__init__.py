"""
Risk components.

Modules:
    - volatility: VolatilityBand classification and allocation table
    - risk_manager: Price validation, volatility tracking, circuit breaker
"""

from vault_engine.risk.risk_manager import RiskManager
from vault_engine.risk.volatility import VolatilityBand

__all__ = ['RiskManager', 'VolatilityBand']

"""
Volatility Band Enumeration - Market regime classification.

Bands are derived from the Risk Manager's smoothed price-change
accumulator (in bps) and drive both the recommended capital split and
whether new deployments are permitted.

Thresholds:
    accumulator <  200 bps -> LOW
    accumulator <  500 bps -> MEDIUM
    accumulator < 1000 bps -> HIGH
    otherwise              -> EXTREME
"""

from enum import Enum
from typing import Dict, Tuple

MEDIUM_THRESHOLD_BPS = 200
HIGH_THRESHOLD_BPS = 500
EXTREME_THRESHOLD_BPS = 1_000


class VolatilityBand(Enum):
    """
    Volatility regime.

    Usage:
        band = VolatilityBand.classify(350)   # VolatilityBand.MEDIUM
        band.allocation                       # (8000, 2000)
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"

    @classmethod
    def classify(cls, accumulator_bps: int) -> 'VolatilityBand':
        """Map a volatility accumulator (bps) onto its band."""
        if accumulator_bps >= EXTREME_THRESHOLD_BPS:
            return cls.EXTREME
        if accumulator_bps >= HIGH_THRESHOLD_BPS:
            return cls.HIGH
        if accumulator_bps >= MEDIUM_THRESHOLD_BPS:
            return cls.MEDIUM
        return cls.LOW

    @classmethod
    def from_string(cls, value: str) -> 'VolatilityBand':
        normalized = value.lower().strip()
        for band in cls:
            if band.value == normalized:
                return band
        raise ValueError(
            f"Invalid volatility band: '{value}'. "
            f"Valid values: {[b.value for b in cls]}"
        )

    @property
    def allocation(self) -> Tuple[int, int]:
        """(safe_bps, growth_bps) recommended for this band."""
        return ALLOCATION_TABLE[self]

    @property
    def allows_execution(self) -> bool:
        return self is not VolatilityBand.EXTREME

    def __str__(self) -> str:
        return self.value.title()


ALLOCATION_TABLE: Dict[VolatilityBand, Tuple[int, int]] = {
    VolatilityBand.LOW: (7_000, 3_000),
    VolatilityBand.MEDIUM: (8_000, 2_000),
    VolatilityBand.HIGH: (9_000, 1_000),
    VolatilityBand.EXTREME: (10_000, 0),
}

"""
Price and funding-rate feeds consumed by the Risk and Hedging components.

PriceFeed and FundingRateFeed are the interfaces; the Static* classes are
settable in-memory implementations used by simulations and tests.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger('ADAPTER.FEED')


@dataclass(frozen=True)
class PriceData:
    """
    One reading from a price feed.

    Attributes:
        value: Raw answer, scaled by `decimals`
        updated_at: UNIX seconds when the answer was written
        round_id: Round the feed is currently on
        answered_in_round: Round in which `value` was computed
        decimals: Decimal places of `value`
    """
    value: int
    updated_at: int
    round_id: int = 1
    answered_in_round: int = 1
    decimals: int = 8

    @property
    def round_complete(self) -> bool:
        """False when the answer was carried over from an earlier round."""
        return self.answered_in_round >= self.round_id


class PriceFeed(ABC):
    """Interface for reference price sources."""

    @abstractmethod
    def latest_price(self) -> PriceData:
        """Return the most recent reading."""
        pass


class StaticPriceFeed(PriceFeed):
    """
    In-memory price feed.

    Each call to set_price() opens a new, complete round.

    Usage:
        feed = StaticPriceFeed(clock, decimals=8)
        feed.set_price(2_000 * 10**8)
    """

    def __init__(self, clock, decimals: int = 8, initial_price: Optional[int] = None):
        self._clock = clock
        self.decimals = decimals
        self._round_id = 0
        self._data: Optional[PriceData] = None
        if initial_price is not None:
            self.set_price(initial_price)

    def set_price(self, value: int, updated_at: Optional[int] = None) -> PriceData:
        self._round_id += 1
        self._data = PriceData(
            value=value,
            updated_at=self._clock() if updated_at is None else updated_at,
            round_id=self._round_id,
            answered_in_round=self._round_id,
            decimals=self.decimals,
        )
        logger.debug(f"Price set: round={self._round_id}, value={value}")
        return self._data

    def set_data(self, data: PriceData) -> None:
        """Install an arbitrary reading (e.g. an incomplete round)."""
        self._data = data

    def latest_price(self) -> PriceData:
        if self._data is None:
            raise LookupError("Price feed has no data")
        return self._data


class FundingRateFeed(ABC):
    """
    Interface for perpetual funding rates.

    Rates are signed bps per funding period. Negative values mean short
    positions pay longs.
    """

    @abstractmethod
    def current_funding_rate_bps(self) -> int:
        pass


class StaticFundingRateFeed(FundingRateFeed):
    """Settable funding rate."""

    def __init__(self, rate_bps: int = 0):
        self.rate_bps = rate_bps

    def current_funding_rate_bps(self) -> int:
        return self.rate_bps

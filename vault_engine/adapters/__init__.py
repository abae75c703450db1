"""
External collaborator adapters.

Modules:
    - yield_source: Venue interface and in-memory venue
    - price_feed: Price and funding-rate feeds
    - asset_ledger: Balances held outside engine custody
"""

from vault_engine.adapters.asset_ledger import AssetLedger
from vault_engine.adapters.price_feed import (
    FundingRateFeed,
    PriceData,
    PriceFeed,
    StaticFundingRateFeed,
    StaticPriceFeed,
)
from vault_engine.adapters.yield_source import InMemoryYieldSource, YieldSource

__all__ = [
    'AssetLedger',
    'FundingRateFeed',
    'PriceData',
    'PriceFeed',
    'StaticFundingRateFeed',
    'StaticPriceFeed',
    'InMemoryYieldSource',
    'YieldSource',
]

"""
Global pytest fixtures for the vault engine test suite.

Everything runs in memory against a ManualClock: no network, no files
outside tmp_path.
"""
import pytest

from vault_engine.adapters import (
    AssetLedger,
    InMemoryYieldSource,
    StaticFundingRateFeed,
    StaticPriceFeed,
)
from vault_engine.core.access import Principal
from vault_engine.core.settings import EngineSettings
from vault_engine.core.strategy_engine import EnginePrincipals, StrategyEngine
from vault_engine.risk.risk_manager import RiskManager
from vault_engine.utils.clock import ManualClock
from vault_engine.utils.fixed_point import to_wad

PRICE = 2_000 * 10 ** 8
HOUR = 3_600


@pytest.fixture
def clock():
    """Manual clock starting at a fixed timestamp."""
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def principals():
    return EnginePrincipals()


@pytest.fixture
def keeper():
    """Permissionless cycle caller."""
    return Principal('keeper-1')


@pytest.fixture
def price_feed(clock):
    """8-decimal feed quoting 2000.00."""
    return StaticPriceFeed(clock, decimals=8, initial_price=PRICE)


@pytest.fixture
def funding_feed():
    return StaticFundingRateFeed(rate_bps=0)


@pytest.fixture
def safe_source(clock):
    return InMemoryYieldSource('safe', clock)


@pytest.fixture
def growth_source(clock):
    return InMemoryYieldSource('growth', clock)


@pytest.fixture
def ledger():
    return AssetLedger()


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def risk_manager(price_feed, settings, principals, clock):
    """Standalone RiskManager wired to the shared feed and clock."""
    return RiskManager(
        price_feed, settings.risk, principals.engine, principals.governance, clock=clock
    )


@pytest.fixture
def engine(settings, price_feed, safe_source, growth_source, ledger, principals,
           funding_feed, clock):
    """Fully wired StrategyEngine with no capital."""
    return StrategyEngine.build(
        settings, price_feed, safe_source, growth_source, ledger, principals,
        funding_feed=funding_feed, clock=clock,
    )


@pytest.fixture
def funded_engine(engine, principals):
    """Engine holding 1000 WAD deployed at the LOW split (700 safe / 300 growth)."""
    engine.deploy_capital(principals.vault, to_wad(1000))
    return engine


@pytest.fixture
def tick(clock, price_feed):
    """
    Advance time and publish a fresh price.

    Usage:
        tick()                     # +1h, same price
        tick(7_200, 2_100 * 10**8) # +2h, new price
    """
    def _tick(seconds: int = HOUR, price: int = None) -> int:
        clock.advance(seconds)
        value = price if price is not None else price_feed.latest_price().value
        price_feed.set_price(value)
        return clock()

    return _tick

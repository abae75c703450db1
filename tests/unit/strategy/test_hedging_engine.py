"""
Unit tests for HedgingEngine.

Tests the open/adjust/close state machine, PnL sign conventions and
funding-rate exits.
"""
import pytest

from vault_engine.core.access import Principal
from vault_engine.core.exceptions import NotAuthorized, StalePrice
from vault_engine.core.settings import HedgeSettings
from vault_engine.risk.volatility import VolatilityBand
from vault_engine.strategy.hedging_engine import HedgeAction, HedgingEngine, calculate_short_pnl
from vault_engine.utils.fixed_point import WAD, to_wad


@pytest.fixture
def hedger(risk_manager, principals, clock):
    return HedgingEngine(
        risk_manager, HedgeSettings(), principals.engine, principals.governance, clock=clock
    )


@pytest.fixture
def open_hedge(hedger, principals):
    """Hedge of 50 against 100 exposure at 2000."""
    hedger.update_hedge(principals.engine, exposure=to_wad(100), available_collateral=to_wad(1_000))
    return hedger


class TestShortPnl:

    def test_profit_when_price_falls(self):
        assert calculate_short_pnl(to_wad(50), 2_000 * WAD, 1_800 * WAD) == to_wad(5)

    def test_loss_when_price_rises(self):
        assert calculate_short_pnl(to_wad(50), 2_000 * WAD, 2_200 * WAD) == -to_wad(5)

    def test_flat(self):
        assert calculate_short_pnl(to_wad(50), 2_000 * WAD, 2_000 * WAD) == 0

    def test_zero_size_or_entry(self):
        assert calculate_short_pnl(0, 2_000 * WAD, 1 * WAD) == 0
        assert calculate_short_pnl(to_wad(1), 0, 1 * WAD) == 0

    def test_pnl_monotonically_non_increasing_in_price(self):
        entry = 2_000 * WAD
        prices = [p * WAD for p in (1, 500, 1_000, 1_999, 2_000, 2_001, 3_000, 10_000)]
        pnls = [calculate_short_pnl(to_wad(50), entry, p) for p in prices]

        assert all(a >= b for a, b in zip(pnls, pnls[1:]))


class TestStateMachine:

    def test_open(self, open_hedge, clock):
        position = open_hedge.get_position()

        assert position.active is True
        assert position.hedge_size == to_wad(50)
        assert position.exposure_amount == to_wad(100)
        assert position.collateral_used == to_wad(25)
        assert position.entry_price == 2_000 * WAD
        assert position.open_timestamp == clock()
        assert open_hedge.hedges_opened == 1

    def test_no_open_without_collateral(self, hedger, principals):
        action = hedger.update_hedge(principals.engine, exposure=to_wad(100), available_collateral=0)

        assert action is HedgeAction.UNCHANGED
        assert hedger.position.active is False

    def test_no_open_without_exposure(self, hedger, principals):
        action = hedger.update_hedge(principals.engine, exposure=0, available_collateral=to_wad(10))
        assert action is HedgeAction.UNCHANGED

    def test_size_capped_by_collateral(self, hedger, principals):
        hedger.update_hedge(principals.engine, exposure=to_wad(1_000), available_collateral=to_wad(100))

        assert hedger.position.hedge_size == to_wad(200)
        assert hedger.position.collateral_used == to_wad(100)

    def test_small_exposure_change_ignored(self, open_hedge, principals):
        action = open_hedge.update_hedge(
            principals.engine, exposure=to_wad(105), available_collateral=to_wad(1_000)
        )

        assert action is HedgeAction.UNCHANGED
        assert open_hedge.position.hedge_size == to_wad(50)

    def test_adjust_settles_at_old_entry(self, open_hedge, principals, price_feed):
        price_feed.set_price(1_800 * 10 ** 8)

        action = open_hedge.update_hedge(
            principals.engine, exposure=to_wad(120), available_collateral=to_wad(1_000)
        )

        assert action is HedgeAction.ADJUSTED
        assert open_hedge.realized_pnl == to_wad(5)
        assert open_hedge.position.hedge_size == to_wad(60)
        assert open_hedge.position.entry_price == 1_800 * WAD
        assert open_hedge.adjustments == 1
        assert open_hedge.get_unrealized_pnl() == 0

    def test_close_on_zero_exposure(self, open_hedge, principals, price_feed):
        price_feed.set_price(2_200 * 10 ** 8)

        action = open_hedge.update_hedge(principals.engine, exposure=0, available_collateral=to_wad(1_000))

        assert action is HedgeAction.CLOSED
        assert open_hedge.position.active is False
        assert open_hedge.realized_pnl == -to_wad(5)

    def test_explicit_close(self, open_hedge, principals, price_feed):
        price_feed.set_price(1_900 * 10 ** 8)

        pnl = open_hedge.close_hedge(principals.engine)

        assert pnl == to_wad('2.5')
        assert open_hedge.position.active is False
        assert open_hedge.close_hedge(principals.engine) == 0

    def test_close_without_settlement(self, open_hedge, principals, clock):
        clock.advance(7_200)
        with pytest.raises(StalePrice):
            open_hedge.close_hedge(principals.engine)

        assert open_hedge.close_hedge(principals.engine, settle=False) == 0
        assert open_hedge.position.active is False
        assert open_hedge.realized_pnl == 0

    def test_unrealized_pnl(self, open_hedge, price_feed):
        price_feed.set_price(1_800 * 10 ** 8)
        assert open_hedge.get_unrealized_pnl() == to_wad(5)

    def test_position_is_a_copy(self, open_hedge):
        position = open_hedge.get_position()
        position.hedge_size = 0
        assert open_hedge.position.hedge_size == to_wad(50)

    def test_only_orchestrator(self, hedger):
        with pytest.raises(NotAuthorized):
            hedger.update_hedge(Principal('keeper-1'), exposure=to_wad(1), available_collateral=to_wad(1))
        with pytest.raises(NotAuthorized):
            hedger.close_hedge(Principal('keeper-1'))


class TestFundingRate:

    def test_adverse_funding_closes(self, open_hedge, principals):
        assert open_hedge.check_funding_rate(principals.engine, -150) is True
        assert open_hedge.position.active is False

    def test_funding_at_limit_keeps_hedge(self, open_hedge, principals):
        assert open_hedge.check_funding_rate(principals.engine, -100) is False
        assert open_hedge.check_funding_rate(principals.engine, 300) is False
        assert open_hedge.position.active is True

    def test_no_hedge_no_action(self, hedger, principals):
        assert hedger.check_funding_rate(principals.engine, -10_000) is False

    @pytest.mark.parametrize('rate,adverse', [(-150, True), (-101, True), (-100, False), (300, False)])
    def test_is_funding_adverse(self, hedger, rate, adverse):
        assert hedger.is_funding_adverse(rate) is adverse


class TestRecommendedRatio:

    @pytest.mark.parametrize('band,expected', [
        (VolatilityBand.LOW, 2_500),
        (VolatilityBand.MEDIUM, 5_000),
        (VolatilityBand.HIGH, 7_500),
        (VolatilityBand.EXTREME, 10_000),
    ])
    def test_ratio_by_band(self, hedger, risk_manager, band, expected):
        risk_manager.volatility_band = band
        assert hedger.get_recommended_hedge_ratio() == expected

    def test_governance_update(self, hedger, principals):
        hedger.update_parameters(principals.governance, hedge_ratio_bps=8_000)
        assert hedger.settings.hedge_ratio_bps == 8_000

        with pytest.raises(NotAuthorized):
            hedger.update_parameters(principals.engine, hedge_ratio_bps=1)

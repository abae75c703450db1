"""
Unit tests for component settings validation.
"""
import pytest
from pydantic import ValidationError

from vault_engine.core.exceptions import InvalidParameter
from vault_engine.core.settings import (
    CompounderSettings,
    EngineSettings,
    HedgeSettings,
    RebalanceSettings,
    RiskSettings,
    apply_updates,
)


class TestDefaults:

    def test_engine_defaults(self):
        settings = EngineSettings()

        assert settings.risk.price_staleness_seconds == 3_600
        assert settings.risk.max_drawdown_bps == 1_000
        assert settings.risk.circuit_breaker_cooldown_seconds == 86_400
        assert settings.rebalance.drift_threshold_bps == 500
        assert settings.rebalance.min_rebalance_interval_seconds == 6 * 3_600
        assert settings.rebalance.max_rebalance_interval_seconds == 7 * 86_400
        assert settings.hedge.hedge_ratio_bps == 5_000
        assert settings.compounder.bounty_bps == 50
        assert settings.compounder.history_capacity == 100

    def test_from_dict_none(self):
        assert EngineSettings.from_dict(None) == EngineSettings()


class TestValidation:

    def test_targets_must_sum_to_bps(self):
        with pytest.raises(ValidationError):
            RebalanceSettings(safe_target_bps=6_000, growth_target_bps=3_000)

    def test_min_interval_not_above_max(self):
        with pytest.raises(ValidationError):
            RebalanceSettings(
                min_rebalance_interval_seconds=10, max_rebalance_interval_seconds=5
            )

    def test_bounty_capped(self):
        with pytest.raises(ValidationError):
            CompounderSettings(bounty_bps=501)
        assert CompounderSettings(bounty_bps=500).bounty_bps == 500

    @pytest.mark.parametrize('field', ['max_drawdown_bps', 'max_slippage_bps', 'max_allocation_bps'])
    def test_risk_bps_bounded(self, field):
        with pytest.raises(ValidationError):
            RiskSettings(**{field: 10_001})

    def test_margin_must_be_positive(self):
        with pytest.raises(ValidationError):
            HedgeSettings(margin_bps=0)


class TestApplyUpdates:

    def test_returns_revalidated_copy(self):
        original = RiskSettings()
        updated = apply_updates(original, {'max_drawdown_bps': 800})

        assert updated.max_drawdown_bps == 800
        assert original.max_drawdown_bps == 1_000

    def test_invalid_value_raises_invalid_parameter(self):
        with pytest.raises(InvalidParameter):
            apply_updates(RiskSettings(), {'max_drawdown_bps': -1})

    def test_unknown_key_raises_invalid_parameter(self):
        with pytest.raises(InvalidParameter):
            apply_updates(HedgeSettings(), {'hedge_ration_bps': 10})

    def test_invalid_parameter_is_value_error(self):
        with pytest.raises(ValueError):
            apply_updates(CompounderSettings(), {'bounty_bps': 9_999})

"""
Unit tests for RebalancePolicy.
"""
import pytest

from vault_engine.core.access import Principal
from vault_engine.core.exceptions import InvalidParameter, NotAuthorized
from vault_engine.core.settings import RebalanceSettings
from vault_engine.risk.volatility import VolatilityBand
from vault_engine.strategy.rebalance_policy import RebalanceAction, RebalancePolicy
from vault_engine.utils.fixed_point import to_wad

HOUR = 3_600
DAY = 24 * HOUR


@pytest.fixture
def policy(risk_manager, principals, clock):
    return RebalancePolicy(
        risk_manager, RebalanceSettings(), principals.engine, principals.governance, clock=clock
    )


class TestEvaluate:
    """Drift and time triggers."""

    def test_on_target_needs_nothing(self, policy):
        action = policy.evaluate(to_wad(700), to_wad(300))

        assert action.needs_rebalance is False
        assert action.max_drift_bps == 0

    def test_drift_triggers_rebalance(self, policy):
        """50/50 against a 70/30 target moves 200 into safe."""
        action = policy.evaluate(to_wad(500), to_wad(500))

        assert action.needs_rebalance is True
        assert action.safe_delta == to_wad(200)
        assert action.growth_delta == -to_wad(200)
        assert action.urgency == 10
        assert action.max_drift_bps == 2_000
        assert action.time_triggered is False

    def test_drift_below_threshold(self, policy):
        action = policy.evaluate(to_wad(660), to_wad(340))

        assert action.needs_rebalance is False
        assert action.max_drift_bps == 400

    def test_drift_at_threshold_triggers(self, policy):
        action = policy.evaluate(to_wad(650), to_wad(350))

        assert action.needs_rebalance is True
        assert action.urgency == 5

    def test_empty_vault(self, policy):
        assert policy.evaluate(0, 0) == RebalanceAction.none()

    def test_uses_volatility_adjusted_targets(self, policy, risk_manager):
        risk_manager.volatility_band = VolatilityBand.HIGH

        action = policy.evaluate(to_wad(700), to_wad(300))

        assert action.needs_rebalance is True
        assert action.safe_delta == to_wad(200)
        assert action.growth_delta == -to_wad(200)

    def test_deltas_cancel(self, policy):
        action = policy.evaluate(to_wad(123), to_wad(877))
        assert action.safe_delta + action.growth_delta in (0, -1)


class TestRateLimit:
    """Min/max interval interplay."""

    def test_drift_suppressed_inside_min_interval(self, policy, principals, clock):
        policy.record(principals.engine)
        clock.advance(HOUR)

        action = policy.evaluate(to_wad(500), to_wad(500))

        assert action.needs_rebalance is False
        assert action.max_drift_bps == 2_000
        assert policy.time_until_allowed() == 5 * HOUR

    def test_drift_allowed_after_min_interval(self, policy, principals, clock):
        policy.record(principals.engine)
        clock.advance(6 * HOUR)

        assert policy.evaluate(to_wad(500), to_wad(500)).needs_rebalance is True
        assert policy.time_until_allowed() == 0

    def test_time_trigger_without_drift(self, policy, principals, clock):
        policy.record(principals.engine)
        clock.advance(7 * DAY)

        action = policy.evaluate(to_wad(700), to_wad(300))

        assert action.needs_rebalance is True
        assert action.time_triggered is True
        assert action.safe_delta == 0
        assert action.growth_delta == 0

    def test_no_rate_limit_before_first_rebalance(self, policy):
        assert policy.time_until_allowed() == 0
        assert policy.evaluate(to_wad(500), to_wad(500)).needs_rebalance is True

    def test_record_counts(self, policy, principals, clock):
        assert policy.record(principals.engine) == 1
        assert policy.record(principals.engine) == 2
        assert policy.last_rebalance_at == clock()

    def test_record_requires_orchestrator(self, policy):
        with pytest.raises(NotAuthorized):
            policy.record(Principal('keeper-1'))


class TestGovernance:

    def test_set_targets(self, policy, principals):
        policy.set_targets(principals.governance, 6_000, 4_000)
        assert policy.get_targets() == (6_000, 4_000)

    def test_set_targets_must_sum(self, policy, principals):
        with pytest.raises(InvalidParameter):
            policy.set_targets(principals.governance, 6_000, 3_000)
        assert policy.get_targets() == (7_000, 3_000)

    def test_set_targets_requires_governance(self, policy, principals):
        with pytest.raises(NotAuthorized):
            policy.set_targets(principals.engine, 6_000, 4_000)

    def test_set_thresholds(self, policy, principals):
        policy.set_thresholds(principals.governance, 300, HOUR, DAY)

        assert policy.settings.drift_threshold_bps == 300
        assert policy.settings.min_rebalance_interval_seconds == HOUR
        assert policy.settings.max_rebalance_interval_seconds == DAY

    def test_set_thresholds_rejects_inverted_interval(self, policy, principals):
        with pytest.raises(InvalidParameter):
            policy.set_thresholds(principals.governance, 300, DAY, HOUR)

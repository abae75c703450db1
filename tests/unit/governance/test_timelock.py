"""
Unit tests for the governance TimelockQueue.
"""
import pytest

from vault_engine.core.access import Principal
from vault_engine.core.exceptions import (
    InvalidParameter,
    NotAuthorized,
    TimelockExpired,
    TimelockNotReady,
)
from vault_engine.core.settings import GovernanceSettings
from vault_engine.governance import OperationStatus, TimelockQueue

DAY = 24 * 3_600
ADMIN = Principal('multisig')


@pytest.fixture
def timelock(principals, clock):
    return TimelockQueue(ADMIN, principals.governance, GovernanceSettings(), clock=clock)


@pytest.fixture
def tighten_drawdown(timelock, risk_manager):
    return timelock.schedule(
        ADMIN, risk_manager, 'update_parameters', {'max_drawdown_bps': 800}, 'tighten breaker'
    )


class TestSchedule:

    def test_schedule_sets_eta(self, timelock, tighten_drawdown, clock):
        operation = timelock.get_operation(tighten_drawdown)

        assert tighten_drawdown == 'op-0001'
        assert operation.eta == clock() + 2 * DAY
        assert operation.expires_at == operation.eta + 14 * DAY
        assert operation.status is OperationStatus.QUEUED
        assert operation.target_name == 'RiskManager'

    def test_sequential_ids(self, timelock, risk_manager):
        first = timelock.schedule(ADMIN, risk_manager, 'update_parameters', {'max_slippage_bps': 50})
        second = timelock.schedule(ADMIN, risk_manager, 'update_parameters', {'max_slippage_bps': 60})

        assert (first, second) == ('op-0001', 'op-0002')

    def test_unknown_setter_rejected(self, timelock, risk_manager):
        with pytest.raises(InvalidParameter):
            timelock.schedule(ADMIN, risk_manager, 'set_everything', {})

    def test_private_setter_rejected(self, timelock, risk_manager):
        with pytest.raises(InvalidParameter):
            timelock.schedule(ADMIN, risk_manager, '_clock', {})

    def test_requires_admin(self, timelock, risk_manager, principals):
        with pytest.raises(NotAuthorized):
            timelock.schedule(principals.governance, risk_manager, 'update_parameters', {})

    def test_pending_ordered_by_eta(self, timelock, risk_manager, clock):
        timelock.schedule(ADMIN, risk_manager, 'update_parameters', {'max_slippage_bps': 50})
        clock.advance(10)
        timelock.schedule(ADMIN, risk_manager, 'update_parameters', {'max_slippage_bps': 60})

        assert [op.op_id for op in timelock.pending_operations()] == ['op-0001', 'op-0002']


class TestExecute:

    def test_not_ready_before_delay(self, timelock, tighten_drawdown, risk_manager, clock):
        clock.advance(2 * DAY - 1)

        with pytest.raises(TimelockNotReady):
            timelock.execute(ADMIN, tighten_drawdown)
        assert risk_manager.settings.max_drawdown_bps == 1_000

    def test_executes_after_delay(self, timelock, tighten_drawdown, risk_manager, clock):
        clock.advance(2 * DAY)

        settings = timelock.execute(ADMIN, tighten_drawdown)

        assert settings.max_drawdown_bps == 800
        assert risk_manager.settings.max_drawdown_bps == 800
        operation = timelock.get_operation(tighten_drawdown)
        assert operation.status is OperationStatus.EXECUTED
        assert operation.executed_at == clock()
        assert timelock.pending_operations() == []

    def test_cannot_execute_twice(self, timelock, tighten_drawdown, clock):
        clock.advance(2 * DAY)
        timelock.execute(ADMIN, tighten_drawdown)

        with pytest.raises(InvalidParameter):
            timelock.execute(ADMIN, tighten_drawdown)

    def test_expired_after_grace(self, timelock, tighten_drawdown, clock):
        clock.advance(16 * DAY + 1)

        with pytest.raises(TimelockExpired):
            timelock.execute(ADMIN, tighten_drawdown)

    def test_invalid_value_leaves_operation_queued(self, timelock, risk_manager, clock):
        op_id = timelock.schedule(ADMIN, risk_manager, 'update_parameters', {'max_drawdown_bps': 0})
        clock.advance(2 * DAY)

        with pytest.raises(InvalidParameter):
            timelock.execute(ADMIN, op_id)
        assert timelock.get_operation(op_id).status is OperationStatus.QUEUED

    def test_unknown_operation(self, timelock):
        with pytest.raises(KeyError):
            timelock.execute(ADMIN, 'op-9999')

    def test_requires_admin(self, timelock, tighten_drawdown, clock):
        clock.advance(2 * DAY)
        with pytest.raises(NotAuthorized):
            timelock.execute(Principal('attacker'), tighten_drawdown)

    def test_engine_targets_through_timelock(self, timelock, engine, clock):
        op_id = timelock.schedule(
            ADMIN, engine.rebalance_policy, 'set_targets',
            {'safe_bps': 6_000, 'growth_bps': 4_000},
        )
        clock.advance(2 * DAY)

        timelock.execute(ADMIN, op_id)

        assert engine.rebalance_policy.get_targets() == (6_000, 4_000)


class TestCancel:

    def test_cancelled_cannot_execute(self, timelock, tighten_drawdown, clock):
        timelock.cancel(ADMIN, tighten_drawdown)
        clock.advance(2 * DAY)

        with pytest.raises(InvalidParameter):
            timelock.execute(ADMIN, tighten_drawdown)
        assert timelock.get_operation(tighten_drawdown).status is OperationStatus.CANCELLED

    def test_cancel_requires_admin(self, timelock, tighten_drawdown):
        with pytest.raises(NotAuthorized):
            timelock.cancel(Principal('attacker'), tighten_drawdown)


class TestSelfGovernance:

    def test_delay_change_goes_through_queue(self, timelock, clock):
        op_id = timelock.schedule(
            ADMIN, timelock, 'update_parameters', {'timelock_delay_seconds': DAY}
        )
        clock.advance(2 * DAY)

        timelock.execute(ADMIN, op_id)

        assert timelock.settings.timelock_delay_seconds == DAY

    def test_direct_update_rejected(self, timelock):
        with pytest.raises(NotAuthorized):
            timelock.update_parameters(ADMIN, timelock_delay_seconds=0)

"""
Unit tests for AutoCompounder and its history ring buffer.
"""
import pytest

from vault_engine.core.access import Principal
from vault_engine.core.exceptions import CompoundTooSoon, InvalidParameter, NotAuthorized
from vault_engine.core.settings import CompounderSettings
from vault_engine.strategy.auto_compounder import AutoCompounder, CompoundHistory, CompoundRecord
from vault_engine.utils.fixed_point import to_wad

HOUR = 3_600


@pytest.fixture
def compounder(principals, clock):
    return AutoCompounder(CompounderSettings(), principals.engine, principals.governance, clock=clock)


def _record(i: int) -> CompoundRecord:
    return CompoundRecord(timestamp=i, harvested=i, compounded=i, bounty_paid=0, caller='k')


class TestCompoundHistory:

    def test_recent_newest_first(self):
        history = CompoundHistory(capacity=5)
        for i in range(3):
            history.append(_record(i))

        assert [r.harvested for r in history.recent(10)] == [2, 1, 0]
        assert history.latest().harvested == 2
        assert len(history) == 3

    def test_overwrites_oldest_when_full(self):
        history = CompoundHistory(capacity=100)
        for i in range(105):
            history.append(_record(i))

        assert len(history) == 100
        assert history.count == 105
        assert history.cursor == 5

        records = history.recent(200)
        assert len(records) == 100
        assert records[0].harvested == 104
        assert records[-1].harvested == 5

    def test_empty(self):
        history = CompoundHistory(capacity=3)
        assert history.recent(5) == []
        assert history.latest() is None

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            CompoundHistory(capacity=0)


class TestAutoCompounder:

    def test_bounty(self, compounder):
        """100 WAD harvested at 50 bps pays 0.5 WAD."""
        assert compounder.calculate_bounty(to_wad(100)) == 5 * 10 ** 17

    def test_record_compound(self, compounder, principals, clock):
        record = compounder.record_compound(
            principals.engine, 'keeper-1', to_wad(100), to_wad('0.5')
        )

        assert record.compounded == to_wad('99.5')
        assert record.caller == 'keeper-1'
        assert record.timestamp == clock()
        assert compounder.last_compound_at == clock()
        assert compounder.total_harvested == to_wad(100)
        assert compounder.total_compounded == to_wad('99.5')
        assert compounder.total_bounties_paid == to_wad('0.5')
        assert compounder.compound_count == 1

    def test_compound_too_soon_leaves_state(self, compounder, principals, clock):
        compounder.record_compound(principals.engine, 'keeper-1', to_wad(10), 0)
        clock.advance(HOUR - 1)

        assert compounder.can_compound() is False
        assert compounder.time_until_next_compound() == 1
        with pytest.raises(CompoundTooSoon):
            compounder.record_compound(principals.engine, 'keeper-1', to_wad(10), 0)

        assert compounder.compound_count == 1
        assert compounder.total_harvested == to_wad(10)

    def test_compound_after_interval(self, compounder, principals, clock):
        compounder.record_compound(principals.engine, 'keeper-1', to_wad(10), 0)
        clock.advance(HOUR)

        assert compounder.can_compound() is True
        compounder.record_compound(principals.engine, 'keeper-2', to_wad(20), 0)

        assert [r.caller for r in compounder.get_recent_compounds(5)] == ['keeper-2', 'keeper-1']

    def test_history_bounded(self, compounder, principals, clock):
        for i in range(105):
            compounder.record_compound(principals.engine, 'k', to_wad(i + 1), 0)
            clock.advance(HOUR)

        assert len(compounder.history) == 100
        assert compounder.compound_count == 105
        assert compounder.get_recent_compounds(1)[0].harvested == to_wad(105)

    def test_bounty_larger_than_harvest(self, compounder, principals):
        record = compounder.record_compound(principals.engine, 'k', to_wad(1), to_wad(2))
        assert record.compounded == 0

    def test_only_orchestrator_records(self, compounder):
        with pytest.raises(NotAuthorized):
            compounder.record_compound(Principal('keeper-1'), 'keeper-1', to_wad(1), 0)

    def test_estimate_apy(self, compounder, principals):
        assert compounder.estimate_apy_bps(to_wad(1_000)) == 0

        compounder.record_compound(principals.engine, 'k', to_wad(1), 0)

        # 1 WAD per hour on 1000 WAD, 8760 hours a year
        assert compounder.estimate_apy_bps(to_wad(1_000)) == 87_600
        assert compounder.estimate_apy_bps(0) == 0


class TestGovernance:

    def test_update_bounty(self, compounder, principals):
        compounder.update_parameters(principals.governance, bounty_bps=100)
        assert compounder.calculate_bounty(to_wad(100)) == to_wad(1)

    def test_bounty_cap_enforced(self, compounder, principals):
        with pytest.raises(InvalidParameter):
            compounder.update_parameters(principals.governance, bounty_bps=501)

    def test_capacity_fixed(self, compounder, principals):
        with pytest.raises(InvalidParameter):
            compounder.update_parameters(principals.governance, history_capacity=10)

    def test_requires_governance(self, compounder, principals):
        with pytest.raises(NotAuthorized):
            compounder.update_parameters(principals.engine, bounty_bps=10)

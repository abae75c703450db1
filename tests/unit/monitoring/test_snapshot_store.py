"""
Unit tests for engine snapshots and the SnapshotStore.
"""
import pytest

from vault_engine.monitoring import EngineSnapshot, SnapshotStore, build_snapshot
from vault_engine.utils.fixed_point import to_wad


@pytest.fixture
def snapshot(funded_engine, keeper, tick, growth_source):
    growth_source.accrue_rewards(to_wad(10))
    tick()
    funded_engine.execute_cycle(keeper)
    return build_snapshot(funded_engine)


@pytest.fixture
def store(tmp_path):
    return SnapshotStore(tmp_path / 'state' / 'engine_snapshot.json', keep_backups=3)


class TestBuildSnapshot:

    def test_captures_engine_state(self, snapshot, clock):
        assert snapshot.taken_at == clock()
        assert snapshot.cycle_count == 1
        assert snapshot.volatility_band == 'low'
        assert snapshot.total_value == to_wad('1009.95')
        assert snapshot.current_allocation.safe_bps == 7_000
        assert snapshot.target_allocation.growth_bps == 3_000
        assert snapshot.hedge.active is True
        assert snapshot.compound_count == 1
        assert snapshot.recent_compounds[0].caller == 'keeper-1'
        assert snapshot.pending_withdrawals == {'safe': False, 'growth': False}

    def test_fresh_engine(self, engine):
        snapshot = build_snapshot(engine)

        assert snapshot.cycle_count == 0
        assert snapshot.hedge.active is False
        assert snapshot.recent_compounds == []

    def test_unknown_fields_rejected(self, snapshot):
        data = snapshot.model_dump()
        data['surprise'] = 1

        with pytest.raises(ValueError):
            EngineSnapshot.model_validate(data)


class TestSnapshotStore:

    def test_save_and_load(self, store, snapshot):
        path = store.save(snapshot)

        assert path.exists()
        assert not path.with_suffix('.tmp').exists()
        assert store.load() == snapshot

    def test_missing_file(self, store):
        assert store.load() is None

    def test_creates_directories(self, tmp_path):
        SnapshotStore(tmp_path / 'a' / 'b' / 'snap.json')

        assert (tmp_path / 'a' / 'b').is_dir()
        assert (tmp_path / 'a' / 'b' / 'backups').is_dir()

    def test_second_save_backs_up_first(self, store, snapshot):
        store.save(snapshot)
        store.save(snapshot)

        assert len(store.list_backups()) == 1

    def test_backups_capped(self, store, snapshot):
        for _ in range(6):
            store.save(snapshot)

        assert len(store.list_backups()) == 3

    def test_corrupted_file_recovers_from_backup(self, store, snapshot):
        store.save(snapshot)
        store.save(snapshot)
        store.snapshot_file.write_text('{not json')

        assert store.load() == snapshot

    def test_corrupted_file_without_backup(self, store, snapshot):
        store.save(snapshot)
        store.snapshot_file.write_text('{"taken_at": "yesterday"}')

        with pytest.raises(ValueError):
            store.load()

    def test_backups_disabled(self, tmp_path, snapshot):
        store = SnapshotStore(tmp_path / 'snap.json', backup_enabled=False)
        store.save(snapshot)
        store.save(snapshot)

        assert store.list_backups() == []

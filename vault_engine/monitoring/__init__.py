"""
Monitoring - Serializable engine snapshots and their on-disk store.
"""

from vault_engine.monitoring.snapshot import EngineSnapshot, build_snapshot
from vault_engine.monitoring.snapshot_store import SnapshotStore

__all__ = ['EngineSnapshot', 'build_snapshot', 'SnapshotStore']

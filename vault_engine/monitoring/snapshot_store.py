"""
Snapshot Store - Persist engine snapshots for dashboards.

Uses atomic file writes (temp + rename) so a reader never sees a half
written snapshot, and keeps timestamped backups of the previous file for
recovery when the current one is corrupted.
"""

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from vault_engine.monitoring.snapshot import EngineSnapshot

logger = logging.getLogger('MONITORING.STORE')

BACKUP_PATTERN = 'snapshot_backup_*.json'


class SnapshotStore:
    """
    Save and load EngineSnapshot files.

    Usage:
        store = SnapshotStore(Path('state/engine_snapshot.json'))
        store.save(build_snapshot(engine))
        snapshot = store.load()
    """

    def __init__(
        self,
        snapshot_file: Path = Path('state/engine_snapshot.json'),
        backup_enabled: bool = True,
        backup_dir: Optional[Path] = None,
        keep_backups: int = 10,
    ):
        """
        Initialize snapshot store.

        Args:
            snapshot_file: Path to the snapshot JSON file
            backup_enabled: Back up the existing file before each save
            backup_dir: Directory for backups (defaults to <snapshot dir>/backups)
            keep_backups: Number of backups retained
        """
        self.snapshot_file = Path(snapshot_file)
        self.backup_enabled = backup_enabled
        self.backup_dir = Path(backup_dir) if backup_dir else self.snapshot_file.parent / 'backups'
        self.keep_backups = keep_backups

        self.snapshot_file.parent.mkdir(parents=True, exist_ok=True)
        if self.backup_enabled:
            self.backup_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"SnapshotStore initialized: {self.snapshot_file}")

    def save(self, snapshot: EngineSnapshot) -> Path:
        """
        Write snapshot atomically.

        Raises:
            IOError: If the write fails (the previous file is left intact)
        """
        if self.backup_enabled and self.snapshot_file.exists():
            self._backup_current()

        temp_file = self.snapshot_file.with_suffix('.tmp')
        try:
            with open(temp_file, 'w') as f:
                f.write(snapshot.model_dump_json(indent=2))
            temp_file.replace(self.snapshot_file)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            logger.error(f"Failed to save snapshot: {e}")
            raise IOError(f"Snapshot save failed: {e}") from e

        logger.info(
            f"Snapshot saved: cycle={snapshot.cycle_count}, band={snapshot.volatility_band}, "
            f"breaker={snapshot.circuit_breaker_active}"
        )
        return self.snapshot_file

    def load(self) -> Optional[EngineSnapshot]:
        """
        Load the current snapshot.

        Returns None when no snapshot has been written. A corrupted file
        falls back to the newest valid backup.

        Raises:
            ValueError: If the file is corrupted and no valid backup exists
        """
        if not self.snapshot_file.exists():
            logger.warning(f"Snapshot file not found: {self.snapshot_file}")
            return None

        try:
            return self._read(self.snapshot_file)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Snapshot corrupted: {e}")
            backup = self._load_latest_backup()
            if backup is None:
                raise ValueError(f"Snapshot corrupted and no backup available: {e}") from e
            logger.warning("Recovered snapshot from backup")
            return backup

    def list_backups(self):
        """Backup files, newest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(BACKUP_PATTERN), reverse=True)

    @staticmethod
    def _read(path: Path) -> EngineSnapshot:
        with open(path, 'r') as f:
            data = json.load(f)
        return EngineSnapshot.model_validate(data)

    def _backup_current(self) -> None:
        timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S_%f')
        backup_file = self.backup_dir / f"snapshot_backup_{timestamp}.json"
        try:
            shutil.copy2(self.snapshot_file, backup_file)
        except OSError as e:
            # A failed backup must not block the save itself
            logger.warning(f"Failed to back up snapshot: {e}")
            return
        logger.debug(f"Snapshot backed up to: {backup_file}")
        self._cleanup_old_backups()

    def _load_latest_backup(self) -> Optional[EngineSnapshot]:
        for backup_file in self.list_backups():
            try:
                snapshot = self._read(backup_file)
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"Backup {backup_file} invalid: {e}")
                continue
            logger.info(f"Loaded valid backup: {backup_file}")
            return snapshot

        logger.error("No valid snapshot backups found")
        return None

    def _cleanup_old_backups(self) -> None:
        for backup in self.list_backups()[self.keep_backups:]:
            try:
                backup.unlink()
            except OSError as e:
                logger.warning(f"Failed to delete backup {backup}: {e}")

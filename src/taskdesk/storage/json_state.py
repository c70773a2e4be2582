# src/taskdesk/storage/json_state.py

"""
Durable JSON documents.

Each document is written atomically (temp file + fsync + os.replace) so a reader
never observes a partial file, then snapshotted into a backup directory with a
sortable UTC timestamp suffix. Backups beyond the retention count are pruned
oldest-first.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from ..errors import PersistenceFailure

logger = logging.getLogger(__name__)

BACKUP_TS_FORMAT = "%Y%m%dT%H%M%S%fZ"


@dataclass(slots=True)
class BackupPolicy:
    """Shared by every state file so a config change applies everywhere."""

    retention: int = 10


def _fsync_dir(directory: Path) -> None:
    """Persist a rename on POSIX. Best-effort: a failure here never fails the write."""
    if os.name != "posix":
        return
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        logger.debug("Cannot open %s for fsync", directory, exc_info=True)
        return
    try:
        os.fsync(fd)
    except OSError:
        logger.debug("fsync of %s failed", directory, exc_info=True)
    finally:
        os.close(fd)


class JsonStateFile:
    def __init__(
        self,
        path: str | Path,
        *,
        backup_dir: str | Path,
        policy: BackupPolicy | None = None,
        default_factory: Callable[[], dict[str, Any]] = dict,
    ) -> None:
        self.path = Path(path)
        self.backup_dir = Path(backup_dir)
        self.policy = policy or BackupPolicy()
        self._default_factory = default_factory
        self._last_backup_at: datetime | None = None

    @property
    def name(self) -> str:
        return self.path.name

    def load(self) -> dict[str, Any]:
        """Read the document; any failure yields the default state."""
        if not self.path.exists():
            return self._default_factory()
        try:
            data = json.loads(self.path.read_text("utf-8"))
        except Exception:
            logger.exception("Failed to read %s; starting from defaults", self.path)
            return self._default_factory()
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a JSON object, got %s", self.path, type(data).__name__)
            return self._default_factory()
        return data

    def write(self, data: dict[str, Any]) -> None:
        try:
            payload = json.dumps(data, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise PersistenceFailure(f"{self.name}: state is not JSON-serializable ({e})") from e

        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
            _fsync_dir(self.path.parent)
        except OSError as e:
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                logger.debug("Failed to remove temp file %s", tmp, exc_info=True)
            raise PersistenceFailure(f"{self.name}: write failed ({e})") from e

        logger.debug("Wrote %s (%d bytes)", self.path, len(payload))
        self.backup()

    def _backup_stamp(self) -> str:
        # Names must sort in creation order, even for two backups in the same microsecond.
        now = datetime.now(timezone.utc)
        if self._last_backup_at is not None and now <= self._last_backup_at:
            now = self._last_backup_at + timedelta(microseconds=1)
        self._last_backup_at = now
        return now.strftime(BACKUP_TS_FORMAT)

    def backup(self) -> Path | None:
        """Snapshot the current file and prune old snapshots. Never raises."""
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            target = self.backup_dir / f"{self.path.stem}-{self._backup_stamp()}{self.path.suffix}"
            shutil.copy2(self.path, target)
            self.prune_backups()
            return target
        except Exception:
            logger.exception("Backup of %s failed", self.path)
            return None

    def list_backups(self) -> list[Path]:
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(f"{self.path.stem}-*{self.path.suffix}"), key=lambda p: p.name)

    def prune_backups(self) -> int:
        keep = max(1, int(self.policy.retention))
        backups = self.list_backups()
        excess = backups[: max(0, len(backups) - keep)]
        for old in excess:
            old.unlink()
            logger.debug("Pruned backup %s", old)
        return len(excess)

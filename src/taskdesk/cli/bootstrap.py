# src/taskdesk/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires state files, the save guard and the optional remote sync into AppState,
- performs the final flush on shutdown.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import get_settings
from ..core.access import AccessPolicy
from ..core.state import AppState
from ..storage.guard import SaveGuard
from ..storage.json_state import BackupPolicy, JsonStateFile
from ..storage.remote_sync import create_remote_sync
from ..tasks.registry import ConfigStore, DepartmentRegistry, ManagerRegistry
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.backup_dir.mkdir(parents=True, exist_ok=True)
    for path in (settings.tasks_path, settings.departments_path, settings.managers_path, settings.config_path):
        Path(path).parent.mkdir(parents=True, exist_ok=True)


def _state_file(settings, path: Path, policy: BackupPolicy) -> JsonStateFile:
    path = Path(path)
    return JsonStateFile(path, backup_dir=Path(settings.backup_dir) / path.stem, policy=policy)


def create_initial_state(*, settings=None, remote_sync=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings(). If remote_sync is None it is built from
    settings (and stays None when replication is not configured).
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if remote_sync is None:
        remote_sync = create_remote_sync(settings)

    guard = SaveGuard()
    policy = BackupPolicy(retention=int(getattr(settings, "backup_retention", 10)))
    shared = {"guard": guard, "remote_sync": remote_sync}

    config = ConfigStore(
        _state_file(settings, settings.config_path, policy),
        policy=policy,
        default_windows=list(getattr(settings, "reminder_windows", []) or []),
        default_retention=policy.retention,
        **shared,
    )
    departments = DepartmentRegistry(_state_file(settings, settings.departments_path, policy), **shared)
    managers = ManagerRegistry(_state_file(settings, settings.managers_path, policy), **shared)
    task_store = TaskStore(
        _state_file(settings, settings.tasks_path, policy),
        departments=departments,
        **shared,
    )
    access = AccessPolicy(
        managers=managers,
        owner_id=getattr(settings, "owner_id", None),
        admin_ids=list(getattr(settings, "admin_ids", []) or []),
    )

    return AppState(
        settings=settings,
        guard=guard,
        backup_policy=policy,
        config=config,
        departments=departments,
        managers=managers,
        task_store=task_store,
        access=access,
    )


async def shutdown(state: AppState) -> None:
    """Best-effort final flush (no exceptions should escape)."""
    try:
        await state.flush()
        logger.info("State flushed to %s", getattr(state.settings, "data_dir", "?"))
    except Exception:
        logger.exception("Final flush failed.")

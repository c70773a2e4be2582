# src/taskdesk/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..storage.guard import SaveGuard
from ..storage.json_state import BackupPolicy
from ..tasks.registry import ConfigStore, DepartmentRegistry, ManagerRegistry
from ..tasks.task_store import TaskStore
from .access import AccessPolicy


@dataclass
class AppState:
    """
    Everything a connector or the scheduler needs, built once at start-up
    (see cli/bootstrap.py) and passed around explicitly.
    """

    settings: object

    guard: SaveGuard
    backup_policy: BackupPolicy
    config: ConfigStore
    departments: DepartmentRegistry
    managers: ManagerRegistry
    task_store: TaskStore
    access: AccessPolicy

    async def flush(self) -> None:
        """Persist every document (used at shutdown)."""
        for doc in (self.config, self.departments, self.managers, self.task_store):
            await doc.save()

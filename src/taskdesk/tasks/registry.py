# src/taskdesk/tasks/registry.py

"""
Departments, managers and bot config.

Each registry is an in-memory dict persisted as its own JSON document:
- departments.json: {name: [member_id, ...]}
- managers.json:    {member_id: true}
- config.json:      {"reminder_windows": [...], "backup_retention": N}
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..errors import InvalidReminderWindow, NotFound
from ..storage.document import PersistedDocument
from ..storage.json_state import BackupPolicy
from .timeparse import parse_window

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_WINDOWS = ["1d", "1h"]


def _dedupe(ids: Iterable[Any]) -> list[str]:
    return list(dict.fromkeys(str(i).strip() for i in ids if str(i).strip()))


class DepartmentRegistry(PersistedDocument):
    def __init__(self, state_file, **kwargs) -> None:
        super().__init__(state_file, **kwargs)
        self._departments: dict[str, list[str]] = {}
        for name, members in self._file.load().items():
            if not isinstance(members, list):
                logger.warning("Skipping department %r: members is not a list", name)
                continue
            self._departments[str(name)] = _dedupe(members)
        logger.info("DepartmentRegistry ready path=%s departments=%d", self._file.path, len(self._departments))

    def to_json(self) -> dict[str, Any]:
        return {name: list(members) for name, members in self._departments.items()}

    def exists(self, name: str | None) -> bool:
        return bool(name) and name in self._departments

    def names(self) -> list[str]:
        return list(self._departments)

    def members(self, name: str | None) -> list[str]:
        if not name:
            return []
        return list(self._departments.get(name, []))

    def snapshot(self) -> dict[str, list[str]]:
        return self.to_json()

    def _require(self, name: str) -> list[str]:
        members = self._departments.get(name)
        if members is None:
            raise NotFound(f"Department {name!r} does not exist")
        return members

    async def set_department(self, name: str, members: Iterable[str] = ()) -> list[str]:
        """Create or overwrite a department wholesale."""
        name = (name or "").strip()
        if not name:
            raise NotFound("Department name is required")
        self._departments[name] = _dedupe(members)
        await self.save()
        logger.info("Department %s set with %d members", name, len(self._departments[name]))
        return list(self._departments[name])

    async def add_member(self, name: str, member: str) -> bool:
        members = self._require(name)
        member = member.strip()
        if member in members:
            return False
        members.append(member)
        await self.save()
        return True

    async def remove_member(self, name: str, member: str) -> bool:
        members = self._require(name)
        member = member.strip()
        if member not in members:
            return False
        members.remove(member)
        await self.save()
        return True


class ManagerRegistry(PersistedDocument):
    def __init__(self, state_file, **kwargs) -> None:
        super().__init__(state_file, **kwargs)
        self._managers: dict[str, bool] = {
            str(uid): True for uid, flag in self._file.load().items() if flag
        }

    def to_json(self) -> dict[str, Any]:
        return dict(self._managers)

    def is_manager(self, user_id: str | None) -> bool:
        return bool(user_id) and user_id in self._managers

    def snapshot(self) -> list[str]:
        return list(self._managers)

    async def add(self, user_ids: Iterable[str]) -> list[str]:
        added = [uid for uid in _dedupe(user_ids) if uid not in self._managers]
        if not added:
            return []
        for uid in added:
            self._managers[uid] = True
        await self.save()
        logger.info("Managers added: %s", ", ".join(added))
        return added

    async def remove(self, user_ids: Iterable[str]) -> list[str]:
        removed = [uid for uid in _dedupe(user_ids) if self._managers.pop(uid, None)]
        if removed:
            await self.save()
            logger.info("Managers removed: %s", ", ".join(removed))
        return removed


class ConfigStore(PersistedDocument):
    """Reminder windows and backup retention; retention is pushed into the shared BackupPolicy."""

    def __init__(
        self,
        state_file,
        *,
        policy: BackupPolicy,
        default_windows: list[str] | None = None,
        default_retention: int = 10,
        **kwargs,
    ) -> None:
        super().__init__(state_file, **kwargs)
        self._policy = policy
        raw = self._file.load()

        windows = raw.get("reminder_windows")
        if not isinstance(windows, list) or not windows:
            windows = list(default_windows or DEFAULT_REMINDER_WINDOWS)
        self._windows = self._validate_windows(windows, strict=False) or list(DEFAULT_REMINDER_WINDOWS)

        try:
            retention = int(raw.get("backup_retention", default_retention))
        except (TypeError, ValueError):
            retention = default_retention
        self._policy.retention = max(1, retention)

    @staticmethod
    def _validate_windows(windows: Iterable[str], *, strict: bool) -> list[str]:
        out: list[str] = []
        for w in windows:
            key = str(w).strip().lower()
            try:
                parse_window(key)
            except ValueError:
                if strict:
                    raise InvalidReminderWindow(f"Invalid reminder window {w!r} (use e.g. 1d, 2h, 30m)")
                logger.warning("Dropping invalid stored reminder window %r", w)
                continue
            if key not in out:
                out.append(key)
        return out

    @property
    def reminder_windows(self) -> list[str]:
        return list(self._windows)

    @property
    def backup_retention(self) -> int:
        return self._policy.retention

    def to_json(self) -> dict[str, Any]:
        return {"reminder_windows": list(self._windows), "backup_retention": self._policy.retention}

    async def set_reminders(self, windows: Iterable[str]) -> list[str]:
        parsed = self._validate_windows(windows, strict=True)
        if not parsed:
            raise InvalidReminderWindow("At least one reminder window is required")
        self._windows = parsed
        await self.save()
        logger.info("Reminder windows set to %s", ",".join(parsed))
        return list(parsed)

    async def set_backup_retention(self, retention: int) -> int:
        self._policy.retention = max(1, int(retention))
        await self.save()
        logger.info("Backup retention set to %d", self._policy.retention)
        return self._policy.retention

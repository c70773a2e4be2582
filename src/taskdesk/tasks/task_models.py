# src/taskdesk/tasks/task_models.py

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..errors import InvalidStatus, NotFound

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "No description"
OVERDUE_KEY = "overdue"


class TaskStatus(StrEnum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    DONE = "Done"
    BLOCKED = "Blocked"
    OVERDUE = "Overdue"

    @classmethod
    def parse(cls, raw: str | TaskStatus | None) -> TaskStatus:
        """Accept display values case-insensitively, plus in_progress / in-progress."""
        if isinstance(raw, TaskStatus):
            return raw
        norm = " ".join((raw or "").replace("_", " ").replace("-", " ").split()).lower()
        for status in cls:
            if status.value.lower() == norm:
                return status
        allowed = ", ".join(s.value for s in cls)
        raise InvalidStatus(f"Unknown status {raw!r}; expected one of: {allowed}")

    @classmethod
    def from_stored(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls.parse(raw)
        except InvalidStatus:
            logger.warning("Unknown stored status %r; treating as Pending", raw)
            return cls.PENDING


def utc_iso(ts: float | None = None) -> str:
    dt = datetime.now(timezone.utc) if ts is None else datetime.fromtimestamp(ts, timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class LogEntry:
    date: str
    action: str

    def to_dict(self) -> dict[str, str]:
        return {"date": self.date, "action": self.action}

    @classmethod
    def from_dict(cls, raw: Any) -> LogEntry | None:
        if not isinstance(raw, dict) or "action" not in raw:
            return None
        return cls(date=str(raw.get("date") or ""), action=str(raw["action"]))


@dataclass(slots=True)
class Task:
    id: int
    title: str
    description: str
    due_at: float | None
    status: TaskStatus
    created_by: str
    created_at: float
    assigned_to: list[str] = field(default_factory=list)
    department: str | None = None
    logs: list[LogEntry] = field(default_factory=list)
    reminders_sent: list[str] = field(default_factory=list)

    def log(self, action: str, ts: float | None = None) -> LogEntry:
        entry = LogEntry(date=utc_iso(ts), action=action)
        self.logs.append(entry)
        return entry

    @property
    def last_action(self) -> str | None:
        return self.logs[-1].action if self.logs else None

    def snapshot(self) -> Task:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "due_at": self.due_at,
            "status": self.status.value,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "assigned_to": list(self.assigned_to),
            "department": self.department,
            "logs": [e.to_dict() for e in self.logs],
            "reminders_sent": list(self.reminders_sent),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        """Raises KeyError/ValueError/TypeError on records without a usable id or title."""
        title = str(raw["title"]).strip()
        if not title:
            raise ValueError("empty title")
        due = raw.get("due_at")
        logs = [e for e in (LogEntry.from_dict(x) for x in raw.get("logs") or []) if e is not None]
        return cls(
            id=int(raw["id"]),
            title=title,
            description=str(raw.get("description") or DEFAULT_DESCRIPTION),
            due_at=float(due) if due is not None else None,
            status=TaskStatus.from_stored(raw.get("status")),
            created_by=str(raw.get("created_by") or ""),
            created_at=float(raw.get("created_at") or 0.0),
            assigned_to=list(dict.fromkeys(str(u) for u in raw.get("assigned_to") or [])),
            department=raw.get("department") or None,
            logs=logs,
            reminders_sent=list(dict.fromkeys(str(k) for k in raw.get("reminders_sent") or [])),
        )


@dataclass(slots=True, frozen=True)
class TaskView:
    """
    Read-side copy of a task, tagged with the assignee whose collection produced it.

    Views are detached from the store: mutating one never changes stored state.
    """

    task: Task
    user_id: str


@dataclass(slots=True, frozen=True)
class TaskRef:
    user_id: str
    position: int  # 0-based, within user_id's collection
    task: Task


@dataclass(slots=True, frozen=True)
class TaskSelector:
    task_id: int | None = None
    index: int | None = None  # 1-based, into the caller's listing

    def __post_init__(self) -> None:
        if (self.task_id is None) == (self.index is None):
            raise NotFound("Give either a task id or a list index")

    @classmethod
    def by_id(cls, task_id: int) -> TaskSelector:
        return cls(task_id=int(task_id))

    @classmethod
    def by_index(cls, index: int) -> TaskSelector:
        return cls(index=int(index))

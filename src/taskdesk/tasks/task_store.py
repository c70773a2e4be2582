# src/taskdesk/tasks/task_store.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from ..errors import EmptyAssignment, Forbidden, NotFound
from ..storage.document import PersistedDocument
from .registry import DepartmentRegistry
from .search import fuzzy_search
from .task_models import (
    DEFAULT_DESCRIPTION,
    Task,
    TaskRef,
    TaskSelector,
    TaskStatus,
    TaskView,
)

logger = logging.getLogger(__name__)


class TaskStore(PersistedDocument):
    """
    Task store: one canonical record per task, indexed by assignee.

    Layout:
    - _tasks: task id -> canonical Task
    - _by_assignee: assignee id -> ordered task ids (insertion order of assignees is kept)

    Every read returns detached copies. Every mutation edits the canonical record,
    so a task assigned to N people can never diverge between their views.

    On disk the document keeps the per-assignee shape:
      {assignee_id: [task_record, ...]}
    with one value-identical record per assignee.
    """

    def __init__(
        self,
        state_file,
        *,
        departments: DepartmentRegistry | None = None,
        clock: Callable[[], float] = time.time,
        **kwargs,
    ) -> None:
        super().__init__(state_file, **kwargs)
        self._departments = departments
        self._clock = clock
        self._tasks: dict[int, Task] = {}
        self._by_assignee: dict[str, list[int]] = {}
        self._last_id = 0
        self._load(self._file.load())
        logger.info(
            "TaskStore ready path=%s tasks=%d assignees=%d",
            self._file.path,
            len(self._tasks),
            len(self._by_assignee),
        )

    # ---- load / dump ----

    def _load(self, data: dict[str, Any]) -> None:
        for user_id, records in data.items():
            if not isinstance(records, list):
                logger.warning("Skipping tasks for %r: expected a list", user_id)
                continue
            user_id = str(user_id)
            for raw in records:
                try:
                    task = Task.from_dict(raw)
                except (KeyError, TypeError, ValueError, AttributeError):
                    logger.warning("Skipping malformed task record for %s: %r", user_id, raw)
                    continue

                canonical = self._tasks.setdefault(task.id, task)
                if user_id not in canonical.assigned_to:
                    canonical.assigned_to.append(user_id)
                ids = self._by_assignee.setdefault(user_id, [])
                if canonical.id not in ids:
                    ids.append(canonical.id)

        # Assignees listed on a record but missing their own collection.
        for task in self._tasks.values():
            for user_id in task.assigned_to:
                ids = self._by_assignee.setdefault(user_id, [])
                if task.id not in ids:
                    ids.append(task.id)

        self._last_id = max(self._tasks, default=0)

    def to_json(self) -> dict[str, Any]:
        return {
            user_id: [self._tasks[tid].to_dict() for tid in ids]
            for user_id, ids in self._by_assignee.items()
            if ids
        }

    # ---- helpers ----

    def _new_id(self) -> int:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return candidate

    def _expand_assignees(self, user_ids: Iterable[str], department: str | None) -> list[str]:
        resolved = [str(u).strip() for u in user_ids if str(u).strip()]
        if department and self._departments is not None:
            resolved.extend(self._departments.members(department))
        return list(dict.fromkeys(resolved))

    def _attach(self, task: Task, user_id: str) -> None:
        ids = self._by_assignee.setdefault(user_id, [])
        if task.id not in ids:
            ids.append(task.id)

    def _detach(self, task_id: int, user_id: str) -> None:
        ids = self._by_assignee.get(user_id)
        if ids and task_id in ids:
            ids.remove(task_id)
            if not ids:
                del self._by_assignee[user_id]

    def _iter_unique(self) -> Iterator[tuple[str, Task]]:
        seen: set[int] = set()
        for user_id, ids in self._by_assignee.items():
            for tid in ids:
                if tid in seen:
                    continue
                seen.add(tid)
                yield user_id, self._tasks[tid]

    def _own(self, user_id: str) -> list[Task]:
        return [self._tasks[tid] for tid in self._by_assignee.get(user_id, [])]

    def _get(self, task_id: int) -> Task:
        task = self._tasks.get(int(task_id))
        if task is None:
            raise NotFound(f"No task with id {task_id}")
        return task

    def _resolve(self, principal_id: str, privileged: bool, selector: TaskSelector) -> Task:
        if selector.task_id is not None:
            task = self._get(selector.task_id)
        else:
            scope = [t for _, t in self._iter_unique()] if privileged else self._own(principal_id)
            index = int(selector.index or 0)
            if index < 1 or index > len(scope):
                raise NotFound(f"Invalid task index {index}; valid range is 1..{len(scope)}")
            task = scope[index - 1]

        if not privileged and principal_id not in task.assigned_to:
            raise Forbidden("You can only change tasks assigned to you")
        return task

    # ---- reads ----

    def count(self) -> int:
        return len(self._tasks)

    def find_by_id(self, task_id: int) -> TaskRef | None:
        for user_id, ids in self._by_assignee.items():
            for pos, tid in enumerate(ids):
                if tid == task_id:
                    return TaskRef(user_id=user_id, position=pos, task=self._tasks[tid].snapshot())
        return None

    def unique_all(self) -> list[TaskView]:
        """One view per task id; the owner tag is the first collection the task was seen in."""
        return [TaskView(task=t.snapshot(), user_id=uid) for uid, t in self._iter_unique()]

    def list_for(self, principal_id: str, privileged: bool) -> list[TaskView]:
        if privileged:
            return self.unique_all()
        return [TaskView(task=t.snapshot(), user_id=principal_id) for t in self._own(principal_id)]

    def fuzzy_search(
        self,
        query: str,
        limit: int = 10,
        *,
        principal_id: str | None = None,
        privileged: bool = True,
    ) -> list[TaskView]:
        views = self.unique_all() if privileged or principal_id is None else self.list_for(principal_id, False)
        return fuzzy_search(views, query, limit=limit)

    def export_records(self, principal_id: str | None = None, privileged: bool = True) -> list[dict[str, Any]]:
        views = self.unique_all() if privileged or principal_id is None else self.list_for(principal_id, False)
        return [v.task.to_dict() for v in views]

    # ---- mutations ----

    async def create(
        self,
        *,
        creator_id: str,
        creator_name: str,
        title: str,
        description: str | None = None,
        due_at: float | None = None,
    ) -> Task:
        now = self._clock()
        task = Task(
            id=self._new_id(),
            title=title.strip(),
            description=(description or "").strip() or DEFAULT_DESCRIPTION,
            due_at=due_at,
            status=TaskStatus.PENDING,
            created_by=creator_name,
            created_at=now,
            assigned_to=[creator_id],
        )
        task.log("Task created", now)
        self._tasks[task.id] = task
        self._attach(task, creator_id)

        await self.save()
        logger.info("Task %s created by %s", task.id, creator_id)
        return task.snapshot()

    async def assign(
        self,
        *,
        actor_name: str,
        title: str,
        description: str | None = None,
        due_at: float | None = None,
        department: str | None = None,
        user_ids: Iterable[str] = (),
    ) -> Task:
        assignees = self._expand_assignees(user_ids, department)
        if not assignees:
            raise EmptyAssignment("No users to assign this task to")

        now = self._clock()
        task = Task(
            id=self._new_id(),
            title=title.strip(),
            description=(description or "").strip() or DEFAULT_DESCRIPTION,
            due_at=due_at,
            status=TaskStatus.PENDING,
            created_by=actor_name,
            created_at=now,
            assigned_to=assignees,
            department=department or None,
        )
        task.log(f"Task assigned by {actor_name}", now)
        self._tasks[task.id] = task
        for user_id in assignees:
            self._attach(task, user_id)

        await self.save()
        logger.info("Task %s assigned to %s (department=%s)", task.id, ",".join(assignees), department)
        return task.snapshot()

    async def update_status(
        self,
        *,
        principal_id: str,
        actor_name: str,
        privileged: bool,
        selector: TaskSelector,
        new_status: str | TaskStatus,
    ) -> Task:
        task = self._resolve(principal_id, privileged, selector)
        status = TaskStatus.parse(new_status)

        task.status = status
        task.log(f"Status updated to {status.value} by {actor_name}", self._clock())

        await self.save()
        logger.info("Task %s -> %s (by %s)", task.id, status.value, principal_id)
        return task.snapshot()

    async def delete(
        self,
        *,
        principal_id: str,
        privileged: bool,
        selector: TaskSelector,
        actor_name: str | None = None,
    ) -> Task:
        """
        Privileged callers and sole assignees remove the task everywhere.
        Any other assignee only drops it from their own collection; the task
        stays with the remaining assignees.
        """
        task = self._resolve(principal_id, privileged, selector)

        if not privileged and len(task.assigned_to) > 1:
            task.assigned_to.remove(principal_id)
            self._detach(task.id, principal_id)
            task.log(f"Removed by {actor_name or principal_id}", self._clock())

            await self.save()
            logger.info("Task %s removed from %s's list", task.id, principal_id)
            return task.snapshot()

        for user_id in list(task.assigned_to):
            self._detach(task.id, user_id)
        del self._tasks[task.id]

        await self.save()
        logger.info("Task %s deleted by %s", task.id, principal_id)
        return task.snapshot()

    async def add_assignees(
        self,
        *,
        actor_name: str,
        task_id: int,
        user_ids: Iterable[str] = (),
        department: str | None = None,
    ) -> list[str]:
        task = self._get(task_id)
        resolved = self._expand_assignees(user_ids, department)
        if not resolved:
            raise EmptyAssignment("No users to add to this task")

        added = [uid for uid in resolved if uid not in task.assigned_to]
        if not added:
            return []

        for user_id in added:
            task.assigned_to.append(user_id)
            self._attach(task, user_id)
        task.log(f"Assignees added by {actor_name}: {', '.join(added)}", self._clock())

        await self.save()
        logger.info("Task %s: added assignees %s", task.id, ",".join(added))
        return added

    async def remove_assignees(
        self,
        *,
        actor_name: str,
        task_id: int,
        user_ids: Iterable[str],
    ) -> list[str]:
        task = self._get(task_id)
        wanted = list(dict.fromkeys(str(u).strip() for u in user_ids if str(u).strip()))
        removed = [uid for uid in wanted if uid in task.assigned_to]
        if not removed:
            return []

        for user_id in removed:
            task.assigned_to.remove(user_id)
            self._detach(task.id, user_id)
        task.log(f"Assignees removed by {actor_name}: {', '.join(removed)}", self._clock())

        if not task.assigned_to:
            # No collection references it any more; it cannot be listed or persisted.
            del self._tasks[task.id]
            logger.warning("Task %s lost its last assignee and was dropped", task.id)

        await self.save()
        logger.info("Task %s: removed assignees %s", task.id, ",".join(removed))
        return removed

    # ---- scheduler support ----

    def record_reminder(self, task_id: int, key: str, action: str) -> bool:
        """Record a fired threshold. False if it was already recorded or the task is gone."""
        task = self._tasks.get(task_id)
        if task is None or key in task.reminders_sent:
            return False
        task.reminders_sent.append(key)
        task.log(action, self._clock())
        return True

    def mark_overdue(self, task_id: int, action: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.status in (TaskStatus.DONE, TaskStatus.OVERDUE):
            return False
        task.status = TaskStatus.OVERDUE
        task.log(action, self._clock())
        return True

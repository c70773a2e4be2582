# src/taskdesk/tasks/reminders.py

"""
Reminder scheduler.

A small polling loop that:
- reconciles tasks whose deadline passed while the bot was down (once, at start),
- scans every task each tick,
- fires at most one notification per (task, threshold) pair,
- records fired thresholds in the task itself and persists them.

Delivery is at-most-once: the threshold is recorded before sending, and a
recipient that cannot be reached is logged and skipped.
Transport routing (DM room selection, formatting) belongs to the connector.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from ..core.ports import OutboundMessenger
from .task_models import OVERDUE_KEY, Task, TaskStatus
from .task_store import TaskStore
from .timeparse import format_due, format_minutes, parse_window

logger = logging.getLogger(__name__)

STARTUP_OVERDUE_ACTION = "Auto-marked overdue on startup"


class NoticeKind(StrEnum):
    REMINDER = "reminder"
    OVERDUE = "overdue"


@dataclass(slots=True, frozen=True)
class Notice:
    task: Task
    kind: NoticeKind
    key: str
    minutes_left: float


def render_notice(notice: Notice) -> str:
    task = notice.task
    if notice.kind == NoticeKind.OVERDUE:
        return f"Task overdue: {task.title} (id {task.id}, was due {format_due(task.due_at)})"
    return (
        f"Reminder: {task.title} (id {task.id}) is due in {format_minutes(notice.minutes_left)} "
        f"({format_due(task.due_at)})"
    )


def _parsed_windows(windows: Iterable[str]) -> list[tuple[str, float]]:
    out: list[tuple[str, float]] = []
    for w in windows:
        try:
            out.append((w, parse_window(w)))
        except ValueError:
            logger.warning("Ignoring invalid reminder window %r", w)
    return out


def due_notices(task: Task, windows: list[tuple[str, float]], now_ts: float) -> list[Notice]:
    """Thresholds this task crossed and has not been notified about yet."""
    if task.due_at is None or task.status == TaskStatus.DONE:
        return []

    minutes_left = (task.due_at - now_ts) / 60.0
    out: list[Notice] = []

    if minutes_left > 0:
        for key, window in windows:
            if minutes_left <= window and key not in task.reminders_sent:
                out.append(Notice(task=task, kind=NoticeKind.REMINDER, key=key, minutes_left=minutes_left))
    elif OVERDUE_KEY not in task.reminders_sent:
        out.append(Notice(task=task, kind=NoticeKind.OVERDUE, key=OVERDUE_KEY, minutes_left=minutes_left))

    return out


async def _deliver(messenger: OutboundMessenger, notice: Notice) -> int:
    text = render_notice(notice)
    delivered = 0
    for user_id in notice.task.assigned_to:
        try:
            await messenger.send_text(text=text, to_user_id=user_id)
            delivered += 1
        except Exception:
            logger.warning(
                "Could not deliver %s for task %s to %s",
                notice.kind.value,
                notice.task.id,
                user_id,
                exc_info=True,
            )
    return delivered


async def reconcile_overdue(store: TaskStore, *, now_ts: float | None = None) -> int:
    """Mark past-due tasks Overdue once at start-up. Idempotent."""
    if now_ts is None:
        now_ts = time.time()

    changed = 0
    for view in store.unique_all():
        task = view.task
        if task.due_at is None or task.due_at > now_ts:
            continue
        if store.mark_overdue(task.id, STARTUP_OVERDUE_ACTION):
            changed += 1

    if changed:
        await store.save()
        logger.info("Start-up reconciliation marked %d task(s) overdue", changed)
    return changed


async def scan_reminders(
    store: TaskStore,
    windows: Iterable[str],
    messenger: OutboundMessenger,
    *,
    now_ts: float | None = None,
) -> int:
    """One full scan. Returns how many thresholds fired."""
    if now_ts is None:
        now_ts = time.time()

    parsed = _parsed_windows(windows)
    fired: list[Notice] = []

    for view in store.unique_all():
        for notice in due_notices(view.task, parsed, now_ts):
            action = (
                "Overdue notice sent"
                if notice.kind == NoticeKind.OVERDUE
                else f"Reminder sent ({notice.key})"
            )
            if store.record_reminder(notice.task.id, notice.key, action):
                fired.append(notice)

    if not fired:
        return 0

    # Persist first: thresholds count as sent even if delivery fails below.
    try:
        await store.save()
    except Exception:
        logger.exception("Failed to persist reminder state")

    for notice in fired:
        delivered = await _deliver(messenger, notice)
        logger.info(
            "Task %s: %s (%s) delivered to %d/%d",
            notice.task.id,
            notice.kind.value,
            notice.key,
            delivered,
            len(notice.task.assigned_to),
        )
    return len(fired)


async def run_reminder_scheduler(
    store: TaskStore,
    config,
    messenger: OutboundMessenger,
    *,
    interval_seconds: float = 300.0,
) -> None:
    """
    Polling scheduler.

    - reconcile overdue tasks once
    - every interval_seconds: scan_reminders with the current config windows

    Ticks run back-to-back in this coroutine, so a slow scan delays the next one
    instead of overlapping it. To stop the scheduler, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    try:
        await reconcile_overdue(store)
    except Exception:
        logger.exception("Start-up overdue reconciliation failed")

    while True:
        try:
            await scan_reminders(store, config.reminder_windows, messenger)
        except Exception:
            logger.exception("Reminder scan failed")

        await asyncio.sleep(sleep_s)

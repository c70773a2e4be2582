# src/taskdesk/errors.py

from __future__ import annotations


class TaskDeskError(Exception):
    """Base class for errors that are reported back to the caller as a rejection."""


class NotFound(TaskDeskError):
    """Unknown task id, department, or an index outside the listed range."""


class Forbidden(TaskDeskError):
    """Principal lacks the permission or the assignment relation."""


class InvalidStatus(TaskDeskError):
    pass


class EmptyAssignment(TaskDeskError):
    """Assignment resolved to zero recipients."""


class InvalidDueDate(TaskDeskError):
    pass


class InvalidReminderWindow(TaskDeskError):
    pass


class PersistenceFailure(TaskDeskError):
    """Durable write failed (the in-memory state may be ahead of disk)."""

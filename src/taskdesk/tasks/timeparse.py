# src/taskdesk/tasks/timeparse.py

"""
Time helpers shared by commands and the reminder scheduler.

Durations ("1d", "2h", "30m", "45") are expressed in minutes.
Due dates are normalized to epoch seconds; naive wall-clock values are read in
the local timezone.
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timedelta

from ..errors import InvalidDueDate

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([dhm]?)\s*$", re.IGNORECASE)
_UNIT_MINUTES = {"d": 24 * 60, "h": 60, "m": 1, "": 1}

NO_DEADLINE = {"", "none", "no deadline", "-", "never"}

_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d/%m/%Y %H:%M",
)
_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y")


def parse_window(raw: str) -> float:
    """Parse a reminder window into minutes. Raises ValueError on garbage or non-positive values."""
    m = _DURATION_RE.match(raw or "")
    if not m:
        raise ValueError(f"Invalid duration: {raw!r}")
    minutes = float(m.group(1)) * _UNIT_MINUTES[m.group(2).lower()]
    if minutes <= 0:
        raise ValueError(f"Duration must be positive: {raw!r}")
    return minutes


def parse_due(raw: str | None, *, now: float | None = None) -> float | None:
    """
    Normalize user input into an absolute timestamp.

    Accepted:
    - empty / "no deadline" -> None
    - relative: "2h", "in 3d", "+90m"
    - absolute: "YYYY-MM-DD[ HH:MM[:SS]]", ISO-8601 with offset, "DD.MM.YYYY[ HH:MM]"
      A bare date means the end of that day.
    """
    text = (raw or "").strip()
    if text.lower() in NO_DEADLINE:
        return None

    if now is None:
        now = time.time()

    rel = text.lower()
    for prefix in ("in ", "+"):
        if rel.startswith(prefix):
            rel = rel[len(prefix):].strip()
            break
    if rel and rel[-1] in "dhm":
        try:
            return now + parse_window(rel) * 60.0
        except ValueError:
            pass

    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).timestamp()
        except ValueError:
            continue

    for fmt in _DATE_FORMATS:
        try:
            day = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return (day + timedelta(hours=23, minutes=59)).timestamp()

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp()
    except ValueError:
        pass

    raise InvalidDueDate(
        f"Cannot understand due date {raw!r}; use YYYY-MM-DD, 'YYYY-MM-DD HH:MM' or a duration like 2h"
    )


def format_due(ts: float | None) -> str:
    if ts is None:
        return "No deadline"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def format_minutes(minutes: float) -> str:
    minutes = max(0, int(round(minutes)))
    days, rest = divmod(minutes, 24 * 60)
    hours, mins = divmod(rest, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if mins or not parts:
        parts.append(f"{mins}m")
    return " ".join(parts)

# src/taskdesk/tasks/export.py

from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from .timeparse import format_due

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")

CSV_COLUMNS = (
    "id",
    "title",
    "description",
    "status",
    "due",
    "created_by",
    "assigned_to",
    "department",
    "last_action",
)


def to_json(records: list[dict[str, Any]]) -> str:
    return json.dumps(records, ensure_ascii=False, indent=2)


def to_csv(records: list[dict[str, Any]]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    for r in records:
        logs = r.get("logs") or []
        writer.writerow(
            {
                "id": r.get("id"),
                "title": r.get("title"),
                "description": r.get("description"),
                "status": r.get("status"),
                "due": format_due(r.get("due_at")),
                "created_by": r.get("created_by"),
                "assigned_to": ";".join(r.get("assigned_to") or []),
                "department": r.get("department") or "",
                "last_action": logs[-1]["action"] if logs else "",
            }
        )
    return buf.getvalue()


def export_tasks(records: list[dict[str, Any]], fmt: str, out_dir: str | Path) -> Path:
    fmt = (fmt or "json").strip().lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format {fmt!r}; use one of: {', '.join(EXPORT_FORMATS)}")

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    path = out_dir / f"tasks-{stamp}.{fmt}"

    body = to_json(records) if fmt == "json" else to_csv(records)
    path.write_text(body, "utf-8")
    logger.info("Exported %d task(s) to %s", len(records), path)
    return path

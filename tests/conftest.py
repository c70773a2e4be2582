# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskdesk.cli.bootstrap import create_initial_state
from taskdesk.core.state import AppState
from taskdesk.tasks.task_store import TaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskdesk-test",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        tasks_path=tmp_path / "tasks.json",
        departments_path=tmp_path / "departments.json",
        managers_path=tmp_path / "managers.json",
        config_path=tmp_path / "config.json",
        backup_dir=tmp_path / "backups",
        export_dir=tmp_path / "exports",
        # Persistence / reminders
        backup_retention=5,
        reminder_windows=["1d", "1h"],
        # Principals
        owner_id="@owner:test",
        admin_ids=["@admin:test"],
        console_user_id="console",
    )


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState wired exactly like production, but rooted in tmp_path.

    NOTE: We keep the real JSON-backed stores here because
    their correctness is part of what we want to test.
    """
    return create_initial_state(settings=settings)


@pytest.fixture()
def store(state: AppState) -> TaskStore:
    return state.task_store

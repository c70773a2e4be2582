# tests/test_registry.py

from __future__ import annotations

import json

import pytest

from taskdesk.cli.bootstrap import create_initial_state
from taskdesk.core.state import AppState
from taskdesk.errors import InvalidReminderWindow, NotFound


@pytest.mark.asyncio
async def test_departments_persist_and_dedupe(state: AppState, settings) -> None:
    members = await state.departments.set_department("eng", ["@a:test", "@a:test", " @b:test "])
    assert members == ["@a:test", "@b:test"]
    assert await state.departments.add_member("eng", "@c:test") is True
    assert await state.departments.add_member("eng", "@c:test") is False
    assert await state.departments.remove_member("eng", "@a:test") is True
    assert await state.departments.remove_member("eng", "@a:test") is False

    with pytest.raises(NotFound):
        await state.departments.add_member("sales", "@x:test")

    assert json.loads(settings.departments_path.read_text("utf-8")) == {"eng": ["@b:test", "@c:test"]}
    again = create_initial_state(settings=settings)
    assert again.departments.members("eng") == ["@b:test", "@c:test"]
    assert again.departments.members("sales") == []
    assert again.departments.exists("eng")


@pytest.mark.asyncio
async def test_managers_and_access_policy(state: AppState, settings) -> None:
    assert state.access.is_admin("@owner:test")
    assert state.access.is_admin("@admin:test")
    assert not state.access.is_privileged("@m:test")

    assert await state.managers.add(["@m:test", "@m:test"]) == ["@m:test"]
    assert await state.managers.add(["@m:test"]) == []
    assert state.access.is_privileged("@m:test")
    assert not state.access.is_admin("@m:test")

    assert json.loads(settings.managers_path.read_text("utf-8")) == {"@m:test": True}
    assert await state.managers.remove(["@m:test", "@nobody:test"]) == ["@m:test"]
    assert not state.access.is_manager("@m:test")


@pytest.mark.asyncio
async def test_reminder_windows_are_validated(state: AppState, settings) -> None:
    assert state.config.reminder_windows == ["1d", "1h"]

    assert await state.config.set_reminders(["2H", "30m", "2h"]) == ["2h", "30m"]

    with pytest.raises(InvalidReminderWindow):
        await state.config.set_reminders(["2h", "banana"])
    with pytest.raises(InvalidReminderWindow):
        await state.config.set_reminders([])
    assert state.config.reminder_windows == ["2h", "30m"]

    again = create_initial_state(settings=settings)
    assert again.config.reminder_windows == ["2h", "30m"]


@pytest.mark.asyncio
async def test_retention_is_shared_by_all_state_files(state: AppState, settings) -> None:
    assert state.config.backup_retention == 5
    await state.config.set_backup_retention(2)

    for i in range(4):
        await state.task_store.create(creator_id="@a:test", creator_name="a", title=f"t{i}")

    assert len(state.task_store.state_file.list_backups()) == 2
    assert create_initial_state(settings=settings).backup_policy.retention == 2


def test_stored_config_overrides_settings_and_drops_bad_windows(settings) -> None:
    settings.config_path.write_text(
        json.dumps({"reminder_windows": ["3h", "nope"], "backup_retention": 7}),
        "utf-8",
    )
    state = create_initial_state(settings=settings)
    assert state.config.reminder_windows == ["3h"]
    assert state.backup_policy.retention == 7

# tests/test_commands.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from taskdesk.cli.commands import CommandArgs, CommandRegistry, registry
from taskdesk.core.state import AppState

ADMIN = "@admin:test"
ALICE = "@alice:test"


async def run(state: AppState, line: str, user: str = ALICE) -> str | None:
    return await registry.handle(state, line, user_id=user, display_name=user.strip("@").split(":")[0])


def test_args_split_options_and_mentions() -> None:
    args = CommandArgs.parse(["Ship", "it", "@b:test", "users=@c:test,@b:test", "due=2h"])
    assert args.words() == ["Ship", "it"]
    assert args.opt("due") == "2h"
    assert args.mentions() == ["@b:test", "@c:test"]
    assert args.opt("missing") is None


@pytest.mark.asyncio
async def test_registry_routes_and_rejects(state: AppState) -> None:
    reg = CommandRegistry()
    calls: list[str] = []

    async def echo(ctx, args):
        calls.append(ctx.user_id)
        return " ".join(args.positional)

    reg.register("echo", echo, "echo", aliases=["e"])

    assert await reg.handle(state, "/echo a 'b c'", user_id="u") == "a b c"
    assert await reg.handle(state, "/E x", user_id="u") == "x"
    assert calls == ["u", "u"]
    assert await reg.handle(state, "hello", user_id="u") is None
    assert "Unknown command" in (await reg.handle(state, "/nope", user_id="u") or "")
    assert "unbalanced" in (await reg.handle(state, "/echo 'oops", user_id="u") or "")


@pytest.mark.asyncio
async def test_help_hides_admin_commands(state: AppState) -> None:
    user_help = await run(state, "/help")
    admin_help = await run(state, "/help", ADMIN)

    assert "/task-create" in user_help
    assert "/department-add " not in user_help
    assert "/task-assign" not in user_help
    assert "/department-add " in admin_help
    assert "/task-assign" in admin_help


@pytest.mark.asyncio
async def test_personal_task_flow(state: AppState) -> None:
    reply = await run(state, "/task-create Buy milk description='2 litres' due=2h")
    assert reply.startswith("Task created for yourself: Buy milk")

    listing = await run(state, "/task-list")
    assert "1. Buy milk" in listing
    assert "Status: Pending" in listing
    assert "Last log: Task created" in listing

    assert await run(state, "/task-update 1 'in progress'") == "Task Buy milk updated to In Progress"
    assert (await run(state, "/task-update 1 finished")).startswith("Error: Unknown status")
    assert (await run(state, "/task-update 5 Done")).startswith("Error: Invalid task index")

    assert "Buy milk" in await run(state, "/task-search milk")
    assert await run(state, "/task-delete 1") == "Deleted task: Buy milk"
    assert await run(state, "/task-list") == "No tasks found."


@pytest.mark.asyncio
async def test_bad_due_date_is_reported(state: AppState) -> None:
    reply = await run(state, "/task-create Later due=someday-maybe")
    assert reply.startswith("Error: Cannot understand due date")
    assert state.task_store.count() == 0


@pytest.mark.asyncio
async def test_assign_requires_privilege(state: AppState) -> None:
    assert await run(state, "/task-assign Ship it users=@bob:test") == "Error: Only admins/managers can do this."

    reply = await run(state, "/task-assign Ship it users=@bob:test,@carol:test", ADMIN)
    assert "assigned to @bob:test, @carol:test" in reply

    assert await run(state, "/manager-add @alice:test") == "Error: Only admins can do this."
    assert await run(state, "/manager-add @alice:test", ADMIN) == "Added managers: @alice:test"

    reply = await run(state, "/task-assign Review @dave:test")
    assert "assigned to @dave:test" in reply


@pytest.mark.asyncio
async def test_department_assignment_and_membership(state: AppState) -> None:
    assert "saved with members: @bob:test, @carol:test" in await run(
        state, "/department-add eng members=@bob:test,@carol:test", ADMIN
    )
    assert await run(state, "/department-add-member eng @dave:test", ADMIN) == "Added @dave:test to eng"
    assert await run(state, "/department-remove-member eng @bob:test", ADMIN) == "Removed @bob:test from eng"
    assert (await run(state, "/department-add-member nope @x:test", ADMIN)).startswith("Error:")

    listing = await run(state, "/department-list")
    assert "eng: @carol:test, @dave:test" in listing

    reply = await run(state, "/task-assign Migrate department=eng", ADMIN)
    assert "assigned to @carol:test, @dave:test in eng" in reply

    task = state.task_store.unique_all()[0].task
    reply = await run(state, f"/task-add-assignee id={task.id} users=@erin:test", ADMIN)
    assert reply == f"Task {task.id}: added @erin:test"
    reply = await run(state, f"/task-remove-assignee id={task.id} users=@carol:test", ADMIN)
    assert reply == f"Task {task.id}: removed @carol:test"
    assert state.task_store.find_by_id(task.id).task.assigned_to == ["@dave:test", "@erin:test"]


@pytest.mark.asyncio
async def test_non_assignee_cannot_touch_task_by_id(state: AppState) -> None:
    await run(state, "/task-create Secret", "@bob:test")
    task = state.task_store.unique_all()[0].task

    reply = await run(state, f"/task-delete id={task.id}")
    assert reply == "Error: You can only change tasks assigned to you"
    assert state.task_store.count() == 1


@pytest.mark.asyncio
async def test_set_reminders(state: AppState) -> None:
    assert await run(state, "/set-reminders 2h,30m") == "Error: Only admins can do this."
    assert await run(state, "/set-reminders 2h,30m", ADMIN) == "Reminder windows set to: 2h, 30m"
    assert state.config.reminder_windows == ["2h", "30m"]
    assert (await run(state, "/set-reminders soon", ADMIN)).startswith("Error: Invalid reminder window")
    assert state.config.reminder_windows == ["2h", "30m"]


@pytest.mark.asyncio
async def test_export_writes_file_in_scope(state: AppState) -> None:
    await run(state, "/task-create Mine")
    await run(state, "/task-create Theirs", "@bob:test")

    reply = await run(state, "/export json")
    path = Path(reply.rsplit(" to ", 1)[1])
    assert path.parent == Path(state.settings.export_dir)
    assert [r["title"] for r in json.loads(path.read_text("utf-8"))] == ["Mine"]

    reply = await run(state, "/export csv", ADMIN)
    assert reply.startswith("Exported 2 task(s)")
    assert await run(state, "/export html") == "Unsupported format 'html'. Use one of: json, csv"


@pytest.mark.asyncio
async def test_assignee_delete_of_shared_task_keeps_it_for_others(state: AppState) -> None:
    await run(state, "/task-assign Rotate keys users=@alice:test,@bob:test", ADMIN)

    reply = await run(state, "/task-delete 1")
    assert reply == "Removed Rotate keys from your tasks (still assigned to @bob:test)"
    assert await run(state, "/task-list") == "No tasks found."

    listing = await run(state, "/task-list", "@bob:test")
    assert "1. Rotate keys" in listing
    assert "Last log: Removed by alice" in listing

    assert await run(state, "/task-delete 1", "@bob:test") == "Deleted task: Rotate keys"
    assert state.task_store.count() == 0


@pytest.mark.asyncio
async def test_search_results_show_ids_not_indexes(state: AppState) -> None:
    await run(state, "/task-create Alpha")
    await run(state, "/task-create Buy milk")
    milk = state.task_store.list_for(ALICE, privileged=False)[1].task

    reply = await run(state, "/task-search milk")
    assert "id=<id>" in reply
    assert f"- Buy milk [id {milk.id}]" in reply
    assert "1. " not in reply

    assert await run(state, f"/task-update id={milk.id} Done") == "Task Buy milk updated to Done"


@pytest.mark.asyncio
async def test_manager_remove_revokes_privilege(state: AppState) -> None:
    await run(state, "/manager-add @bob:test", ADMIN)
    assert await run(state, "/manager-remove @bob:test") == "Error: Only admins can do this."
    assert state.managers.is_manager("@bob:test")

    assert await run(state, "/manager-remove @bob:test", ADMIN) == "Removed managers: @bob:test"
    assert not state.managers.is_manager("@bob:test")
    assert await run(state, "/manager-remove @bob:test", ADMIN) == "None of those users are managers."
    assert await run(state, "/task-assign Ship users=@carol:test", "@bob:test") == (
        "Error: Only admins/managers can do this."
    )


@pytest.mark.asyncio
async def test_set_retention(state: AppState) -> None:
    assert await run(state, "/set-retention 3") == "Error: Only admins can do this."
    assert (await run(state, "/set-retention", ADMIN)).startswith("Backups kept per file: 5.")

    assert await run(state, "/set-retention 3", ADMIN) == "Keeping the 3 most recent backups of each file."
    assert state.config.backup_retention == 3
    assert state.task_store.state_file.policy.retention == 3

    for bad in ("0", "many", "-2"):
        assert await run(state, f"/set-retention {bad}", ADMIN) == "Retention must be a whole number of at least 1."
    assert state.config.backup_retention == 3

    for i in range(5):
        await run(state, f"/task-create t{i}")
    assert len(state.task_store.state_file.list_backups()) == 3

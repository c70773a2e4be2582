# src/taskdesk/cli/commands.py

from __future__ import annotations

import logging
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ..core.state import AppState
from ..errors import Forbidden, NotFound, TaskDeskError
from ..tasks.export import EXPORT_FORMATS, export_tasks
from ..tasks.task_models import TaskSelector, TaskView
from ..tasks.timeparse import format_due, parse_due

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandContext:
    state: AppState
    user_id: str
    display_name: str
    room_id: str | None = None

    @property
    def privileged(self) -> bool:
        return self.state.access.is_privileged(self.user_id)

    @property
    def admin(self) -> bool:
        return self.state.access.is_admin(self.user_id)


@dataclass(slots=True)
class CommandArgs:
    """`key=value` tokens become options, everything else stays positional."""

    positional: list[str] = field(default_factory=list)
    options: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, tokens: list[str]) -> CommandArgs:
        out = cls()
        for tok in tokens:
            key, sep, value = tok.partition("=")
            if sep and key and key.replace("-", "_").isidentifier():
                out.options[key.lower().replace("-", "_")] = value
            else:
                out.positional.append(tok)
        return out

    def opt(self, name: str) -> str | None:
        v = self.options.get(name)
        return v.strip() if v is not None and v.strip() else None

    def words(self) -> list[str]:
        """Positional tokens that are not user mentions."""
        return [p for p in self.positional if not p.startswith("@")]

    def mentions(self, option: str = "users") -> list[str]:
        ids = [p for p in self.positional if p.startswith("@")]
        raw = self.opt(option)
        if raw:
            ids.extend(raw.replace(",", " ").split())
        return list(dict.fromkeys(ids))


CommandHandler = Callable[[CommandContext, CommandArgs], Awaitable[str]]


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /task-list, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, tuple[str, str]] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        role: str = "user",
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = (help_text, role)
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        user_id: str,
        display_name: str | None = None,
        room_id: str | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
            return "Could not parse the command (unbalanced quotes?)."
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        ctx = CommandContext(state=state, user_id=user_id, display_name=display_name or user_id, room_id=room_id)
        try:
            return await handler(ctx, CommandArgs.parse(parts[1:]))
        except TaskDeskError as e:
            logger.info("/%s rejected for %s: %s", name, user_id, e)
            return f"Error: {e}"

    def build_help(self, *, admin: bool, privileged: bool) -> str:
        lines = ["Available commands:"]
        for name, (help_text, role) in self._help.items():
            if role == "admin" and not admin:
                continue
            if role == "manager" and not privileged:
                continue
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _require_admin(ctx: CommandContext) -> None:
    if not ctx.admin:
        raise Forbidden("Only admins can do this.")


def _require_privileged(ctx: CommandContext) -> None:
    if not ctx.privileged:
        raise Forbidden("Only admins/managers can do this.")


def _selector(args: CommandArgs) -> tuple[TaskSelector, list[str]]:
    """Return the selector and the positional tokens left after it."""
    rest = list(args.positional)
    raw_id = args.opt("id")
    raw_index = args.opt("index")
    if raw_index is None and raw_id is None and rest and rest[0].isdigit():
        raw_index = rest.pop(0)
    try:
        if raw_id is not None:
            return TaskSelector.by_id(int(raw_id)), rest
        if raw_index is not None:
            return TaskSelector.by_index(int(raw_index)), rest
    except ValueError:
        raise NotFound("Task id/index must be a number") from None
    raise NotFound("Give a task index (see /task-list) or id=<task id>")


def _task_id(args: CommandArgs) -> int:
    raw = args.opt("id") or next((p for p in args.positional if p.isdigit()), None)
    if raw is None:
        raise NotFound("id=<task id> is required")
    try:
        return int(raw)
    except ValueError:
        raise NotFound("Task id must be a number") from None


def _render_list(views: list[TaskView], *, numbered: bool = True) -> str:
    """Numbers match the indexes /task-update and /task-delete accept; unnumbered lists show ids only."""
    lines = []
    for i, v in enumerate(views, start=1):
        t = v.task
        head = f"{i}. {t.title} [id {t.id}]" if numbered else f"- {t.title} [id {t.id}]"
        lines.append(
            f"{head}\n"
            f"   Status: {t.status.value}\n"
            f"   Due: {format_due(t.due_at)}\n"
            f"   Dept: {t.department or 'None'}\n"
            f"   Assigned: {', '.join(t.assigned_to)}\n"
            f"   Last log: {t.last_action or 'No updates'}"
        )
    return "\n\n".join(lines)


async def cmd_help(ctx: CommandContext, args: CommandArgs) -> str:
    return registry.build_help(admin=ctx.admin, privileged=ctx.privileged)


async def cmd_task_create(ctx: CommandContext, args: CommandArgs) -> str:
    title = args.opt("title") or " ".join(args.positional).strip()
    if not title:
        return "Usage: /task-create <title> [description=...] [due=YYYY-MM-DD HH:MM|2h]"
    task = await ctx.state.task_store.create(
        creator_id=ctx.user_id,
        creator_name=ctx.display_name,
        title=title,
        description=args.opt("description"),
        due_at=parse_due(args.opt("due")),
    )
    return f"Task created for yourself: {task.title} (id {task.id}, due: {format_due(task.due_at)})"


async def cmd_task_list(ctx: CommandContext, args: CommandArgs) -> str:
    views = ctx.state.task_store.list_for(ctx.user_id, ctx.privileged)
    if not views:
        return "No tasks found."
    return "Tasks:\n" + _render_list(views)


async def cmd_task_search(ctx: CommandContext, args: CommandArgs) -> str:
    query = args.opt("query") or " ".join(args.positional).strip()
    if not query:
        return "Usage: /task-search <query>"
    hits = ctx.state.task_store.fuzzy_search(query, principal_id=ctx.user_id, privileged=ctx.privileged)
    if not hits:
        return f"No tasks match {query!r}."
    return (
        f"Search results for {query!r} (act on them with id=<id>):\n" + _render_list(hits, numbered=False)
    )


async def cmd_task_update(ctx: CommandContext, args: CommandArgs) -> str:
    selector, rest = _selector(args)
    status = args.opt("status") or " ".join(rest).strip()
    if not status:
        return "Usage: /task-update <index>|id=<id> <Pending|In Progress|Done|Blocked|Overdue>"
    task = await ctx.state.task_store.update_status(
        principal_id=ctx.user_id,
        actor_name=ctx.display_name,
        privileged=ctx.privileged,
        selector=selector,
        new_status=status,
    )
    return f"Task {task.title} updated to {task.status.value}"


async def cmd_task_delete(ctx: CommandContext, args: CommandArgs) -> str:
    selector, _ = _selector(args)
    store = ctx.state.task_store
    task = await store.delete(
        principal_id=ctx.user_id,
        actor_name=ctx.display_name,
        privileged=ctx.privileged,
        selector=selector,
    )
    if store.find_by_id(task.id) is not None:
        return f"Removed {task.title} from your tasks (still assigned to {', '.join(task.assigned_to)})"
    return f"Deleted task: {task.title}"


async def cmd_task_assign(ctx: CommandContext, args: CommandArgs) -> str:
    _require_privileged(ctx)
    title = args.opt("title") or " ".join(args.words()).strip()
    if not title:
        return "Usage: /task-assign <title> [description=] [due=] [department=] [users=@a,@b]"
    department = args.opt("department")
    task = await ctx.state.task_store.assign(
        actor_name=ctx.display_name,
        title=title,
        description=args.opt("description"),
        due_at=parse_due(args.opt("due")),
        department=department,
        user_ids=args.mentions(),
    )
    where = f" in {department}" if department else ""
    return f"Task {task.title} (id {task.id}) assigned to {', '.join(task.assigned_to)}{where}"


async def cmd_task_add_assignee(ctx: CommandContext, args: CommandArgs) -> str:
    _require_privileged(ctx)
    task_id = _task_id(args)
    added = await ctx.state.task_store.add_assignees(
        actor_name=ctx.display_name,
        task_id=task_id,
        user_ids=args.mentions(),
        department=args.opt("department"),
    )
    if not added:
        return f"Task {task_id}: everyone is already assigned."
    return f"Task {task_id}: added {', '.join(added)}"


async def cmd_task_remove_assignee(ctx: CommandContext, args: CommandArgs) -> str:
    _require_privileged(ctx)
    task_id = _task_id(args)
    users = args.mentions()
    if not users:
        return "Usage: /task-remove-assignee id=<id> users=@a,@b"
    removed = await ctx.state.task_store.remove_assignees(
        actor_name=ctx.display_name,
        task_id=task_id,
        user_ids=users,
    )
    if not removed:
        return f"Task {task_id}: none of those users were assigned."
    return f"Task {task_id}: removed {', '.join(removed)}"


async def cmd_department_add(ctx: CommandContext, args: CommandArgs) -> str:
    _require_admin(ctx)
    name = args.opt("name") or " ".join(args.words()).strip()
    if not name:
        return "Usage: /department-add <name> [members=@a,@b]"
    members = await ctx.state.departments.set_department(name, args.mentions("members"))
    return f"Department {name} saved with members: {', '.join(members) or 'none'}"


async def cmd_department_list(ctx: CommandContext, args: CommandArgs) -> str:
    departments = ctx.state.departments.snapshot()
    if not departments:
        return "No departments added."
    lines = [f"{name}: {', '.join(members) or 'No members'}" for name, members in departments.items()]
    return "Departments:\n" + "\n".join(lines)


def _department_and_member(args: CommandArgs) -> tuple[str, str] | None:
    name = args.opt("name") or next(iter(args.words()), None)
    member = args.opt("member") or next(iter(args.mentions("member")), None)
    if member is None and len(args.words()) >= 2:
        member = args.words()[1]
    if not name or not member:
        return None
    return name, member


async def cmd_department_add_member(ctx: CommandContext, args: CommandArgs) -> str:
    _require_admin(ctx)
    pair = _department_and_member(args)
    if pair is None:
        return "Usage: /department-add-member <name> <member>"
    name, member = pair
    if await ctx.state.departments.add_member(name, member):
        return f"Added {member} to {name}"
    return f"{member} is already in {name}"


async def cmd_department_remove_member(ctx: CommandContext, args: CommandArgs) -> str:
    _require_admin(ctx)
    pair = _department_and_member(args)
    if pair is None:
        return "Usage: /department-remove-member <name> <member>"
    name, member = pair
    if await ctx.state.departments.remove_member(name, member):
        return f"Removed {member} from {name}"
    return f"{member} is not in {name}"


async def cmd_manager_add(ctx: CommandContext, args: CommandArgs) -> str:
    _require_admin(ctx)
    users = args.mentions() or args.words()
    if not users:
        return "Usage: /manager-add @user [@user ...]"
    added = await ctx.state.managers.add(users)
    if not added:
        return "Those users are already managers."
    return f"Added managers: {', '.join(added)}"


async def cmd_manager_remove(ctx: CommandContext, args: CommandArgs) -> str:
    _require_admin(ctx)
    users = args.mentions() or args.words()
    if not users:
        return "Usage: /manager-remove @user [@user ...]"
    removed = await ctx.state.managers.remove(users)
    if not removed:
        return "None of those users are managers."
    return f"Removed managers: {', '.join(removed)}"


async def cmd_set_reminders(ctx: CommandContext, args: CommandArgs) -> str:
    _require_admin(ctx)
    raw = args.opt("windows") or " ".join(args.positional)
    windows = [w for w in raw.replace(",", " ").split() if w]
    if not windows:
        current = ", ".join(ctx.state.config.reminder_windows)
        return f"Reminder windows: {current}. Usage: /set-reminders 1d,2h,30m"
    saved = await ctx.state.config.set_reminders(windows)
    return f"Reminder windows set to: {', '.join(saved)}"


async def cmd_set_retention(ctx: CommandContext, args: CommandArgs) -> str:
    _require_admin(ctx)
    raw = args.opt("count") or next(iter(args.positional), None)
    if raw is None:
        return f"Backups kept per file: {ctx.state.config.backup_retention}. Usage: /set-retention <count>"
    if not raw.isdigit() or int(raw) < 1:
        return "Retention must be a whole number of at least 1."
    kept = await ctx.state.config.set_backup_retention(int(raw))
    return f"Keeping the {kept} most recent backups of each file."


async def cmd_export(ctx: CommandContext, args: CommandArgs) -> str:
    fmt = (args.opt("format") or next(iter(args.positional), "json")).lower()
    if fmt not in EXPORT_FORMATS:
        return f"Unsupported format {fmt!r}. Use one of: {', '.join(EXPORT_FORMATS)}"
    records = ctx.state.task_store.export_records(ctx.user_id, ctx.privileged)
    out_dir = getattr(ctx.state.settings, "export_dir", None) or "exports"
    path = export_tasks(records, fmt, out_dir)
    return f"Exported {len(records)} task(s) to {path}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("task-create", cmd_task_create, help_text="Create a personal task.")
registry.register("task-list", cmd_task_list, help_text="List tasks (managers see all).")
registry.register("task-search", cmd_task_search, help_text="Search tasks by title/description.")
registry.register("task-update", cmd_task_update, help_text="Update status: /task-update <index> <status>.")
registry.register("task-delete", cmd_task_delete, help_text="Delete a task: /task-delete <index>|id=<id>.")
registry.register(
    "task-assign", cmd_task_assign, help_text="Assign a task to users or a department.", role="manager"
)
registry.register(
    "task-add-assignee", cmd_task_add_assignee, help_text="Add users/department to a task.", role="manager"
)
registry.register(
    "task-remove-assignee", cmd_task_remove_assignee, help_text="Remove users from a task.", role="manager"
)
registry.register("department-add", cmd_department_add, help_text="Create/replace a department.", role="admin")
registry.register("department-list", cmd_department_list, help_text="List departments.")
registry.register(
    "department-add-member", cmd_department_add_member, help_text="Add a member to a department.", role="admin"
)
registry.register(
    "department-remove-member",
    cmd_department_remove_member,
    help_text="Remove a member from a department.",
    role="admin",
)
registry.register("manager-add", cmd_manager_add, help_text="Grant the manager role.", role="admin")
registry.register("manager-remove", cmd_manager_remove, help_text="Revoke the manager role.", role="admin")
registry.register("set-reminders", cmd_set_reminders, help_text="Set reminder windows: 1d,2h,30m.", role="admin")
registry.register(
    "set-retention", cmd_set_retention, help_text="Set how many backups to keep per file.", role="admin"
)
registry.register("export", cmd_export, help_text="Export tasks: /export json|csv.")

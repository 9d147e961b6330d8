# src/donow_sync/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, cast

from ..core.errors import DoNowSyncError, RecordNotFoundError
from ..core.state import AppState
from ..services.record_service import RecordService
from ..store.models import EntityType, LocalRecord, SyncOperation

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

_EDITABLE = {
    "title": str,
    "description": str,
    "due_date": str,
    "priority": str,
    "category": str,
    "category_id": int,
}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /sync, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            result = cast(CommandHandler3, handler)(state, args, emit)
        else:
            result = cast(CommandHandler2, handler)(state, args)

        if inspect.isawaitable(result):
            return await result
        return cast(str, result)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts_ms: int | None) -> str:
    if not ts_ms:
        return "-"
    return datetime.fromtimestamp(ts_ms / 1000).astimezone().strftime("%Y-%m-%d %H:%M")


def _service(state: AppState, args: list[str]) -> tuple[RecordService, list[str]]:
    """Leading 'events'/'event' switches a command to the event collection."""
    if args and args[0].lower() in ("event", "events"):
        return state.events, args[1:]
    return state.tasks, args


def _resolve(service: RecordService, ref: str) -> LocalRecord:
    """Find a record by full id or unique id prefix."""
    exact = service.get(ref)
    if exact is not None:
        return exact
    matches = [r for r in service.store.get_all() if r.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise RecordNotFoundError(ref, service.entity_type.value)
    raise ValueError(f"ambiguous id prefix {ref!r} ({len(matches)} matches)")


def _format_record(r: LocalRecord) -> str:
    mark = "x" if r.completed else " "
    server = r.server_id if r.server_id is not None else "-"
    when = f" due {r.due_date}" if r.due_date else ""
    return f"[{mark}] {r.id[:8]} {r.title}{when} ({r.sync_status.value}, server={server})"


def _format_op(op: SyncOperation) -> str:
    err = f" error={op.error}" if op.error else ""
    return (
        f"{op.id[:8]} {op.operation.value:<6} {op.entity_type.value:<5} {op.entity_id[:8]} "
        f"{op.status.value} retries={op.retry_count}{err}"
    )


# ---- handlers ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_add(state: AppState, args: list[str]) -> str:
    service, rest = _service(state, args)
    text = " ".join(rest).strip()
    if not text:
        return "Usage: /add [events] <text>"
    record = service.create_from_text(text)
    return f"Created {service.entity_type.value} {record.id[:8]}: {record.title}"


def cmd_list(state: AppState, args: list[str]) -> str:
    service, _ = _service(state, args)
    records = service.list()
    if not records:
        return f"No {service.entity_type.resource}."
    return "\n".join(_format_record(r) for r in records)


def cmd_show(state: AppState, args: list[str]) -> str:
    service, rest = _service(state, args)
    if not rest:
        return "Usage: /show [events] <id>"
    r = _resolve(service, rest[0])
    lines = [
        f"id:          {r.id}",
        f"title:       {r.title}",
        f"description: {r.description or '-'}",
        f"due:         {r.due_date or '-'}",
        f"priority:    {r.priority or '-'}",
        f"completed:   {'yes' if r.completed else 'no'}",
        f"sync:        {r.sync_status.value} (server id {r.server_id if r.server_id is not None else '-'})",
        f"created:     {_fmt_ts(r.created_at)}",
        f"updated:     {_fmt_ts(r.updated_at)}",
        f"last synced: {_fmt_ts(r.last_synced_at)}",
    ]
    if r.deleted:
        lines.append(f"deleted:     {_fmt_ts(r.deleted_at)}")
    return "\n".join(lines)


def cmd_edit(state: AppState, args: list[str]) -> str:
    service, rest = _service(state, args)
    if len(rest) < 2:
        return "Usage: /edit [events] <id> field=value ... (fields: " + ", ".join(_EDITABLE) + ")"
    record = _resolve(service, rest[0])

    fields: dict[str, Any] = {}
    for pair in rest[1:]:
        name, sep, value = pair.partition("=")
        if not sep or name not in _EDITABLE:
            return f"Cannot edit {pair!r}. Editable fields: {', '.join(_EDITABLE)}"
        try:
            fields[name] = _EDITABLE[name](value.replace("_", " ") if name == "title" else value)
        except ValueError:
            return f"Invalid value for {name}: {value!r}"

    updated = service.update(record.id, fields)
    return f"Updated {updated.id[:8]}: {updated.title}"


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <id>"
    record = _resolve(state.tasks, args[0])
    state.tasks.complete(record.id)
    return f"Completed {record.id[:8]}: {record.title}"


def cmd_rm(state: AppState, args: list[str]) -> str:
    service, rest = _service(state, args)
    if not rest:
        return "Usage: /rm [events] <id>"
    record = _resolve(service, rest[0])
    service.delete(record.id)
    return f"Deleted {record.id[:8]}: {record.title}"


async def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit is not None:
        emit("Syncing...")
    result = await state.engine.sync_all()
    return f"Sync: {result.success} success, {result.failed} failed, {result.total} total"


async def cmd_status(state: AppState, args: list[str]) -> str:
    report = await state.engine.status()
    tasks = state.tasks.store.stats()
    events = state.events.store.stats()
    auto = f"every {state.scheduler.interval_ms}ms" if state.scheduler.auto_sync_active else "off"
    return (
        "Status:\n"
        f"  network:     {'online' if report.is_online else 'offline'}\n"
        f"  logged in:   {'yes' if state.credentials.get_token() else 'no'}\n"
        f"  pending ops: {report.pending_operations}\n"
        f"  failed ops:  {report.failed_operations}\n"
        f"  last sync:   {report.last_sync_time_formatted}\n"
        f"  auto sync:   {auto}\n"
        f"  tasks:       {tasks.active} active, {tasks.deleted} deleted\n"
        f"  events:      {events.active} active, {events.deleted} deleted"
    )


def cmd_queue(state: AppState, args: list[str]) -> str:
    ops = state.queue.get_all()
    if not ops:
        return "Sync queue is empty."
    return "\n".join(_format_op(op) for op in ops)


def cmd_clear_queue(state: AppState, args: list[str]) -> str:
    state.queue.clear()
    return "Sync queue cleared."


async def cmd_pull(state: AppState, args: list[str]) -> str:
    entity = EntityType.EVENT if args and args[0].lower() in ("event", "events") else EntityType.TASK
    items = await state.engine.pull(entity)
    return f"Server has {len(items)} {entity.resource}."


def cmd_login(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /login <token>"
    state.credentials.set_token(args[0])
    state.engine.trigger()
    return "Token saved. Syncing in the background."


def cmd_logout(state: AppState, args: list[str]) -> str:
    state.credentials.clear_token()
    return "Token removed. Changes stay queued until you log in again."


def register_default_commands() -> None:
    registry.register("help", cmd_help, "Show this help.", aliases=["h", "?"])
    registry.register("add", cmd_add, "Create a task (or '/add events ...' for an event).", aliases=["new"])
    registry.register("list", cmd_list, "List tasks (or '/list events').", aliases=["ls"])
    registry.register("show", cmd_show, "Show one record by id or id prefix.")
    registry.register("edit", cmd_edit, "Edit fields: /edit <id> title=New_title priority=HIGH.")
    registry.register("done", cmd_done, "Mark a task completed.")
    registry.register("rm", cmd_rm, "Delete a record (soft delete, synced later).", aliases=["delete"])
    registry.register("sync", cmd_sync, "Push queued changes to the server now.")
    registry.register("status", cmd_status, "Network, queue and last-sync status.")
    registry.register("queue", cmd_queue, "Show queued sync operations.")
    registry.register("clear-queue", cmd_clear_queue, "Drop every queued sync operation.")
    registry.register("pull", cmd_pull, "Count records on the server (no merge).")
    registry.register("login", cmd_login, "Store the API bearer token.")
    registry.register("logout", cmd_logout, "Forget the API bearer token.")


register_default_commands()


def describe_error(exc: Exception) -> str:
    """Short user-facing text for errors raised by command handlers."""
    if isinstance(exc, RecordNotFoundError):
        return f"Not found: {exc.record_id}"
    if isinstance(exc, (ValueError, DoNowSyncError)):
        return str(exc)
    return "Internal error while handling a command."

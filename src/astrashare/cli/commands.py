# src/astrashare/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..core.state import AppState
from ..scan.scan_models import ScanState
from ..tasks.task_api import (
    delete_task,
    load_history,
    refresh_selected,
    select_task,
    submit_analysis,
)
from ..tasks.task_detail import TaskDetail
from ..tasks.task_models import Task

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)

RESULT_PREVIEW_CHARS = 1500


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /analyze, ...)."""

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

        return await handler(state, args, emit)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _fmt_task(task: Task) -> str:
    label = f"{task.subject_code} {task.subject_name}".strip()
    line = f"{task.id}  {task.status.value:<9}  {label}  created {_fmt_ts(task.created_at)}"
    if task.completed_at is not None:
        line += f"  finished {_fmt_ts(task.completed_at)}"
    if task.error_message:
        line += f"  error: {task.error_message}"
    return line


def _fmt_detail(task: Task | None, detail: TaskDetail) -> str:
    lines = [_fmt_task(task) if task else f"Task {detail.task_id}"]
    if detail.progress:
        lines.append("Progress:")
        for p in detail.progress:
            tag = f"[{p.agent_tag}] " if p.agent_tag else ""
            lines.append(f"  {_fmt_ts(p.timestamp)} {tag}{p.message}")
    if detail.result:
        text = detail.result
        if len(text) > RESULT_PREVIEW_CHARS:
            text = text[:RESULT_PREVIEW_CHARS] + f"\n... ({len(detail.result)} chars total)"
        lines.append("Report:")
        lines.append(text)
    return "\n".join(lines)


def _resolve_task_id(state: AppState, raw: str) -> str:
    """Accept a full id or a unique prefix."""
    if raw in state.registry:
        return raw
    hits = [t.id for t in state.registry.list_all() if t.id.startswith(raw)]
    if len(hits) == 1:
        return hits[0]
    if not hits:
        raise KeyError(f"No task matches {raw!r}")
    raise KeyError(f"Ambiguous task id {raw!r} ({len(hits)} matches)")


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_analyze(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /analyze <stock code>"
    task = await submit_analysis(state, args[0])
    return f"Submitted {task.subject_code} {task.subject_name}".rstrip() + f" -> task {task.id}"


async def cmd_tasks(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    tasks = state.registry.list_all()
    if not tasks:
        return "No tasks."
    poller = "active" if state.poller.is_active else "idle"
    lines = [f"Tasks ({len(tasks)}, poller {poller}):"]
    lines.extend(f"  {_fmt_task(t)}" for t in tasks)
    return "\n".join(lines)


async def cmd_history(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /history           -> reload all tasks from the server
    /history completed -> reload only tasks with that status
    """
    status = args[0].lower() if args else None
    await load_history(state, status=status)
    return await cmd_tasks(state, [], emit)


async def cmd_open(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /open <task id>"
    task_id = _resolve_task_id(state, args[0])
    detail = await select_task(state, task_id)
    return _fmt_detail(state.registry.get(task_id), detail)


async def cmd_refresh(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    detail = await refresh_selected(state)
    if detail is None:
        return "No task is open. Use /open <task id>."
    return _fmt_detail(state.registry.get(detail.task_id), detail)


async def cmd_close(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.refresher.clear_selection()
    return "Detail view closed."


async def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /delete <task id>"
    task_id = _resolve_task_id(state, args[0])
    await delete_task(state, task_id)
    return f"Deleted task {task_id}."


async def cmd_patterns(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    patterns = await state.scan.load_patterns()
    if not patterns:
        return "No scan patterns available."
    lines = ["Scan patterns:"]
    for p in patterns:
        mark = "*" if p.name == state.scan.pattern_id else " "
        desc = f" - {p.description}" if p.description else ""
        lines.append(f" {mark} {p.name} ({p.display_name}){desc}")
    return "\n".join(lines)


def _fmt_scan(state: AppState) -> str:
    scan = state.scan
    lines = [f"Scan {scan.state.value} pattern={scan.pattern_id or '-'} progress={scan.progress}"]
    if scan.error:
        lines.append(f"  error: {scan.error}")
    for m in scan.matches:
        lines.append(f"  {m.code} {m.name}  base {m.base_date} -> signal {m.signal_date}")
    return "\n".join(lines)


async def cmd_scan(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if args:
        state.scan.select_pattern(args[0])
    runner = state.scan.start()

    def _done(_task: object) -> None:
        if emit is not None and state.scan.state != ScanState.CANCELLED:
            emit(_fmt_scan(state))

    runner.add_done_callback(_done)
    return f"Scan started (pattern {state.scan.pattern_id}). Use /scanstatus or /stop."


async def cmd_stop(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not state.scan.stop():
        return "No scan is running."
    await state.scan.wait()
    return f"Scan stopped at {state.scan.progress} with {len(state.scan.matches)} matches."


async def cmd_scanstatus(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _fmt_scan(state)




def _fmt_live(state: AppState, *, with_report: bool = True) -> str:
    live = state.live
    lines = [f"Live analysis {live.state.value} code={live.subject_code or '-'} steps={len(live.progress)}"]
    for agent in live.agents:
        note = f": {agent.message}" if agent.message else ""
        lines.append(f"  {agent.label:<20} {agent.state.value}{note}")
    if live.error:
        lines.append(f"  error: {live.error}")
    if with_report and live.report:
        text = live.report
        if len(text) > RESULT_PREVIEW_CHARS:
            text = text[:RESULT_PREVIEW_CHARS] + f"\n... ({len(live.report)} chars total)"
        lines.append("Report:")
        lines.append(text)
    return "\n".join(lines)


async def cmd_live(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /live <code> -> run an analysis in the foreground and stream its progress
    """
    if not args:
        return "Usage: /live <stock code>"
    runner = state.live.start(args[0])

    def _done(_task: object) -> None:
        if emit is not None and state.live.state != ScanState.CANCELLED:
            emit(_fmt_live(state))

    runner.add_done_callback(_done)
    return f"Live analysis of {state.live.subject_code} started. Use /livestatus or /livestop."


async def cmd_livestatus(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _fmt_live(state, with_report=False)


async def cmd_livestop(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not state.live.stop():
        return "No live analysis is running."
    await state.live.wait()
    return f"Live analysis stopped after {len(state.live.progress)} steps."


async def cmd_notify(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /notify     -> show permission
    /notify on  -> ask for permission (explicit user request)
    """
    if args and args[0].lower() in ("on", "1", "true", "yes"):
        permission = await state.gate.request_permission()
        return f"Notifications: {permission.value}"
    return f"Notifications: {state.gate.permission.value}. Use /notify on to enable."


async def cmd_health(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    data = await state.api.health()
    return "Backend health: " + ", ".join(f"{k}={v}" for k, v in data.items())


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("analyze", cmd_analyze, help_text="Submit an analysis: /analyze 600519.", aliases=["a"])
registry.register("tasks", cmd_tasks, help_text="List tracked tasks (newest first).", aliases=["ls"])
registry.register("history", cmd_history, help_text="Reload tasks from the server: /history [status].")
registry.register("open", cmd_open, help_text="Open a task's progress/report: /open <id>.")
registry.register("refresh", cmd_refresh, help_text="Re-fetch the open task.")
registry.register("close", cmd_close, help_text="Close the detail view.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("patterns", cmd_patterns, help_text="List scan patterns.")
registry.register("scan", cmd_scan, help_text="Start a market scan: /scan [pattern].")
registry.register("stop", cmd_stop, help_text="Stop the running scan.")
registry.register("scanstatus", cmd_scanstatus, help_text="Show scan progress and matches.", aliases=["ss"])
registry.register("live", cmd_live, help_text="Run an analysis in the foreground: /live 600519.")
registry.register("livestatus", cmd_livestatus, help_text="Show live analysis progress.", aliases=["lv"])
registry.register("livestop", cmd_livestop, help_text="Stop the live analysis.")
registry.register("notify", cmd_notify, help_text="Completion notifications: /notify | /notify on.")
registry.register("health", cmd_health, help_text="Check the backend.")

# src/astrashare/tasks/task_api.py

from __future__ import annotations

import logging
import time
import uuid

from ..backend.errors import AuthenticationError
from ..core.state import AppState
from .task_detail import TaskDetail
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)


async def submit_analysis(state: AppState, subject_code: str) -> Task:
    """
    Submit an analysis job for `subject_code` and start tracking it.

    A provisional task is shown immediately; once the server confirms, it is
    swapped for the task carrying the canonical id. Any rejection (no points,
    not signed in, backend down) removes the provisional row and propagates.
    """
    code = (subject_code or "").strip()
    if not code:
        raise ValueError("subject code is required")

    created_at = time.time()
    local_id = f"local-{uuid.uuid4().hex}"
    state.registry.upsert(
        local_id,
        subject_code=code,
        status=TaskStatus.PENDING,
        created_at=created_at,
        provisional=True,
    )

    try:
        submitted = await state.api.submit(code)
    finally:
        state.registry.remove(local_id)

    task = state.registry.upsert(
        submitted.task_id,
        subject_code=submitted.subject_code or code,
        subject_name=submitted.subject_name,
        status=TaskStatus.PENDING,
        created_at=created_at,
        provisional=False,
    )
    state.poller.ensure_running()
    logger.info("Tracking task_id=%s code=%s", task.id, task.subject_code)
    return task


async def delete_task(state: AppState, task_id: str) -> None:
    """Delete on the server, then locally; errors propagate and keep the task."""
    await state.api.delete(task_id)
    state.registry.remove(task_id)
    if state.refresher.selected_id == task_id:
        state.refresher.clear_selection()


async def load_history(state: AppState, *, status: str | None = None) -> list[Task]:
    """
    Replace the registry with the server's task list.

    Unauthorized -> the registry is cleared (the user must sign in again).
    Other failures propagate to the caller.
    """
    limit = int(getattr(state.settings, "history_limit", 20))
    try:
        tasks = await state.api.history(limit=limit, status=status)
    except AuthenticationError:
        logger.warning("History unauthorized; clearing task list")
        state.registry.clear()
        state.refresher.clear_selection()
        return []

    state.registry.replace_all(tasks)
    selected = state.refresher.selected_id
    if selected is not None and selected not in state.registry:
        state.refresher.clear_selection()

    if state.registry.list_non_terminal():
        state.poller.ensure_running()
    logger.info("History loaded: %d tasks", len(tasks))
    return state.registry.list_all()


async def select_task(state: AppState, task_id: str) -> TaskDetail:
    """Open a task in the detail view and fetch its progress/report."""
    if task_id not in state.registry:
        raise KeyError(task_id)
    state.refresher.select(task_id)
    await state.refresher.refresh(task_id)
    return state.refresher.detail or TaskDetail(task_id=task_id)


async def refresh_selected(state: AppState) -> TaskDetail | None:
    task_id = state.refresher.selected_id
    if task_id is None:
        return None
    await state.refresher.refresh(task_id)
    return state.refresher.detail

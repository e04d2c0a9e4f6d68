# src/astrashare/tasks/task_poller.py

from __future__ import annotations

"""
Task status poller.

A small self-terminating polling loop that, every interval_seconds:
- looks at the non-terminal tasks in the registry (none left -> the loop ends),
- fetches the status of all of them concurrently,
- applies the responses to the registry,
- on a transition into completed/failed asks the notification gate to alert and,
  if that task is open in the detail view, pulls the final report.

Two states: idle (no loop task) and active (one loop task). ensure_running() is a
guarded start, so at most one loop exists however often it is triggered.
"""

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from ..backend.errors import AuthenticationError
from ..core.ports import AnalysisBackend
from .task_models import StatusSnapshot, Task
from .task_registry import TaskRegistry

if TYPE_CHECKING:
    from ..notify.gate import NotificationGate
    from .task_detail import TaskDetailRefresher

logger = logging.getLogger(__name__)


class TaskPoller:
    def __init__(
        self,
        api: AnalysisBackend,
        registry: TaskRegistry,
        *,
        gate: NotificationGate | None = None,
        refresher: TaskDetailRefresher | None = None,
        interval_seconds: float = 3.0,
    ) -> None:
        self._api = api
        self._registry = registry
        self._gate = gate
        self._refresher = refresher
        self._interval = max(0.01, float(interval_seconds))
        self._runner: asyncio.Task[None] | None = None

    @property
    def is_active(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def ensure_running(self) -> bool:
        """Start the loop unless one is already active. Returns True if started."""
        if self.is_active:
            return False
        self._runner = asyncio.get_running_loop().create_task(self._run(), name="task-poller")
        logger.debug("Poller active (interval=%.2fs)", self._interval)
        return True

    async def stop(self) -> None:
        """Teardown hook; the loop normally ends on its own."""
        runner = self._runner
        if runner is None or runner.done():
            return
        runner.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await runner

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                if not await self.tick():
                    break
        finally:
            logger.debug("Poller idle")

    async def _fetch(self, task: Task, seq: int) -> tuple[Task, int, StatusSnapshot | BaseException]:
        try:
            return task, seq, await self._api.status(task.id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return task, seq, e

    async def tick(self) -> bool:
        """
        One polling round. Returns False when nothing is left to poll (go idle).

        A failed fetch is logged and skipped for this round only.
        """
        non_terminal = self._registry.list_non_terminal()
        if not non_terminal:
            return False

        # Optimistic inserts have no server id yet.
        due = [t for t in non_terminal if not t.provisional]
        if not due:
            return True

        results = await asyncio.gather(
            *(self._fetch(t, self._registry.next_sequence()) for t in due)
        )

        to_refresh: list[str] = []
        for task, seq, outcome in results:
            if isinstance(outcome, AuthenticationError):
                logger.warning("Status poll unauthorized; clearing task list")
                self._registry.clear()
                if self._refresher is not None:
                    self._refresher.clear_selection()
                return False
            if isinstance(outcome, BaseException):
                logger.warning("Status poll failed task_id=%s: %s", task.id, outcome)
                continue

            applied = self._registry.apply_status(task.id, outcome, seq=seq)
            if applied is None:
                continue
            previous, updated = applied
            if updated.is_terminal and not previous.is_terminal:
                logger.info("Task %s -> %s", updated.id, updated.status.value)
                self._on_terminal(updated)
                if self._refresher is not None and self._refresher.selected_id == updated.id:
                    to_refresh.append(updated.id)

        for task_id in to_refresh:
            try:
                await self._refresher.refresh(task_id)  # type: ignore[union-attr]
            except Exception:
                logger.exception("Detail refresh after completion failed task_id=%s", task_id)

        return True

    def _on_terminal(self, task: Task) -> None:
        if self._gate is None:
            return
        try:
            self._gate.maybe_notify(task)
        except Exception:
            logger.exception("Notification gate failed task_id=%s", task.id)

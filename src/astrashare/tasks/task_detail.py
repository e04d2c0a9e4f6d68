# src/astrashare/tasks/task_detail.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from ..backend.errors import AuthenticationError, BackendError
from ..core.ports import AnalysisBackend
from .task_models import ProgressEntry, TaskStatus
from .task_registry import TaskRegistry

if TYPE_CHECKING:
    from ..notify.gate import NotificationGate

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TaskDetail:
    """Projection for the task currently open in the detail view."""

    task_id: str
    progress: tuple[ProgressEntry, ...] = ()
    result: str | None = None
    updated_at: float = field(default_factory=time.time)


class TaskDetailRefresher:
    """
    On-demand deep fetch (progress log + final report) for the selected task.

    refresh() always fetches status first and asks for the result only when
    the task is known to be `completed`, by that response or by a newer poll
    already in the registry (the report can be large).

    Responses are written to the projection only if their task is still the
    selected one when they arrive. A status response that lost the race to a
    newer poll still updates the progress log, unless a newer refresh already did.
    """

    def __init__(
        self,
        api: AnalysisBackend,
        registry: TaskRegistry,
        gate: NotificationGate | None = None,
    ) -> None:
        self._api = api
        self._registry = registry
        self._gate = gate
        self._selected_id: str | None = None
        self._detail: TaskDetail | None = None
        self._progress_seq = 0

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def detail(self) -> TaskDetail | None:
        return self._detail

    def select(self, task_id: str) -> TaskDetail:
        if task_id != self._selected_id or self._detail is None:
            self._selected_id = task_id
            self._detail = TaskDetail(task_id=task_id)
            self._progress_seq = 0
        return self._detail

    def clear_selection(self) -> None:
        self._selected_id = None
        self._detail = None
        self._progress_seq = 0

    def _write(self, task_id: str, *, seq: int | None = None, **changes: object) -> bool:
        """
        Update the projection if `task_id` is still selected.

        With `seq`, a progress list fetched before the one already shown is dropped.
        """
        if self._selected_id != task_id or self._detail is None:
            logger.debug("Detail response for task_id=%s dropped (selection changed)", task_id)
            return False
        if seq is not None:
            if seq < self._progress_seq:
                logger.debug("Detail response for task_id=%s dropped (older than shown)", task_id)
                return False
            self._progress_seq = seq
        self._detail = replace(self._detail, updated_at=time.time(), **changes)
        return True

    async def refresh(self, task_id: str) -> None:
        seq = self._registry.next_sequence()
        try:
            snapshot = await self._api.status(task_id)
        except AuthenticationError:
            logger.warning("Status fetch unauthorized task_id=%s; clearing task list", task_id)
            self._registry.clear()
            self.clear_selection()
            return
        except BackendError as e:
            logger.warning("Status fetch failed task_id=%s: %s", task_id, e)
            return

        # A poll issued after this fetch may already have moved the registry on;
        # the sequence guard covers the registry and its notification only.
        applied = self._registry.apply_status(task_id, snapshot, seq=seq)
        if applied is not None:
            previous, task = applied
            if self._gate is not None and task.is_terminal and not previous.is_terminal:
                self._gate.maybe_notify(task)

        # The server list is authoritative and may have evicted old entries.
        self._write(task_id, seq=seq, progress=tuple(snapshot.progress))

        current = self._registry.get(task_id)
        completed = snapshot.status == TaskStatus.COMPLETED or (
            current is not None and current.status == TaskStatus.COMPLETED
        )
        if not completed:
            return

        try:
            result = await self._api.result(task_id)
        except BackendError as e:
            logger.warning("Result fetch failed task_id=%s: %s", task_id, e)
            return
        # A completed report never changes, so any fetch of it may be shown.
        self._write(task_id, result=result.result)
        logger.debug("Detail result loaded task_id=%s chars=%s", task_id, len(result.result or ""))

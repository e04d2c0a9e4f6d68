# src/astrashare/tasks/task_registry.py

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import replace

from .task_models import StatusSnapshot, Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    In-memory authoritative list of known analysis tasks, keyed by task id.

    Single source of truth for the UI and for the poller.

    Concurrency:
    - all methods are synchronous and must be called from the event loop thread;
      an update never spans an await, so a reader never sees a half-updated task
    - Task objects are frozen; an update swaps the whole object for the id
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._seq = itertools.count(1)
        self._applied_seq: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    # ---- reads ----

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def list_all(self) -> list[Task]:
        """Most recently created first."""
        return sorted(self._tasks.values(), key=lambda t: t.created_at, reverse=True)

    def list_non_terminal(self) -> list[Task]:
        return [t for t in self.list_all() if not t.is_terminal]

    # ---- writes ----

    def upsert(
        self,
        task_id: str,
        *,
        subject_code: str | None = None,
        subject_name: str | None = None,
        status: TaskStatus | None = None,
        created_at: float | None = None,
        completed_at: float | None = None,
        error_message: str | None = None,
        provisional: bool | None = None,
    ) -> Task:
        """
        Insert the task if absent, otherwise replace only the supplied fields.

        None means "not supplied": the existing value is kept.
        """
        if not task_id:
            raise ValueError("task_id is required")

        current = self._tasks.get(task_id)
        if current is None:
            task = Task(
                id=task_id,
                subject_code=subject_code or "",
                subject_name=subject_name or "",
                status=status or TaskStatus.PENDING,
                created_at=created_at if created_at is not None else time.time(),
                completed_at=completed_at,
                error_message=error_message,
                provisional=bool(provisional),
            )
            logger.debug("Task inserted id=%s code=%s status=%s", task_id, task.subject_code, task.status)
        else:
            changes: dict[str, object] = {}
            if subject_code is not None:
                changes["subject_code"] = subject_code
            # An empty name never overwrites a name the server already populated.
            if subject_name:
                changes["subject_name"] = subject_name
            if status is not None:
                changes["status"] = status
            if created_at is not None:
                changes["created_at"] = created_at
            if completed_at is not None:
                changes["completed_at"] = completed_at
            if error_message is not None:
                changes["error_message"] = error_message
            if provisional is not None:
                changes["provisional"] = provisional
            if not changes:
                return current
            task = replace(current, **changes)

        self._tasks[task_id] = task
        return task

    def put(self, task: Task) -> Task:
        """Upsert from a complete Task (history rows)."""
        return self.upsert(
            task.id,
            subject_code=task.subject_code,
            subject_name=task.subject_name,
            status=task.status,
            created_at=task.created_at,
            completed_at=task.completed_at,
            error_message=task.error_message,
            provisional=task.provisional,
        )

    def next_sequence(self) -> int:
        """Stamp for a status fetch, taken when the request is issued."""
        return next(self._seq)

    def apply_status(
        self,
        task_id: str,
        snapshot: StatusSnapshot,
        *,
        seq: int | None = None,
    ) -> tuple[TaskStatus, Task] | None:
        """
        Apply a status response; return (previous_status, updated_task).

        Returns None when the task is gone (deleted meanwhile) or when a response
        issued later for the same task has already been applied.
        """
        current = self._tasks.get(task_id)
        if current is None:
            logger.debug("Status for unknown task_id=%s ignored", task_id)
            return None

        if seq is not None:
            last = self._applied_seq.get(task_id, 0)
            if seq < last:
                logger.info("Discarding out-of-order status task_id=%s seq=%s last=%s", task_id, seq, last)
                return None
            self._applied_seq[task_id] = seq

        previous = current.status
        updated = self.upsert(
            task_id,
            status=snapshot.status,
            completed_at=snapshot.completed_at if snapshot.status.is_terminal else None,
            error_message=snapshot.error_message if snapshot.status == TaskStatus.FAILED else None,
        )
        return previous, updated

    def remove(self, task_id: str) -> Task | None:
        self._applied_seq.pop(task_id, None)
        return self._tasks.pop(task_id, None)

    def replace_all(self, tasks: list[Task]) -> None:
        """Adopt a server listing wholesale; local provisional tasks survive."""
        keep = {tid: t for tid, t in self._tasks.items() if t.provisional}
        self._tasks = keep
        for t in tasks:
            self.put(t)
        self._applied_seq = {k: v for k, v in self._applied_seq.items() if k in self._tasks}

    def clear(self) -> None:
        self._tasks.clear()
        self._applied_seq.clear()

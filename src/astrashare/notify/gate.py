# src/astrashare/notify/gate.py

"""
Notification gate.

Decides whether a task's terminal transition deserves a one-time user alert.

Rules:
- permission must already be GRANTED (the gate never asks on the user's behalf)
- the task must be completed or failed
- the task id must not be in the notified set

The id is recorded in memory before the notifier is called, so a re-entrant call
for the same task cannot fire twice even if persistence has not happened yet.
Persistence is fire-and-forget; a failed write is logged and never affects the
in-memory decision.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable

from ..core.ports import KeyValueStore, NotificationPermission, Notifier
from ..tasks.task_models import Task, TaskStatus

logger = logging.getLogger(__name__)

NOTIFIED_KEY = "notified_tasks"
DEFAULT_CAP = 200


class NotifiedSet:
    """Insertion-ordered set of task ids, evicting the oldest past `cap`."""

    def __init__(self, ids: Iterable[str] = (), *, cap: int = DEFAULT_CAP) -> None:
        self._cap = max(1, int(cap))
        self._ids: dict[str, None] = {}
        for task_id in ids:
            self.add(task_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, task_id: str) -> None:
        self._ids.pop(task_id, None)
        self._ids[task_id] = None
        while len(self._ids) > self._cap:
            oldest = next(iter(self._ids))
            del self._ids[oldest]

    def to_list(self) -> list[str]:
        return list(self._ids)

    def dumps(self) -> str:
        return json.dumps(self.to_list(), ensure_ascii=False)

    @classmethod
    def loads(cls, raw: str | None, *, cap: int = DEFAULT_CAP) -> NotifiedSet:
        if not raw:
            return cls(cap=cap)
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Stored notified set is not valid JSON; starting empty")
            return cls(cap=cap)
        if not isinstance(data, list):
            return cls(cap=cap)
        # The stored list is oldest-first; keep only the newest `cap`.
        return cls((str(x) for x in data if x), cap=cap)


def _message_for(task: Task) -> tuple[str, str]:
    label = f"{task.subject_name} ({task.subject_code})" if task.subject_name else task.subject_code
    if task.status == TaskStatus.COMPLETED:
        return "Analysis complete", f"{label}: the report is ready."
    reason = task.error_message or "unknown error"
    return "Analysis failed", f"{label}: {reason}"


class NotificationGate:
    def __init__(
        self,
        notifier: Notifier,
        store: KeyValueStore,
        *,
        cap: int = DEFAULT_CAP,
    ) -> None:
        self._notifier = notifier
        self._store = store
        self._cap = cap
        self._notified = NotifiedSet(cap=cap)
        self._permission = NotificationPermission.DEFAULT
        self._pending: set[asyncio.Task[None]] = set()
        self._write_lock = asyncio.Lock()

    @property
    def permission(self) -> NotificationPermission:
        return self._permission

    @property
    def notified(self) -> NotifiedSet:
        return self._notified

    def load(self) -> None:
        """Startup: read the persisted set and query the permission once."""
        try:
            raw = self._store.get(NOTIFIED_KEY)
        except Exception:
            logger.exception("Failed to read notified set; starting empty")
            raw = None
        self._notified = NotifiedSet.loads(raw, cap=self._cap)
        self._permission = self._notifier.permission()
        logger.info(
            "NotificationGate ready permission=%s notified=%d",
            self._permission.value,
            len(self._notified),
        )

    async def request_permission(self) -> NotificationPermission:
        """Only call from an explicit user action."""
        self._permission = await self._notifier.request_permission()
        logger.info("Notification permission -> %s", self._permission.value)
        return self._permission

    def maybe_notify(self, task: Task) -> bool:
        """Fire at most once per task id; return True if a notification was shown."""
        if self._permission != NotificationPermission.GRANTED:
            return False
        if not task.status.is_terminal:
            return False
        if task.id in self._notified:
            return False

        self._notified.add(task.id)
        self._schedule_persist()

        title, body = _message_for(task)
        try:
            self._notifier.notify(title, body, tag=task.id)
        except Exception:
            logger.exception("Notifier failed task_id=%s", task.id)
        logger.info("Notified task_id=%s status=%s", task.id, task.status.value)
        return True

    # ---- persistence ----

    def _write(self, snapshot: str) -> None:
        self._store.set(NOTIFIED_KEY, snapshot)

    async def _persist(self) -> None:
        # Serialized; each write takes the newest snapshot so the last one wins.
        async with self._write_lock:
            await asyncio.to_thread(self._write, self._notified.dumps())

    def _schedule_persist(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            try:
                self._write(self._notified.dumps())
            except Exception:
                logger.exception("Failed to persist notified set")
            return

        job = loop.create_task(self._persist())
        self._pending.add(job)
        job.add_done_callback(self._on_persist_done)

    def _on_persist_done(self, job: asyncio.Task[None]) -> None:
        self._pending.discard(job)
        if job.cancelled():
            return
        exc = job.exception()
        if exc is not None:
            logger.error("Failed to persist notified set", exc_info=exc)

    async def flush(self) -> None:
        """Wait for in-flight writes (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

# tests/fakes.py

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from astrashare.core.ports import NotificationPermission
from astrashare.scan.scan_models import ScanPattern
from astrashare.tasks.task_models import StatusSnapshot, SubmittedTask, Task, TaskResult


class FakeBackend:
    """
    In-memory AnalysisBackend used by unit tests.

    - status(): returns (or raises) whatever `statuses[task_id]` held when
      the call was made, after `status_delay`
    - records every call and the peak number of concurrent status fetches
    - scan_run(): yields `scan_chunks`; if `scan_hold` is set, waits on it
      after the chunks so a test can observe a running session
    - analyze_stream(): same, with the analyze_* attributes
    """

    def __init__(self) -> None:
        self.statuses: dict[str, StatusSnapshot | BaseException] = {}
        self.results: dict[str, TaskResult] = {}
        self.status_calls: list[str] = []
        self.result_calls: list[str] = []
        self.status_delay = 0.01
        self.in_flight = 0
        self.max_in_flight = 0

        self.submit_response: SubmittedTask | None = None
        self.submit_error: BaseException | None = None
        self.submit_calls: list[str] = []

        self.history_tasks: list[Task] = []
        self.history_error: BaseException | None = None
        self.history_calls: list[dict[str, Any]] = []

        self.delete_error: BaseException | None = None
        self.delete_calls: list[str] = []

        self.patterns: list[ScanPattern] = []
        self.scan_chunks: list[bytes | str] = []
        self.scan_error: BaseException | None = None
        self.scan_hold: asyncio.Event | None = None
        self.scan_calls: list[str] = []
        self.scan_closed = False

        self.analyze_chunks: list[bytes | str] = []
        self.analyze_error: BaseException | None = None
        self.analyze_hold: asyncio.Event | None = None
        self.analyze_calls: list[str] = []
        self.analyze_closed = False

    async def submit(self, subject_code: str) -> SubmittedTask:
        self.submit_calls.append(subject_code)
        await asyncio.sleep(0)
        if self.submit_error is not None:
            raise self.submit_error
        assert self.submit_response is not None
        return self.submit_response

    async def status(self, task_id: str) -> StatusSnapshot:
        self.status_calls.append(task_id)
        # Answer with what the server held when the request was issued.
        outcome = self.statuses.get(task_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.status_delay)
        finally:
            self.in_flight -= 1
        if outcome is None:
            raise KeyError(task_id)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def result(self, task_id: str) -> TaskResult:
        self.result_calls.append(task_id)
        await asyncio.sleep(0)
        return self.results[task_id]

    async def history(self, *, limit: int = 20, status: str | None = None) -> list[Task]:
        self.history_calls.append({"limit": limit, "status": status})
        if self.history_error is not None:
            raise self.history_error
        return list(self.history_tasks)

    async def delete(self, task_id: str) -> None:
        self.delete_calls.append(task_id)
        if self.delete_error is not None:
            raise self.delete_error

    async def list_patterns(self) -> list[ScanPattern]:
        return list(self.patterns)

    async def scan_run(self, pattern_id: str) -> AsyncIterator[bytes | str]:
        self.scan_calls.append(pattern_id)
        try:
            for chunk in self.scan_chunks:
                await asyncio.sleep(0)
                yield chunk
            if self.scan_hold is not None:
                await self.scan_hold.wait()
            if self.scan_error is not None:
                raise self.scan_error
        finally:
            self.scan_closed = True

    async def analyze_stream(self, subject_code: str) -> AsyncIterator[bytes | str]:
        self.analyze_calls.append(subject_code)
        try:
            for chunk in self.analyze_chunks:
                await asyncio.sleep(0)
                yield chunk
            if self.analyze_hold is not None:
                await self.analyze_hold.wait()
            if self.analyze_error is not None:
                raise self.analyze_error
        finally:
            self.analyze_closed = True

    async def health(self) -> dict[str, Any]:
        return {"status": "ok"}


class MemoryKeyValueStore:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.writes = 0
        self.fail_writes = False

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.writes += 1
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


@dataclass(slots=True)
class ShownNotification:
    title: str
    body: str
    tag: str | None


@dataclass
class FakeNotifier:
    """Notifier with a fixed permission; records what was shown."""

    current: NotificationPermission = NotificationPermission.GRANTED
    grant_on_request: bool = True
    shown: list[ShownNotification] = field(default_factory=list)
    requests: int = 0

    def permission(self) -> NotificationPermission:
        return self.current

    async def request_permission(self) -> NotificationPermission:
        self.requests += 1
        self.current = (
            NotificationPermission.GRANTED if self.grant_on_request else NotificationPermission.DENIED
        )
        return self.current

    def notify(self, title: str, body: str, *, tag: str | None = None) -> None:
        self.shown.append(ShownNotification(title=title, body=body, tag=tag))

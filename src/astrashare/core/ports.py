# src/astrashare/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the backend transport, the notification surface and the durable
store swappable, and makes testing easier.
"""

from collections.abc import AsyncIterator
from enum import StrEnum
from typing import Any, Protocol

from ..scan.scan_models import ScanPattern
from ..tasks.task_models import StatusSnapshot, SubmittedTask, Task, TaskResult


class AnalysisBackend(Protocol):
    """The backend's task/status/result/stream contract."""

    async def submit(self, subject_code: str) -> SubmittedTask: ...
    async def status(self, task_id: str) -> StatusSnapshot: ...
    async def result(self, task_id: str) -> TaskResult: ...
    async def history(self, *, limit: int = 20, status: str | None = None) -> list[Task]: ...
    async def delete(self, task_id: str) -> None: ...
    async def list_patterns(self) -> list[ScanPattern]: ...
    def scan_run(self, pattern_id: str) -> AsyncIterator[bytes]: ...
    def analyze_stream(self, subject_code: str) -> AsyncIterator[bytes]: ...
    async def health(self) -> dict[str, Any]: ...


class NotificationPermission(StrEnum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"  # not yet requested
    UNSUPPORTED = "unsupported"


class Notifier(Protocol):
    """
    User-facing notification surface (desktop toast, console line, ...).

    request_permission() must only be called from an explicit user action.
    """

    def permission(self) -> NotificationPermission: ...
    async def request_permission(self) -> NotificationPermission: ...
    def notify(self, title: str, body: str, *, tag: str | None = None) -> None: ...


class KeyValueStore(Protocol):
    """Durable client-side key-value storage (survives restarts)."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...

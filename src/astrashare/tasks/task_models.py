# src/astrashare/tasks/task_models.py

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Analysis task lifecycle status.

    completed / failed are terminal: no further transitions are expected,
    but re-observing a terminal status must be harmless.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @classmethod
    def from_wire(cls, raw: Any) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(str(raw).strip().lower())
        except Exception:
            return cls.PENDING


def parse_timestamp(raw: Any) -> float | None:
    """Accept epoch seconds/milliseconds or ISO-8601 strings; return epoch seconds."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, (int, float)):
        ts = float(raw)
        # Millisecond epochs are > year 33658 in seconds.
        return ts / 1000.0 if ts > 1e12 else ts
    s = str(raw).strip()
    try:
        return parse_timestamp(float(s))
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    subject_code: str
    subject_name: str
    status: TaskStatus
    created_at: float
    completed_at: float | None = None
    error_message: str | None = None

    # Optimistic local insert waiting for the server's canonical id.
    provisional: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Task:
        """Build a Task from a history row."""
        task_id = str(data.get("task_id") or data.get("id") or "").strip()
        if not task_id:
            raise ValueError("task row without task_id")
        return cls(
            id=task_id,
            subject_code=str(data.get("stock_code") or ""),
            subject_name=str(data.get("stock_name") or ""),
            status=TaskStatus.from_wire(data.get("status")),
            created_at=parse_timestamp(data.get("created_at")) or time.time(),
            completed_at=parse_timestamp(data.get("completed_at")),
            error_message=data.get("error_message") or None,
        )


@dataclass(slots=True, frozen=True)
class ProgressEntry:
    message: str
    agent_tag: str | None = None
    timestamp: float | None = None

    @classmethod
    def from_wire(cls, data: Any) -> ProgressEntry:
        if not isinstance(data, dict):
            return cls(message=str(data))
        return cls(
            message=str(data.get("message") or ""),
            agent_tag=data.get("agent") or None,
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass(slots=True, frozen=True)
class StatusSnapshot:
    """One `status(taskId)` response."""

    status: TaskStatus
    completed_at: float | None = None
    error_message: str | None = None
    progress: list[ProgressEntry] = field(default_factory=list)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> StatusSnapshot:
        raw_progress = data.get("progress") or []
        if not isinstance(raw_progress, list):
            raw_progress = []
        return cls(
            status=TaskStatus.from_wire(data.get("status")),
            completed_at=parse_timestamp(data.get("completed_at")),
            error_message=data.get("error_message") or None,
            progress=[ProgressEntry.from_wire(p) for p in raw_progress],
        )


@dataclass(slots=True, frozen=True)
class TaskResult:
    status: TaskStatus
    result: str | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> TaskResult:
        raw = data.get("result")
        if raw is not None and not isinstance(raw, str):
            raw = str(raw)
        return cls(status=TaskStatus.from_wire(data.get("status")), result=raw)


@dataclass(slots=True, frozen=True)
class SubmittedTask:
    task_id: str
    subject_code: str
    subject_name: str = ""

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> SubmittedTask:
        task_id = str(data.get("task_id") or "").strip()
        if not task_id:
            raise ValueError("submit response without task_id")
        return cls(
            task_id=task_id,
            subject_code=str(data.get("stock_code") or ""),
            subject_name=str(data.get("stock_name") or ""),
        )

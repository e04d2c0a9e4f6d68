# src/astrashare/tasks/live_analysis.py

"""
Foreground (streaming) analysis.

The backend can also run an analysis inside one request and stream it back
instead of queueing a task. Frames, by "type":

    progress  {"message", "agent"?}   agent is main / technical / fundamental / sentiment
    report    {"content"}             the final markdown report
    complete  {}                      end of run
    error     {"message"}

One session at a time, with the same lifecycle as a market scan:

    idle -> running -> (completed | failed | cancelled) -> (next start)

Nothing here touches the task registry: a live run has no task id to poll.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, replace
from enum import StrEnum

from ..backend.errors import BackendError, friendly_error_message
from ..core.ports import AnalysisBackend
from ..scan.scan_models import ScanState
from ..scan.sse import Frame, iter_frames
from .task_models import ProgressEntry, parse_timestamp

logger = logging.getLogger(__name__)

# Wire id -> label, in display order.
AGENTS: dict[str, str] = {
    "main": "Lead analyst",
    "technical": "Technical analyst",
    "fundamental": "Fundamental analyst",
    "sentiment": "Sentiment analyst",
}


class AgentState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class AgentStatus:
    key: str
    label: str
    state: AgentState = AgentState.PENDING
    message: str | None = None


class LiveAnalysisRunningError(RuntimeError):
    pass


def _initial_agents() -> dict[str, AgentStatus]:
    return {key: AgentStatus(key=key, label=label) for key, label in AGENTS.items()}


class LiveAnalysisSession:
    def __init__(self, api: AnalysisBackend) -> None:
        self._api = api
        self._state = ScanState.IDLE
        self._subject_code: str | None = None
        self._progress: list[ProgressEntry] = []
        self._agents = _initial_agents()
        self._report: str | None = None
        self._error: str | None = None
        self._runner: asyncio.Task[None] | None = None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ScanState.RUNNING

    @property
    def subject_code(self) -> str | None:
        return self._subject_code

    @property
    def progress(self) -> list[ProgressEntry]:
        return list(self._progress)

    @property
    def agents(self) -> list[AgentStatus]:
        return list(self._agents.values())

    @property
    def report(self) -> str | None:
        return self._report

    @property
    def error(self) -> str | None:
        return self._error

    def start(self, subject_code: str) -> asyncio.Task[None]:
        """Begin a live analysis; raises synchronously if one is running."""
        if self.is_running:
            raise LiveAnalysisRunningError("A live analysis is already running")
        code = (subject_code or "").strip()
        if not code:
            raise ValueError("subject code is required")

        self._subject_code = code
        self._progress = []
        self._agents = _initial_agents()
        self._report = None
        self._error = None
        self._state = ScanState.RUNNING

        self._runner = asyncio.get_running_loop().create_task(self._run(code), name="live-analysis")
        self._runner.add_done_callback(self._on_runner_done)
        logger.info("Live analysis started code=%s", code)
        return self._runner

    def stop(self) -> bool:
        runner = self._runner
        if runner is None or runner.done():
            return False
        runner.cancel()
        return True

    async def wait(self) -> ScanState:
        runner = self._runner
        if runner is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await runner
        return self._state

    def _on_runner_done(self, runner: asyncio.Task[None]) -> None:
        if runner is self._runner and runner.cancelled() and self._state == ScanState.RUNNING:
            self._state = ScanState.CANCELLED

    async def _run(self, code: str) -> None:
        try:
            async with contextlib.aclosing(iter_frames(self._api.analyze_stream(code))) as frames:
                async for frame in frames:
                    if self._dispatch(frame):
                        break
            if self._state == ScanState.RUNNING:
                if self._report is not None:
                    logger.warning("Live analysis stream ended without a complete event")
                    self._state = ScanState.COMPLETED
                else:
                    self._fail("The analysis stream ended before the report arrived")
        except asyncio.CancelledError:
            self._state = ScanState.CANCELLED
            logger.info("Live analysis cancelled code=%s", code)
            raise
        except BackendError as e:
            self._fail(friendly_error_message(e))
        except Exception as e:
            logger.exception("Live analysis stream crashed code=%s", code)
            self._fail(str(e) or "Analysis failed")
        finally:
            logger.info(
                "Live analysis finished code=%s state=%s progress=%d report_chars=%d",
                code,
                self._state.value,
                len(self._progress),
                len(self._report or ""),
            )

    def _fail(self, message: str) -> None:
        self._error = message
        self._state = ScanState.FAILED
        for key, agent in self._agents.items():
            if agent.state == AgentState.RUNNING:
                self._agents[key] = replace(agent, state=AgentState.ERROR)

    def _dispatch(self, frame: Frame) -> bool:
        """Apply one frame; return True when the run is over."""
        data = frame.payload if isinstance(frame.payload, dict) else {}

        if frame.event_type == "progress":
            agent_key = data.get("agent") or None
            message = str(data.get("message") or "")
            self._progress.append(
                ProgressEntry(
                    message=message,
                    agent_tag=agent_key,
                    timestamp=parse_timestamp(data.get("timestamp")) or time.time(),
                )
            )
            agent = self._agents.get(agent_key) if agent_key else None
            if agent is not None:
                self._agents[agent_key] = replace(agent, state=AgentState.RUNNING, message=message)
            return False

        if frame.event_type == "report":
            self._report = str(data.get("content") or "")
            for key, agent in self._agents.items():
                self._agents[key] = replace(agent, state=AgentState.COMPLETE)
            return False

        if frame.event_type == "complete":
            self._state = ScanState.COMPLETED
            return True

        if frame.event_type == "error":
            self._fail(str(data.get("message") or "Analysis failed"))
            logger.warning("Live analysis error event: %s", self._error)
            return True

        logger.debug("Ignoring live analysis frame type=%r", frame.event_type)
        return False

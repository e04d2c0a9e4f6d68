# src/astrashare/scan/scan_session.py

"""
Streaming scan session.

Owns one cancellable scan request end to end:

    idle -> running -> (completed | failed | cancelled) -> (next start)

The response body is decoded by sse.iter_frames and dispatched on the payload's
"type": progress / match / complete / error. stop() cancels the read loop; that
is recorded as CANCELLED and is never reported as an error.

Independent of the task registry: no shared state with the analysis tasks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from ..backend.errors import BackendError, friendly_error_message
from ..core.ports import AnalysisBackend
from .scan_models import ScanMatch, ScanPattern, ScanProgress, ScanState
from .sse import Frame, iter_frames

logger = logging.getLogger(__name__)


class ScanError(RuntimeError):
    pass


class ScanAlreadyRunningError(ScanError):
    pass


class NoPatternSelectedError(ScanError):
    pass


def _as_int(raw: Any, default: int = 0) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


class ScanSession:
    def __init__(self, api: AnalysisBackend) -> None:
        self._api = api
        self._state = ScanState.IDLE
        self._pattern_id: str | None = None
        self._patterns: list[ScanPattern] = []
        self._matches: list[ScanMatch] = []
        self._progress = ScanProgress()
        self._error: str | None = None
        self._runner: asyncio.Task[None] | None = None

    # ---- read side (UI) ----

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ScanState.RUNNING

    @property
    def pattern_id(self) -> str | None:
        return self._pattern_id

    @property
    def patterns(self) -> list[ScanPattern]:
        return list(self._patterns)

    @property
    def matches(self) -> list[ScanMatch]:
        return list(self._matches)

    @property
    def progress(self) -> ScanProgress:
        return self._progress

    @property
    def error(self) -> str | None:
        return self._error

    # ---- pattern catalogue ----

    async def load_patterns(self) -> list[ScanPattern]:
        self._patterns = await self._api.list_patterns()
        if self._patterns and self._pattern_id is None:
            self._pattern_id = self._patterns[0].name
        logger.info("Loaded %d scan patterns (selected=%s)", len(self._patterns), self._pattern_id)
        return self.patterns

    def select_pattern(self, pattern_id: str) -> None:
        if self._patterns and pattern_id not in {p.name for p in self._patterns}:
            raise ValueError(f"Unknown pattern: {pattern_id}")
        self._pattern_id = pattern_id

    # ---- lifecycle ----

    def start(self, pattern_id: str | None = None) -> asyncio.Task[None]:
        """
        Begin a scan in the background and return its task.

        Raises synchronously, leaving the current session untouched, if a scan is
        already running or no pattern is selected.
        """
        if self.is_running:
            raise ScanAlreadyRunningError("A scan is already running")
        pattern = (pattern_id or self._pattern_id or "").strip()
        if not pattern:
            raise NoPatternSelectedError("No scan pattern selected")

        self._pattern_id = pattern
        self._matches = []
        self._progress = ScanProgress()
        self._error = None
        self._state = ScanState.RUNNING

        self._runner = asyncio.get_running_loop().create_task(self._run(pattern), name="scan-session")
        self._runner.add_done_callback(self._on_runner_done)
        logger.info("Scan started pattern=%s", pattern)
        return self._runner

    def _on_runner_done(self, runner: asyncio.Task[None]) -> None:
        # Cancelled before its first step: _run never saw the CancelledError.
        if runner is self._runner and runner.cancelled() and self._state == ScanState.RUNNING:
            self._state = ScanState.CANCELLED

    def stop(self) -> bool:
        """Signal cancellation. Returns False when nothing is running."""
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

    async def _run(self, pattern: str) -> None:
        try:
            async with contextlib.aclosing(iter_frames(self._api.scan_run(pattern))) as frames:
                async for frame in frames:
                    if self._dispatch(frame):
                        break
            if self._state == ScanState.RUNNING:
                logger.warning("Scan stream ended without a complete event")
                self._state = ScanState.COMPLETED
        except asyncio.CancelledError:
            self._state = ScanState.CANCELLED
            logger.info("Scan cancelled pattern=%s at %s", pattern, self._progress)
            raise
        except BackendError as e:
            self._fail(friendly_error_message(e))
        except Exception as e:
            logger.exception("Scan stream crashed pattern=%s", pattern)
            self._fail(str(e) or "Scan failed")
        finally:
            logger.info(
                "Scan finished pattern=%s state=%s progress=%s matches=%d",
                pattern,
                self._state.value,
                self._progress,
                len(self._matches),
            )

    def _fail(self, message: str) -> None:
        self._error = message
        self._state = ScanState.FAILED

    def _dispatch(self, frame: Frame) -> bool:
        """Apply one frame; return True when the session is over."""
        data = frame.payload if isinstance(frame.payload, dict) else {}

        if frame.event_type == "progress":
            self._progress = ScanProgress(_as_int(data.get("current")), _as_int(data.get("total")))
            return False

        if frame.event_type == "match":
            self._progress = ScanProgress(_as_int(data.get("current")), _as_int(data.get("total")))
            try:
                match = ScanMatch.from_wire(data.get("stock"))
            except ValueError:
                logger.warning("Match frame without stock payload: %.120r", data)
                return False
            self._matches.append(match)
            logger.debug("Scan match %s %s", match.code, match.name)
            return False

        if frame.event_type == "complete":
            total = _as_int(data.get("total_scanned"), self._progress.total)
            self._progress = ScanProgress(total, total)
            self._state = ScanState.COMPLETED
            return True

        if frame.event_type == "error":
            self._fail(str(data.get("message") or "Scan failed"))
            logger.warning("Scan error event: %s", self._error)
            return True

        logger.debug("Ignoring scan frame type=%r", frame.event_type)
        return False

# src/astrashare/backend/client.py

"""
HTTP client for the analysis backend.

All calls are async (httpx.AsyncClient). Non-2xx responses are mapped to the
exception hierarchy in errors.py; transport failures become BackendUnavailableError.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ..scan.scan_models import ScanPattern
from ..tasks.task_models import StatusSnapshot, SubmittedTask, Task, TaskResult
from .errors import (
    AuthenticationError,
    BackendError,
    BackendUnavailableError,
    InsufficientCreditError,
)

logger = logging.getLogger(__name__)

_CREDIT_MARKERS = ("积分", "credit", "points")


def _make_timeout(settings: Any) -> httpx.Timeout:
    connect_s = float(getattr(settings, "http_connect_timeout_seconds", 5.0))
    read_s = float(getattr(settings, "http_timeout_seconds", 15.0))
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            val = data.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    return response.reason_phrase or f"HTTP {response.status_code}"


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    code = response.status_code
    msg = _error_message(response)
    if code == 401:
        raise AuthenticationError(msg, code)
    if code == 402 or (code in (400, 403) and any(m in msg.lower() for m in _CREDIT_MARKERS)):
        raise InsufficientCreditError(msg, code)
    raise BackendError(msg, code)


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise BackendError("Backend returned invalid JSON", response.status_code) from e
    if not isinstance(data, dict):
        raise BackendError("Backend returned an unexpected JSON document", response.status_code)
    return data


class BackendClient:
    """
    Typed wrapper over the backend's task/status/result/stream contract.

    `transport` is injectable so tests can use httpx.MockTransport.
    """

    def __init__(
        self,
        settings: Any,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=str(getattr(settings, "backend_url", "http://localhost:8000")),
            timeout=_make_timeout(settings),
            transport=transport,
        )

    @property
    def token(self) -> str | None:
        return getattr(self._settings, "auth_token", None) or None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---- low-level helpers ----

    def _headers(self, *, require_auth: bool = False) -> dict[str, str]:
        token = self.token
        if token:
            return {"Authorization": f"Bearer {token}"}
        if require_auth:
            raise AuthenticationError("Not signed in", 401)
        return {}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        require_auth: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = self._headers(require_auth=require_auth)
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"{method} {url} failed: {e.__class__.__name__}") from e
        _raise_for_status(response)
        return response

    # ---- task contract ----

    async def submit(self, subject_code: str) -> SubmittedTask:
        response = await self._request(
            "POST", "/api/analyze/async", json={"stock_code": subject_code}
        )
        try:
            submitted = SubmittedTask.from_wire(_json_object(response))
        except ValueError as e:
            raise BackendError(str(e), response.status_code) from e
        logger.info("Submitted analysis code=%s task_id=%s", subject_code, submitted.task_id)
        return submitted

    async def status(self, task_id: str) -> StatusSnapshot:
        response = await self._request("GET", f"/api/analyze/task/{task_id}")
        return StatusSnapshot.from_wire(_json_object(response))

    async def result(self, task_id: str) -> TaskResult:
        response = await self._request("GET", f"/api/analyze/task/{task_id}/result")
        return TaskResult.from_wire(_json_object(response))

    async def history(self, *, limit: int = 20, status: str | None = None) -> list[Task]:
        params: dict[str, Any] = {"limit": int(limit)}
        if status:
            params["status"] = status
        response = await self._request(
            "GET", "/api/analyze/history", require_auth=True, params=params
        )
        rows = _json_object(response).get("tasks") or []
        tasks: list[Task] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                tasks.append(Task.from_wire(row))
            except ValueError:
                logger.warning("Skipping history row without task_id: %r", row)
        return tasks

    async def delete(self, task_id: str) -> None:
        await self._request("DELETE", f"/api/analyze/task/{task_id}", require_auth=True)
        logger.info("Deleted task_id=%s", task_id)

    # ---- screener ----

    async def list_patterns(self) -> list[ScanPattern]:
        response = await self._request("GET", "/api/screener/patterns")
        data = _json_object(response)
        out: list[ScanPattern] = []
        for raw in data.get("patterns") or []:
            if isinstance(raw, dict) and raw.get("name"):
                out.append(ScanPattern.from_wire(raw))
        return out

    # ---- event streams ----

    async def _stream(
        self,
        method: str,
        url: str,
        *,
        require_auth: bool = False,
        **kwargs: Any,
    ) -> AsyncIterator[bytes]:
        """
        Open an event stream and yield raw body chunks.

        Closing the generator (or cancelling the consuming task) closes the
        underlying response. A non-2xx status raises before anything is yielded.
        """
        headers = {"Accept": "text/event-stream", **self._headers(require_auth=require_auth)}
        try:
            async with self._client.stream(
                method,
                url,
                headers=headers,
                # The stream stays open for the whole run; only connect is bounded.
                timeout=httpx.Timeout(None, connect=_make_timeout(self._settings).connect),
                **kwargs,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    _raise_for_status(response)
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"{method} {url} stream failed: {e.__class__.__name__}") from e

    def scan_run(self, pattern_id: str) -> AsyncIterator[bytes]:
        return self._stream(
            "GET", "/api/screener/run", require_auth=True, params={"pattern": pattern_id}
        )

    def analyze_stream(self, subject_code: str) -> AsyncIterator[bytes]:
        """Run one analysis in the foreground; the report arrives on the stream."""
        return self._stream("POST", "/api/analyze", json={"stock_code": subject_code})

    async def health(self) -> dict[str, Any]:
        response = await self._request("GET", "/api/health")
        return _json_object(response)

# tests/test_live_analysis.py

from __future__ import annotations

import asyncio

import pytest

from astrashare.backend.errors import InsufficientCreditError
from astrashare.scan.scan_models import ScanState
from astrashare.tasks.live_analysis import AgentState, LiveAnalysisRunningError, LiveAnalysisSession


def _frame(payload: str) -> bytes:
    return f"data: {payload}\n\n".encode("utf-8")


STREAM = [
    _frame('{"type":"progress","agent":"main","message":"planning"}'),
    _frame('{"type":"progress","agent":"technical","message":"reading the chart"}'),
    _frame('{"type":"progress","message":"collecting news"}'),
    _frame('{"type":"report","content":"# 贵州茅台\\n\\nBuy."}'),
    _frame('{"type":"complete"}'),
]


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def _agent_states(session: LiveAnalysisSession) -> dict[str, AgentState]:
    return {a.key: a.state for a in session.agents}


@pytest.mark.asyncio
async def test_full_stream_collects_progress_and_report(backend) -> None:
    backend.analyze_chunks = STREAM
    session = LiveAnalysisSession(backend)

    session.start(" 600519 ")
    assert session.is_running
    assert await session.wait() == ScanState.COMPLETED

    assert backend.analyze_calls == ["600519"]
    assert [p.message for p in session.progress] == ["planning", "reading the chart", "collecting news"]
    assert session.progress[1].agent_tag == "technical"
    assert session.report == "# 贵州茅台\n\nBuy."
    assert set(_agent_states(session).values()) == {AgentState.COMPLETE}
    assert session.error is None
    assert backend.analyze_closed


@pytest.mark.asyncio
async def test_agent_status_follows_progress_frames(backend) -> None:
    backend.analyze_chunks = STREAM[:2]
    backend.analyze_hold = asyncio.Event()
    session = LiveAnalysisSession(backend)

    session.start("600519")
    await _wait_until(lambda: len(session.progress) == 2)

    states = _agent_states(session)
    assert states["main"] == AgentState.RUNNING
    assert states["technical"] == AgentState.RUNNING
    assert states["fundamental"] == AgentState.PENDING
    technical = next(a for a in session.agents if a.key == "technical")
    assert technical.message == "reading the chart"

    with pytest.raises(LiveAnalysisRunningError):
        session.start("000001")
    assert len(session.progress) == 2

    session.stop()
    assert await session.wait() == ScanState.CANCELLED
    assert session.error is None
    assert backend.analyze_closed


@pytest.mark.asyncio
async def test_error_frame_fails_run_and_marks_busy_agents(backend) -> None:
    backend.analyze_chunks = [
        _frame('{"type":"progress","agent":"fundamental","message":"loading statements"}'),
        _frame('{"type":"error","message":"数据源不可用"}'),
    ]
    session = LiveAnalysisSession(backend)

    session.start("600519")
    assert await session.wait() == ScanState.FAILED
    assert session.error == "数据源不可用"
    assert _agent_states(session)["fundamental"] == AgentState.ERROR
    assert session.report is None


@pytest.mark.asyncio
async def test_rejected_request_fails_with_friendly_message(backend) -> None:
    backend.analyze_error = InsufficientCreditError("积分不足", 402)
    session = LiveAnalysisSession(backend)

    session.start("600519")
    assert await session.wait() == ScanState.FAILED
    assert session.error == "Not enough points: 积分不足"


@pytest.mark.asyncio
async def test_stream_cut_before_report_fails(backend) -> None:
    backend.analyze_chunks = STREAM[:1]
    session = LiveAnalysisSession(backend)

    session.start("600519")
    assert await session.wait() == ScanState.FAILED
    assert session.error


@pytest.mark.asyncio
async def test_stream_with_report_but_no_complete_counts_as_done(backend) -> None:
    backend.analyze_chunks = STREAM[:4]
    session = LiveAnalysisSession(backend)

    session.start("600519")
    assert await session.wait() == ScanState.COMPLETED


@pytest.mark.asyncio
async def test_new_run_resets_previous_output(backend) -> None:
    backend.analyze_chunks = STREAM
    session = LiveAnalysisSession(backend)
    session.start("600519")
    await session.wait()

    backend.analyze_chunks = [_frame('{"type":"error","message":"busy"}')]
    session.start("000001")
    await session.wait()

    assert session.subject_code == "000001"
    assert session.progress == []
    assert session.report is None
    assert set(_agent_states(session).values()) == {AgentState.PENDING}


@pytest.mark.asyncio
async def test_start_requires_a_code(backend) -> None:
    session = LiveAnalysisSession(backend)
    with pytest.raises(ValueError):
        session.start("  ")
    assert session.state == ScanState.IDLE

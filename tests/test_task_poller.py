# tests/test_task_poller.py

from __future__ import annotations

import asyncio

import pytest

from astrashare.backend.errors import AuthenticationError, BackendUnavailableError
from astrashare.tasks.task_api import submit_analysis
from astrashare.tasks.task_models import StatusSnapshot, SubmittedTask, TaskResult, TaskStatus

RUNNING = StatusSnapshot(status=TaskStatus.RUNNING)


@pytest.mark.asyncio
async def test_empty_tick_goes_idle_without_network_calls(state, backend) -> None:
    assert await state.poller.tick() is False
    assert backend.status_calls == []


@pytest.mark.asyncio
async def test_submit_with_n_running_fetches_n_plus_1_concurrently(state, backend) -> None:
    for i in range(3):
        state.registry.upsert(f"t{i}", status=TaskStatus.RUNNING)
        backend.statuses[f"t{i}"] = RUNNING

    backend.submit_response = SubmittedTask(task_id="new", subject_code="600519")
    backend.statuses["new"] = StatusSnapshot(status=TaskStatus.PENDING)
    await submit_analysis(state, "600519")
    await state.poller.stop()

    assert await state.poller.tick() is True
    assert sorted(backend.status_calls) == ["new", "t0", "t1", "t2"]
    assert backend.max_in_flight == 4


@pytest.mark.asyncio
async def test_ensure_running_is_a_guarded_start(state, backend) -> None:
    state.registry.upsert("t1", status=TaskStatus.RUNNING)
    backend.statuses["t1"] = RUNNING

    assert state.poller.ensure_running() is True
    assert state.poller.ensure_running() is False
    assert state.poller.is_active
    await state.poller.stop()
    assert not state.poller.is_active


@pytest.mark.asyncio
async def test_loop_stops_itself_once_everything_is_terminal(state, backend) -> None:
    state.registry.upsert("t1", status=TaskStatus.RUNNING)
    backend.statuses["t1"] = StatusSnapshot(status=TaskStatus.COMPLETED, completed_at=10.0)

    state.poller.ensure_running()
    for _ in range(100):
        if not state.poller.is_active:
            break
        await asyncio.sleep(0.01)

    assert not state.poller.is_active
    assert state.registry.get("t1").status == TaskStatus.COMPLETED
    assert backend.status_calls == ["t1"]


@pytest.mark.asyncio
async def test_failed_fetch_does_not_affect_other_tasks(state, backend) -> None:
    state.registry.upsert("bad", status=TaskStatus.RUNNING)
    state.registry.upsert("good", status=TaskStatus.RUNNING)
    backend.statuses["bad"] = BackendUnavailableError("timeout")
    backend.statuses["good"] = StatusSnapshot(status=TaskStatus.FAILED, error_message="no data")

    assert await state.poller.tick() is True

    assert state.registry.get("bad").status == TaskStatus.RUNNING
    good = state.registry.get("good")
    assert good.status == TaskStatus.FAILED
    assert good.error_message == "no data"


@pytest.mark.asyncio
async def test_terminal_transition_notifies_once_and_refreshes_open_task(state, backend, notifier) -> None:
    state.registry.upsert("t1", subject_code="000001", status=TaskStatus.RUNNING)
    backend.statuses["t1"] = StatusSnapshot(status=TaskStatus.COMPLETED)
    backend.results["t1"] = TaskResult(status=TaskStatus.COMPLETED, result="# Report")
    state.refresher.select("t1")

    await state.poller.tick()

    assert [n.tag for n in notifier.shown] == ["t1"]
    assert backend.result_calls == ["t1"]
    assert state.refresher.detail.result == "# Report"


@pytest.mark.asyncio
async def test_completion_of_unselected_task_does_not_fetch_result(state, backend, notifier) -> None:
    state.registry.upsert("t1", status=TaskStatus.RUNNING)
    backend.statuses["t1"] = StatusSnapshot(status=TaskStatus.COMPLETED)

    await state.poller.tick()

    assert backend.result_calls == []
    assert len(notifier.shown) == 1


@pytest.mark.asyncio
async def test_unauthorized_poll_clears_registry(state, backend) -> None:
    state.registry.upsert("t1", status=TaskStatus.RUNNING)
    state.registry.upsert("t2", status=TaskStatus.RUNNING)
    backend.statuses["t1"] = AuthenticationError("expired", 401)
    backend.statuses["t2"] = RUNNING
    state.refresher.select("t2")

    assert await state.poller.tick() is False
    assert state.registry.list_all() == []
    assert state.refresher.selected_id is None


@pytest.mark.asyncio
async def test_provisional_tasks_keep_loop_alive_without_fetching(state, backend) -> None:
    state.registry.upsert("local-x", provisional=True)
    assert await state.poller.tick() is True
    assert backend.status_calls == []

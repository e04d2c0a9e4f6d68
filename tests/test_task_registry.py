# tests/test_task_registry.py

from __future__ import annotations

from astrashare.tasks.task_models import StatusSnapshot, Task, TaskStatus
from astrashare.tasks.task_registry import TaskRegistry


def test_upsert_inserts_then_merges_supplied_fields_only() -> None:
    reg = TaskRegistry()
    reg.upsert("t1", subject_code="600519", subject_name="贵州茅台", created_at=100.0)

    reg.upsert("t1", status=TaskStatus.FAILED, completed_at=150.0, error_message="boom")

    t = reg.get("t1")
    assert t is not None
    assert t.status == TaskStatus.FAILED
    assert t.created_at == 100.0
    assert t.subject_name == "贵州茅台"
    assert t.error_message == "boom"
    assert len(reg) == 1


def test_empty_name_does_not_erase_server_name() -> None:
    reg = TaskRegistry()
    reg.upsert("t1", subject_code="000001", subject_name="平安银行")
    reg.upsert("t1", subject_name="")
    assert reg.get("t1").subject_name == "平安银行"


def test_list_all_newest_first_and_non_terminal_filter() -> None:
    reg = TaskRegistry()
    reg.upsert("old", created_at=1.0, status=TaskStatus.COMPLETED)
    reg.upsert("mid", created_at=2.0, status=TaskStatus.RUNNING)
    reg.upsert("new", created_at=3.0)

    assert [t.id for t in reg.list_all()] == ["new", "mid", "old"]
    assert [t.id for t in reg.list_non_terminal()] == ["new", "mid"]


def test_apply_status_reports_previous_status() -> None:
    reg = TaskRegistry()
    reg.upsert("t1", status=TaskStatus.RUNNING)

    previous, task = reg.apply_status(
        "t1", StatusSnapshot(status=TaskStatus.COMPLETED, completed_at=42.0)
    )
    assert previous == TaskStatus.RUNNING
    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at == 42.0

    # Re-observing a terminal status is harmless.
    previous, task = reg.apply_status("t1", StatusSnapshot(status=TaskStatus.COMPLETED))
    assert previous == TaskStatus.COMPLETED
    assert task.completed_at == 42.0


def test_apply_status_discards_response_issued_before_one_already_applied() -> None:
    reg = TaskRegistry()
    reg.upsert("t1")
    slow = reg.next_sequence()
    fast = reg.next_sequence()

    assert reg.apply_status("t1", StatusSnapshot(status=TaskStatus.COMPLETED), seq=fast) is not None
    assert reg.apply_status("t1", StatusSnapshot(status=TaskStatus.RUNNING), seq=slow) is None
    assert reg.get("t1").status == TaskStatus.COMPLETED


def test_apply_status_for_deleted_task_is_ignored() -> None:
    reg = TaskRegistry()
    assert reg.apply_status("gone", StatusSnapshot(status=TaskStatus.RUNNING)) is None
    assert reg.get("gone") is None


def test_replace_all_keeps_provisional_rows_and_never_duplicates() -> None:
    reg = TaskRegistry()
    reg.upsert("local-1", provisional=True, created_at=5.0)
    reg.upsert("stale", created_at=1.0)

    server = [
        Task(id="a", subject_code="1", subject_name="", status=TaskStatus.RUNNING, created_at=2.0),
        Task(id="a", subject_code="1", subject_name="A", status=TaskStatus.RUNNING, created_at=2.0),
    ]
    reg.replace_all(server)

    assert [t.id for t in reg.list_all()] == ["local-1", "a"]
    assert reg.get("a").subject_name == "A"


def test_remove_and_clear() -> None:
    reg = TaskRegistry()
    reg.upsert("t1")
    reg.upsert("t2")
    assert reg.remove("t1").id == "t1"
    assert reg.remove("t1") is None
    assert "t1" not in reg
    reg.clear()
    assert reg.list_all() == []

# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from astrashare.core.state import AppState, build_state
from astrashare.notify.gate import NotificationGate

from .fakes import FakeBackend, FakeNotifier, MemoryKeyValueStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="astrashare-test",
        backend_url="http://backend.test",
        auth_token="test-token",
        http_timeout_seconds=5.0,
        http_connect_timeout_seconds=1.0,
        poll_interval_seconds=0.01,
        history_limit=20,
        notifications_supported=True,
        notified_cap=200,
        data_dir=tmp_path,
        state_db_path=tmp_path / "client_state.sqlite3",
        console_enabled=False,
    )


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture()
def gate(notifier: FakeNotifier, kv_store: MemoryKeyValueStore) -> NotificationGate:
    g = NotificationGate(notifier, kv_store, cap=200)
    g.load()
    return g


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    backend: FakeBackend,
    kv_store: MemoryKeyValueStore,
    gate: NotificationGate,
) -> AppState:
    """AppState wired with deterministic fakes."""
    return build_state(settings, api=backend, store=kv_store, gate=gate)

# src/astrashare/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..notify.gate import NotificationGate
from ..scan.scan_session import ScanSession
from ..tasks.live_analysis import LiveAnalysisSession
from ..tasks.task_detail import TaskDetailRefresher
from ..tasks.task_poller import TaskPoller
from ..tasks.task_registry import TaskRegistry
from .ports import AnalysisBackend, KeyValueStore


@dataclass
class AppState:
    """
    Long-lived client services shared by every UI surface.

    One explicit object instead of module globals: built once by the bootstrap,
    torn down by cli.main.
    """

    # Settings object (real Settings or a test SimpleNamespace).
    settings: Any

    api: AnalysisBackend
    store: KeyValueStore
    registry: TaskRegistry
    gate: NotificationGate
    refresher: TaskDetailRefresher
    poller: TaskPoller
    scan: ScanSession
    live: LiveAnalysisSession


def build_state(
    settings: Any,
    *,
    api: AnalysisBackend,
    store: KeyValueStore,
    gate: NotificationGate,
) -> AppState:
    """Wire the task services around the given backend, store and gate."""
    registry = TaskRegistry()
    refresher = TaskDetailRefresher(api, registry, gate)
    poller = TaskPoller(
        api,
        registry,
        gate=gate,
        refresher=refresher,
        interval_seconds=float(getattr(settings, "poll_interval_seconds", 3.0)),
    )
    return AppState(
        settings=settings,
        api=api,
        store=store,
        registry=registry,
        gate=gate,
        refresher=refresher,
        poller=poller,
        scan=ScanSession(api),
        live=LiveAnalysisSession(api),
    )

# src/astrashare/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations (httpx backend client, SQLite store, console
  notifier) into AppState,
- restores what must survive a restart (notified set, permission) and the task list.
"""

from __future__ import annotations

import logging
from typing import Any

from ..backend.client import BackendClient
from ..backend.errors import BackendError
from ..config import get_settings
from ..core.state import AppState, build_state
from ..notify.console_notifier import Confirm, ConsoleNotifier, Emit
from ..notify.gate import NotificationGate
from ..notify.notified_store import SQLiteKeyValueStore
from ..tasks.task_api import load_history

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Any) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.state_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings: Any = None,
    emit: Emit = print,
    confirm: Confirm | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = SQLiteKeyValueStore(settings.state_db_path)
    notifier = ConsoleNotifier(
        store,
        emit=emit,
        confirm=confirm,
        supported=bool(getattr(settings, "notifications_supported", True)),
    )
    gate = NotificationGate(notifier, store, cap=int(getattr(settings, "notified_cap", 200)))

    return build_state(settings, api=BackendClient(settings), store=store, gate=gate)


async def start_services(state: AppState) -> None:
    """Startup: restore notification state, then load the task list (best-effort)."""
    state.gate.load()

    if not getattr(state.settings, "auth_token", None):
        logger.info("No auth token configured; task history not loaded.")
        return
    try:
        await load_history(state)
    except BackendError as e:
        logger.warning("Initial history load failed: %s", e)


async def shutdown_services(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    for session in (state.scan, state.live):
        session.stop()
        try:
            await session.wait()
        except Exception:
            logger.debug("Stream session wait failed.", exc_info=True)

    try:
        await state.poller.stop()
    except Exception:
        logger.debug("Poller stop failed.", exc_info=True)

    try:
        await state.gate.flush()
    except Exception:
        logger.exception("Failed to flush notified set.")

    try:
        aclose = getattr(state.api, "aclose", None)
        if aclose is not None:
            await aclose()
    except Exception:
        logger.debug("Backend client close failed.", exc_info=True)

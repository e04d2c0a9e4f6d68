# src/astrashare/notify/console_notifier.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..core.ports import KeyValueStore, NotificationPermission

logger = logging.getLogger(__name__)

PERMISSION_KEY = "notification_permission"

Confirm = Callable[[str], Awaitable[bool]]
Emit = Callable[[str], None]


class ConsoleNotifier:
    """
    Notifier that prints alerts to the console.

    The permission decision is stored in the key-value store so it survives
    restarts, like a browser remembers a site's notification permission.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        emit: Emit = print,
        confirm: Confirm | None = None,
        supported: bool = True,
    ) -> None:
        self._store = store
        self._emit = emit
        self._confirm = confirm
        self._supported = supported

    def permission(self) -> NotificationPermission:
        if not self._supported:
            return NotificationPermission.UNSUPPORTED
        try:
            raw = self._store.get(PERMISSION_KEY)
        except Exception:
            logger.exception("Failed to read notification permission")
            return NotificationPermission.DEFAULT
        try:
            return NotificationPermission(raw) if raw else NotificationPermission.DEFAULT
        except ValueError:
            return NotificationPermission.DEFAULT

    async def request_permission(self) -> NotificationPermission:
        if not self._supported:
            return NotificationPermission.UNSUPPORTED

        granted = True
        if self._confirm is not None:
            granted = await self._confirm("Show a notification when an analysis finishes?")
        result = NotificationPermission.GRANTED if granted else NotificationPermission.DENIED
        await asyncio.to_thread(self._store.set, PERMISSION_KEY, result.value)
        return result

    def notify(self, title: str, body: str, *, tag: str | None = None) -> None:
        self._emit(f"[NOTIFY] {title}: {body}")

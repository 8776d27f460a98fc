"""Cancellable one-shot timer for hover intent and search debounce."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

HOVER_INTENT_MS = 500
SEARCH_DEBOUNCE_MS = 300


class CancellableTimer:
    """One-shot timer on the running asyncio loop.

    Starting while a callback is pending supersedes it, so at most one
    callback is ever pending.
    """

    def __init__(self, interval_ms: int, callback: Callable[[], None]):
        self._interval_ms = interval_ms
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    def start(self, callback: Callable[[], None] | None = None) -> None:
        """Schedule the callback, replacing any pending one."""
        if callback is not None:
            self._callback = callback
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._interval_ms / 1000, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def reset(self) -> None:
        self.cancel()
        self.start()

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback()
        except Exception as e:
            logger.error(f"Timer callback failed: {e}")

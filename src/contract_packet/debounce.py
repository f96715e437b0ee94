"""Cancel-and-reschedule debounce for auto-saves.

Field edits arrive in bursts; saving after each keystroke is wasteful, so
the controller re-arms a short timer on every edit and only the last one
fires. Navigation flushes the pending call synchronously so no edit made
before it can be lost.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)


class Debouncer:
    """Runs *callback* once, *delay* seconds after the last :meth:`schedule`.

    Outside a running event loop there is no timer to arm, so
    :meth:`schedule` runs the callback immediately.
    """

    def __init__(self, callback: Callable[[], None], delay: float) -> None:
        self._callback = callback
        self._delay = delay
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        """Cancel any pending call and arm a new one."""
        self.cancel()
        if self._delay <= 0:
            self._callback()
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._callback()
            return
        self._handle = loop.call_later(self._delay, self._fire)

    def flush(self) -> bool:
        """Run the pending call now. Returns whether one was pending."""
        if self._handle is None:
            return False
        self.cancel()
        self._callback()
        return True

    def cancel(self) -> None:
        """Drop the pending call without running it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback()
        except Exception as exc:
            # Timer callbacks have no caller to propagate to.
            logger.error("debounced_call_failed", error=str(exc))

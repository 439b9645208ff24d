"""Cancel-and-reschedule timers on the asyncio loop clock.

The parser owns two of these: the flush debounce and the pause monitor.
Both are plain ``loop.call_later`` handles, so a timer only fires while an
event loop is running. Without a running loop nothing is armed and callers
drive processing with an explicit ``flush()``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class DebounceTimer:
    """A single-shot timer with explicit schedule, restart and cancel.

    ``schedule()`` keeps an already pending timer (coalescing bursts), while
    ``restart()`` cancels and re-arms it (silence detection).
    """

    def __init__(
        self,
        delay_ms: int,
        callback: Callable[[], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.delay = delay_ms / 1000
        self._callback = callback
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._warned_no_loop = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        """Arm the timer unless it is already pending."""
        if self._handle is not None:
            return
        loop = self._loop or _running_loop()
        if loop is None or loop.is_closed():
            if not self._warned_no_loop:
                logger.debug("No running event loop; timer not armed, flush() drives processing")
                self._warned_no_loop = True
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def restart(self) -> None:
        self.cancel()
        self.schedule()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class PauseMonitor:
    """Advisory silence detector.

    Restarted on every write; when ``threshold_ms`` passes without data the
    ``on_pause`` callback runs once. The callback decides whether a pause
    event is worth emitting; the monitor never ends a message itself.
    """

    def __init__(
        self,
        threshold_ms: int,
        on_pause: Callable[[], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._timer = DebounceTimer(threshold_ms, on_pause, loop)

    @property
    def armed(self) -> bool:
        return self._timer.pending

    def touch(self) -> None:
        self._timer.restart()

    def cancel(self) -> None:
        self._timer.cancel()

"""OutputParser: streaming PTY output -> typed chat events.

Typical use::

    parser = create_parser()
    parser.subscribe(print)
    parser.write(pty_bytes)      # any number of times, any chunking
    parser.flush()               # force processing instead of waiting
    parser.destroy()

One parser serves exactly one PTY stream. All work happens synchronously
inside ``write()``, ``flush()`` and the two timer callbacks, which run on
the asyncio loop that was current when they were armed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable

from src.config import ParserConfig
from src.log_setup import TRACE
from src.parsing.events import EventHandler, EventKind, EventSink
from src.parsing.line_assembler import LineAssembler
from src.parsing.models import ParserSnapshot, ParserState
from src.parsing.state_machine import ParserStateMachine
from src.parsing.timers import DebounceTimer, PauseMonitor

logger = logging.getLogger(__name__)


class OutputParser:
    """Parse a raw Claude Code / shell PTY stream into structured events."""

    def __init__(
        self,
        config: ParserConfig | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create an IDLE parser.

        Args:
            config: Parser options; defaults to ``ParserConfig()``.
            loop: Event loop for the debounce and pause timers. Defaults to
                the loop running when a timer is armed.
            clock: Monotonic clock for message and tool-call durations.
        """
        self.config = config or ParserConfig()
        self.events = EventSink()
        self._lines = LineAssembler()
        self._machine = ParserStateMachine(
            self.events,
            strip_ansi=self.config.strip_ansi,
            detect_tool_calls=self.config.detect_tool_calls,
            detect_code_blocks=self.config.detect_code_blocks,
            clock=clock,
        )
        self._flush_timer = DebounceTimer(
            self.config.buffer_flush_interval_ms, self._on_flush_timer, loop,
        )
        self._pause = PauseMonitor(self.config.pause_threshold_ms, self._on_pause, loop)
        self._processing = False
        self._destroyed = False

    # --- Subscriptions ---

    def subscribe(
        self, handler: EventHandler, kinds: Iterable[EventKind] | None = None,
    ) -> Callable[[], None]:
        """Deliver events to ``handler``; returns an unsubscribe callable."""
        return self.events.subscribe(handler, kinds)

    def on(self, kind: EventKind, handler: EventHandler) -> Callable[[], None]:
        return self.events.subscribe(handler, (kind,))

    # --- Input ---

    def write(self, data: str | bytes) -> None:
        """Feed one chunk of PTY output.

        Chunk boundaries carry no meaning: lines, escape sequences and UTF-8
        characters may all be split. Processing is deferred until the
        stream has been quiet for ``buffer_flush_interval_ms``.
        """
        if self._destroyed:
            logger.debug("write() after destroy ignored")
            return
        if not isinstance(data, (str, bytes, bytearray, memoryview)):
            logger.warning("Ignoring PTY chunk of type %s", type(data).__name__)
            return
        size = self._lines.feed(data)
        self._machine.stats.bytes_processed += size
        logger.log(TRACE, "write len=%d", size)
        self._pause.touch()
        self._flush_timer.schedule()

    def flush(self, final: bool = False) -> None:
        """Process buffered data now, cancelling any pending debounced flush.

        Args:
            final: Treat the stream as ended: pending partial bytes are
                decoded and the unterminated tail is processed as a line.
        """
        if self._destroyed:
            return
        self._flush_timer.cancel()
        self._process_buffer(final)

    def _on_flush_timer(self) -> None:
        if self._destroyed:
            return
        self._process_buffer()

    def _on_pause(self) -> None:
        if self._destroyed:
            return
        self._machine.check_pause()

    def _process_buffer(self, final: bool = False) -> None:
        if self._processing:
            # A subscriber wrote back into the parser; the next flush picks it up
            logger.debug("Re-entrant flush skipped")
            return
        self._processing = True
        try:
            for line in self._lines.split(final):
                self._machine.process_line(line)
            tail = self._lines.tail
            # A newline here means a subscriber wrote back mid-flush
            if tail and "\n" not in tail:
                self._machine.process_partial(tail)
        finally:
            self._processing = False

    # --- Lifecycle ---

    def get_state(self) -> ParserSnapshot:
        return self._machine.snapshot()

    @property
    def state(self) -> ParserState:
        return self._machine.state

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def reset(self) -> None:
        """Cancel timers, clear every buffer and return to IDLE.

        Open blocks are discarded without end events. Stats are kept.
        """
        if self._destroyed:
            return
        self._flush_timer.cancel()
        self._pause.cancel()
        self._lines.clear()
        self._machine.reset()

    def destroy(self) -> None:
        """Reset, then drop all subscribers. The parser ignores further input."""
        if self._destroyed:
            return
        self.reset()
        self.events.close()
        self._destroyed = True
        logger.debug("Parser destroyed")


def create_parser(
    *, loop: asyncio.AbstractEventLoop | None = None, **options,
) -> OutputParser:
    """Build a parser with default Claude Code settings, overridden by ``options``.

    Args:
        loop: Event loop for the parser timers.
        **options: Any :class:`ParserConfig` field, e.g. ``pause_threshold_ms=1000``.
    """
    return OutputParser(ParserConfig(**options), loop=loop)

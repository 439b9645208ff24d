"""Typed parser events and the sink that delivers them to subscribers.

Every event is a frozen dataclass with a ``kind`` class attribute, so
consumers can dispatch with ``match``/``isinstance`` or filter by
:class:`EventKind` when subscribing.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, ClassVar, Iterable, Union

from src.log_setup import TRACE
from src.parsing.models import ParserState

logger = logging.getLogger(__name__)


class EventKind(Enum):
    STATE_CHANGE = "stateChange"
    PROMPT = "prompt"
    USER_INPUT = "userInput"
    ASSISTANT_CHUNK = "assistantChunk"
    MESSAGE_START = "messageStart"
    MESSAGE_END = "messageEnd"
    CODE_BLOCK = "codeBlock"
    TOOL_CALL = "toolCall"
    THINKING = "thinking"
    STATUS = "status"
    PAUSE = "pause"
    RESET = "reset"


class ToolCallPhase(Enum):
    START = "start"
    END = "end"


@dataclass(frozen=True)
class StateChange:
    kind: ClassVar[EventKind] = EventKind.STATE_CHANGE
    from_state: ParserState
    to_state: ParserState
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class PromptEvent:
    kind: ClassVar[EventKind] = EventKind.PROMPT
    content: str
    raw: str
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class UserInput:
    kind: ClassVar[EventKind] = EventKind.USER_INPUT
    content: str
    raw: str
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class AssistantChunk:
    """One line (or the live partial tail) of an assistant response."""

    kind: ClassVar[EventKind] = EventKind.ASSISTANT_CHUNK
    content: str
    raw: str
    partial: bool = False
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class MessageStart:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_START
    message_id: str
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class MessageEnd:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_END
    message_id: str
    content: str
    duration: float
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class CodeBlockEvent:
    kind: ClassVar[EventKind] = EventKind.CODE_BLOCK
    language: str
    code: str
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ToolCallEvent:
    """Start or end of a tool call. ``output`` and ``duration`` are set on END only."""

    kind: ClassVar[EventKind] = EventKind.TOOL_CALL
    phase: ToolCallPhase
    name: str
    details: str | None
    output: str | None = None
    duration: float | None = None
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ThinkingEvent:
    kind: ClassVar[EventKind] = EventKind.THINKING
    content: str
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class StatusEvent:
    kind: ClassVar[EventKind] = EventKind.STATUS
    status: str
    content: str
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class PauseEvent:
    """Advisory silence signal; never terminates a message by itself."""

    kind: ClassVar[EventKind] = EventKind.PAUSE
    state: ParserState
    content_length: int
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ResetEvent:
    kind: ClassVar[EventKind] = EventKind.RESET
    ts: float = field(default_factory=time.time)


ParserEvent = Union[
    StateChange,
    PromptEvent,
    UserInput,
    AssistantChunk,
    MessageStart,
    MessageEnd,
    CodeBlockEvent,
    ToolCallEvent,
    ThinkingEvent,
    StatusEvent,
    PauseEvent,
    ResetEvent,
]

EventHandler = Callable[[ParserEvent], None]


def event_to_dict(event: ParserEvent) -> dict:
    """Serialize an event to a JSON-friendly dict tagged with its kind."""
    data = {"type": event.kind.value}
    for key, value in asdict(event).items():
        data[key] = value.value if isinstance(value, Enum) else value
    return data


class EventSink:
    """Ordered, synchronous delivery of parser events to subscribers.

    Handlers run in subscription order on the caller's stack. A handler that
    raises is logged and skipped; the remaining handlers still receive the
    event and the parser never sees the exception.
    """

    def __init__(self) -> None:
        self._subscribers: list[tuple[EventHandler, frozenset[EventKind] | None]] = []
        self._closed = False

    def subscribe(
        self, handler: EventHandler, kinds: Iterable[EventKind] | None = None,
    ) -> Callable[[], None]:
        """Register ``handler`` for all events, or only for ``kinds``.

        Returns:
            A callable that removes this subscription.
        """
        entry = (handler, frozenset(kinds) if kinds is not None else None)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def emit(self, event: ParserEvent) -> None:
        if self._closed:
            return
        logger.log(TRACE, "emit %s", event.kind.value)
        for handler, kinds in list(self._subscribers):
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed on %s", handler, event.kind.value)

    def close(self) -> None:
        """Drop every subscriber and ignore further events."""
        self._subscribers.clear()
        self._closed = True

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

"""Shared data types for the stream parser."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class ParserState(Enum):
    """Lifecycle states of the stream parser."""

    IDLE = "idle"
    USER_INPUT = "user_input"
    ASSISTANT_RESPONSE = "assistant"
    CODE_BLOCK = "code_block"
    TOOL_CALL = "tool_call"
    THINKING = "thinking"
    WAITING = "waiting"


@dataclass
class Message:
    """The assistant turn currently being accumulated."""

    id: str
    started_at: float
    content: str = ""
    duration: float | None = None


@dataclass
class CodeBlock:
    """A fenced code block; open only while the parser is in CODE_BLOCK."""

    language: str = "text"
    code: str = ""


@dataclass
class ToolCall:
    """A tool invocation; open only while the parser is in TOOL_CALL."""

    name: str
    details: str | None
    started_at: float
    output: str = ""
    duration: float | None = None


@dataclass
class ThinkingBlock:
    """Reasoning text between thinking tags."""

    content: str = ""


@dataclass
class Stats:
    """Monotonic counters kept for the lifetime of a parser."""

    bytes_processed: int = 0
    messages_emitted: int = 0
    code_blocks_detected: int = 0
    tool_calls_detected: int = 0


@dataclass(frozen=True)
class ToolCallInfo:
    name: str
    details: str | None


@dataclass(frozen=True)
class ParserSnapshot:
    """Point-in-time view of a parser returned by ``get_state()``."""

    state: ParserState
    previous_state: ParserState | None
    current_message_id: str | None
    content_buffer_length: int
    is_in_code_block: bool
    is_in_tool_call: bool
    current_tool_call: ToolCallInfo | None
    stats: Stats = field(default_factory=Stats)

    def to_dict(self) -> dict:
        """Plain dict using the camelCase keys consumed by chat UIs."""
        return {
            "state": self.state.value,
            "previousState": self.previous_state.value if self.previous_state else None,
            "currentMessageId": self.current_message_id,
            "contentBufferLength": self.content_buffer_length,
            "isInCodeBlock": self.is_in_code_block,
            "isInToolCall": self.is_in_tool_call,
            "currentToolCall": asdict(self.current_tool_call) if self.current_tool_call else None,
            "stats": asdict(self.stats),
        }

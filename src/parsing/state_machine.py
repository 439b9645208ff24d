"""Line-driven state machine turning classified lines into chat events.

Lifecycle::

    IDLE -> (content) -> ASSISTANT_RESPONSE -> (prompt) -> IDLE
    IDLE -> (working status) -> WAITING -> (content) -> ASSISTANT_RESPONSE
    ASSISTANT_RESPONSE <-> CODE_BLOCK | TOOL_CALL | THINKING

Only one block accumulator (code, tool call, thinking) is open at a time and
it always matches ``state``. A block opened from IDLE or WAITING first
starts a message so the block belongs to an assistant turn.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

from src.log_setup import TRACE
from src.parsing.ansi import clean_line
from src.parsing.events import (
    AssistantChunk,
    CodeBlockEvent,
    EventSink,
    MessageEnd,
    MessageStart,
    PauseEvent,
    PromptEvent,
    ResetEvent,
    StateChange,
    StatusEvent,
    ThinkingEvent,
    ToolCallEvent,
    ToolCallPhase,
    UserInput,
)
from src.parsing.models import (
    CodeBlock,
    Message,
    ParserSnapshot,
    ParserState,
    Stats,
    ThinkingBlock,
    ToolCall,
    ToolCallInfo,
)
from src.parsing.ui_patterns import (
    Boundary,
    BoundaryKind,
    classify_boundary,
    has_tool_marker,
    is_fence_close,
    is_prompt,
    is_working_status,
    parse_tool_call,
    split_thinking_close,
    strip_response_marker,
    strip_tool_connector,
    thinking_close_trail,
)

logger = logging.getLogger(__name__)

_PRE_MESSAGE_STATES = frozenset({ParserState.IDLE, ParserState.WAITING, ParserState.USER_INPUT})


def new_message_id() -> str:
    return uuid.uuid4().hex[:12]


class ParserStateMachine:
    """Owns the parser state and every open block.

    Never raises on input: unknown lines fall through to the current
    state's handler, which at worst ignores them.
    """

    def __init__(
        self,
        sink: EventSink,
        *,
        strip_ansi: bool = True,
        detect_tool_calls: bool = True,
        detect_code_blocks: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize an IDLE state machine.

        Args:
            sink: Destination for every emitted event.
            strip_ansi: Clean lines of ANSI sequences before classifying.
            detect_tool_calls: Enable the tool-marker boundary.
            detect_code_blocks: Enable the code-fence boundaries.
            clock: Monotonic clock used for durations, in seconds.
        """
        self._sink = sink
        self._strip_ansi = strip_ansi
        self._options = {
            "detect_tool_calls": detect_tool_calls,
            "detect_code_blocks": detect_code_blocks,
        }
        self._clock = clock
        self.stats = Stats()
        self._handlers = {
            ParserState.IDLE: self._handle_idle,
            ParserState.USER_INPUT: self._handle_user_input,
            ParserState.ASSISTANT_RESPONSE: self._handle_response,
            ParserState.CODE_BLOCK: self._handle_code_block,
            ParserState.TOOL_CALL: self._handle_tool_call,
            ParserState.THINKING: self._handle_thinking,
            ParserState.WAITING: self._handle_waiting,
        }
        self._clear()

    def _clear(self) -> None:
        self.state = ParserState.IDLE
        self.previous_state: ParserState | None = None
        self.message: Message | None = None
        self.code_block: CodeBlock | None = None
        self.tool_call: ToolCall | None = None
        self.thinking: ThinkingBlock | None = None

    # --- Entry points ---

    def clean(self, raw: str) -> str:
        return clean_line(raw) if self._strip_ansi else raw

    def process_line(self, raw: str) -> None:
        """Classify one complete line, apply any boundary, then run the state handler."""
        line = self.clean(raw)
        boundary = classify_boundary(line, self.state, self._options)
        logger.log(
            TRACE, "line state=%s boundary=%s %r",
            self.state.value, boundary.kind.value if boundary else None, line[:200],
        )
        if boundary is not None and self._apply(boundary):
            return
        self._handlers[self.state](line, raw)

    def process_partial(self, raw: str) -> None:
        """Handle the unterminated tail left after a flush.

        A tail that looks like a prompt waiting for input ends the current
        message; otherwise it is surfaced as live-typing feedback.
        """
        line = self.clean(raw).rstrip("\r")
        if not line:
            return
        if (
            self.state in (ParserState.ASSISTANT_RESPONSE, ParserState.TOOL_CALL)
            and line[-1].isspace()
            and is_prompt(line)
        ):
            logger.debug("Prompt tail %r ends message", line)
            self._close_tool_call()
            self._end_message()
            self._transition(ParserState.IDLE)
            return
        if self.state is ParserState.ASSISTANT_RESPONSE:
            self._sink.emit(AssistantChunk(content=strip_response_marker(line), raw=raw, partial=True))

    def check_pause(self) -> None:
        """Emit an advisory pause if a response with content has gone quiet."""
        if self.state is not ParserState.ASSISTANT_RESPONSE or self.message is None:
            return
        if not self.message.content.strip():
            return
        self._sink.emit(PauseEvent(state=self.state, content_length=len(self.message.content)))

    def reset(self) -> None:
        """Drop every open block without emitting it and return to IDLE."""
        if self.state is not ParserState.IDLE:
            logger.debug("Reset from state=%s discards open blocks", self.state.value)
        self._clear()
        self._sink.emit(ResetEvent())

    def snapshot(self) -> ParserSnapshot:
        return ParserSnapshot(
            state=self.state,
            previous_state=self.previous_state,
            current_message_id=self.message.id if self.message else None,
            content_buffer_length=len(self.message.content) if self.message else 0,
            is_in_code_block=self.state is ParserState.CODE_BLOCK,
            is_in_tool_call=self.state is ParserState.TOOL_CALL,
            current_tool_call=(
                ToolCallInfo(self.tool_call.name, self.tool_call.details)
                if self.tool_call else None
            ),
            stats=Stats(**vars(self.stats)),
        )

    # --- Boundaries ---

    def _apply(self, boundary: Boundary) -> bool:
        """Perform the transition for ``boundary``.

        Returns:
            True when the boundary consumed the line, False when the line
            should still reach the new state's handler.
        """
        kind = boundary.kind
        if kind is BoundaryKind.FENCE_OPEN:
            self._close_tool_call()
            self._ensure_message()
            self._transition(ParserState.CODE_BLOCK)
            self.code_block = CodeBlock(language=boundary.language or "text")
            return True
        if kind is BoundaryKind.FENCE_CLOSE:
            self._emit_code_block()
            self._transition(ParserState.ASSISTANT_RESPONSE)
            return True
        if kind is BoundaryKind.TOOL_START:
            self._ensure_message()
            self._transition(ParserState.TOOL_CALL)
            self._open_tool_call(boundary.tool_name or "", boundary.tool_details)
            return True
        if kind is BoundaryKind.THINKING_OPEN:
            self._close_tool_call()
            self._ensure_message()
            self._inline_response(boundary.lead)
            self._transition(ParserState.THINKING)
            self.thinking = ThinkingBlock()
            before_close = split_thinking_close(boundary.text)
            if before_close is None:
                self._append_thinking(boundary.text)
            else:
                # Open and close tags on the same line
                self._append_thinking(before_close)
                self._emit_thinking()
                self._transition(ParserState.ASSISTANT_RESPONSE)
                self._inline_response(thinking_close_trail(boundary.text))
            return True
        if kind is BoundaryKind.THINKING_CLOSE:
            self._append_thinking(boundary.text)
            self._emit_thinking()
            self._transition(ParserState.ASSISTANT_RESPONSE)
            self._inline_response(boundary.trail)
            return True
        if kind is BoundaryKind.PROMPT:
            self._close_tool_call()
            self._end_message()
            self._transition(ParserState.IDLE)
            return False
        if kind is BoundaryKind.WORKING_STATUS:
            self._transition(ParserState.WAITING)
            return False
        if kind is BoundaryKind.CONTENT_START:
            self._transition(ParserState.ASSISTANT_RESPONSE)
            self._start_message()
            return False
        return False

    def _transition(self, new_state: ParserState) -> None:
        if new_state is self.state:
            return
        self.previous_state = self.state
        self.state = new_state
        logger.debug("State %s -> %s", self.previous_state.value, new_state.value)
        self._sink.emit(StateChange(from_state=self.previous_state, to_state=new_state))

    def _ensure_message(self) -> None:
        if self.state in _PRE_MESSAGE_STATES:
            self._transition(ParserState.ASSISTANT_RESPONSE)
            self._start_message()

    # --- State handlers ---

    def _handle_idle(self, line: str, raw: str) -> None:
        if is_prompt(line):
            self._sink.emit(PromptEvent(content=line, raw=raw))

    def _handle_user_input(self, line: str, raw: str) -> None:
        self._sink.emit(UserInput(content=line, raw=raw))

    def _handle_response(self, line: str, raw: str) -> None:
        content = strip_response_marker(line)
        if self.message is not None:
            self.message.content += content + "\n"
        self._sink.emit(AssistantChunk(content=content, raw=raw, partial=False))

    def _inline_response(self, text: str) -> None:
        # Prose sharing a line with a thinking tag
        text = text.strip()
        if text:
            self._handle_response(text, text)

    def _handle_code_block(self, line: str, raw: str) -> None:
        if self.code_block is not None and not is_fence_close(line):
            self.code_block.code += line + "\n"

    def _handle_tool_call(self, line: str, raw: str) -> None:
        if self.tool_call is None:
            return
        if not has_tool_marker(line):
            self.tool_call.output += strip_tool_connector(line) + "\n"
            return
        self._close_tool_call()
        call = parse_tool_call(line)
        if call is not None:
            self._open_tool_call(*call)
        else:
            # Marker followed by prose: the model is talking again
            self._transition(ParserState.ASSISTANT_RESPONSE)
            self._handle_response(line, raw)

    def _handle_thinking(self, line: str, raw: str) -> None:
        if self.thinking is not None and split_thinking_close(line) is None:
            self.thinking.content += line + "\n"

    def _handle_waiting(self, line: str, raw: str) -> None:
        if is_working_status(line):
            self._sink.emit(StatusEvent(status="working", content=line.strip()))

    # --- Block lifecycles ---

    def _start_message(self) -> None:
        self.message = Message(id=new_message_id(), started_at=self._clock())
        self._sink.emit(MessageStart(message_id=self.message.id))

    def _end_message(self) -> None:
        message = self.message
        if message is None:
            return
        self.message = None
        content = message.content.strip()
        if not content:
            logger.debug("Message %s ended empty, suppressed", message.id)
            return
        message.duration = self._clock() - message.started_at
        self._sink.emit(MessageEnd(
            message_id=message.id, content=content, duration=message.duration,
        ))
        self.stats.messages_emitted += 1

    def _emit_code_block(self) -> None:
        block = self.code_block
        if block is None:
            return
        self.code_block = None
        code = block.code[:-1] if block.code.endswith("\n") else block.code
        self._sink.emit(CodeBlockEvent(language=block.language, code=code))
        if self.message is not None:
            self.message.content += f"```{block.language}\n{code}\n```\n"
        self.stats.code_blocks_detected += 1

    def _open_tool_call(self, name: str, details: str | None) -> None:
        self.tool_call = ToolCall(name=name, details=details, started_at=self._clock())
        logger.debug("Tool call start name=%s details=%r", name, details)
        self._sink.emit(ToolCallEvent(phase=ToolCallPhase.START, name=name, details=details))

    def _close_tool_call(self) -> None:
        call = self.tool_call
        if call is None:
            return
        self.tool_call = None
        call.duration = self._clock() - call.started_at
        self._sink.emit(ToolCallEvent(
            phase=ToolCallPhase.END,
            name=call.name,
            details=call.details,
            output=call.output.strip(),
            duration=call.duration,
        ))
        self.stats.tool_calls_detected += 1

    def _append_thinking(self, text: str) -> None:
        if self.thinking is not None and text.strip():
            self.thinking.content += text + "\n"

    def _emit_thinking(self) -> None:
        block = self.thinking
        self.thinking = None
        if block is None:
            return
        content = block.content.strip()
        if content:
            self._sink.emit(ThinkingEvent(content=content))

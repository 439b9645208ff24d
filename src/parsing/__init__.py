"""Stream parsing pipeline: line_assembler → ansi → ui_patterns → state_machine → events."""

from src.parsing.events import EventKind, EventSink, ParserEvent  # noqa: F401
from src.parsing.models import ParserSnapshot, ParserState  # noqa: F401

__all__ = ["EventKind", "EventSink", "ParserEvent", "ParserSnapshot", "ParserState"]

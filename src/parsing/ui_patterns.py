"""Line patterns for Claude Code / shell output and the boundary rule table.

Each predicate here is a pure function of one ANSI-free line. The rule
table :data:`BOUNDARY_RULES` lists them in priority order together with the
parser states in which they apply; :func:`classify_boundary` walks the table
and returns the first boundary that matches, or ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from src.parsing.models import ParserState

# --- Line patterns ---

# Opening fence: ``` plus optional language token (c++, objective-c, c# included)
_FENCE_OPEN_RE = re.compile(r"^```([\w+#.-]*)\s*$")
_FENCE_CLOSE_RE = re.compile(r"^```\s*$")

# Claude's filled circle marks both tool calls and response text
_TOOL_MARKER = "⏺"
# "⏺ Read(file.txt)", "⏺ Read (file.txt)", "⏺ Bash(echo (nested))".
# Details run from the first "(" to a ")" that ends the line.
_TOOL_CALL_RE = re.compile(r"^\s*⏺\s+([A-Z](?:[\w.:-]*\w)?)(?:\s*\((.*)\))?\s*$")
_RESPONSE_MARKER_RE = re.compile(r"^\s*⏺\s?")
_TOOL_CONNECTOR_RE = re.compile(r"^\s*⎿\s?")

_THINKING_OPEN_RE = re.compile(r"<thinking>", re.IGNORECASE)
_THINKING_CLOSE_RE = re.compile(r"</thinking>", re.IGNORECASE)

# Shell prompt: optional "(venv)", optional context (user@host:path, [user@host dir]),
# then a prompt glyph followed by whitespace or end of line.
_PROMPT_RE = re.compile(
    r"^\s*(?:\([^)]*\)\s*)?"
    r"(?:(?P<ctx>\[[^\]]*\]|[\w.@:~/\\-]+)\s?)?"
    r"(?P<glyph>[❯>$#%])(?:\s|$)"
)
_PROMPT_CTX_MARKERS = frozenset("@:~/[")

# Spinner status: "✶ Activating sleeper agents…", "· Pondering… (3s)"
_THINKING_STAR_RE = re.compile(r"^[✶✳✻✽✢·]\s+(.+…(?:\s*\(.+\))?)$")
_STATUS_WORKING_RE = re.compile(r"^(?:Thinking|Working|Processing)\.{2,}", re.IGNORECASE)


def match_fence_open(line: str) -> str | None:
    """Return the fence language (``"text"`` when absent) or None."""
    m = _FENCE_OPEN_RE.match(line.strip())
    if not m:
        return None
    return m.group(1) or "text"


def is_fence_close(line: str) -> bool:
    return bool(_FENCE_CLOSE_RE.match(line.strip()))


def has_tool_marker(line: str) -> bool:
    return line.lstrip().startswith(_TOOL_MARKER)


def parse_tool_call(line: str) -> tuple[str, str | None] | None:
    """Parse a tool marker line into ``(name, details)``.

    Returns None for marker lines that carry response prose instead of a
    call, e.g. ``"⏺ The answer is 4."``.
    """
    m = _TOOL_CALL_RE.match(line)
    if not m:
        return None
    details = m.group(2)
    return m.group(1), (details.strip() or None) if details is not None else None


def split_thinking_open(line: str) -> str | None:
    """Return the text after an opening thinking tag, or None if absent."""
    m = _THINKING_OPEN_RE.search(line)
    return line[m.end():] if m else None


def split_thinking_close(line: str) -> str | None:
    """Return the text before a closing thinking tag, or None if absent."""
    m = _THINKING_CLOSE_RE.search(line)
    return line[:m.start()] if m else None


def thinking_close_trail(line: str) -> str:
    """Return the text after a closing thinking tag, or "" if absent."""
    m = _THINKING_CLOSE_RE.search(line)
    return line[m.end():] if m else ""


def is_prompt(line: str) -> bool:
    """Heuristic shell/CLI prompt check (``$ ``, ``❯``, ``user@host:~/dir$``).

    ``#`` and ``%`` only count with a path or user@host context so that
    markdown headings and percentages stay content.
    """
    m = _PROMPT_RE.match(line)
    if not m:
        return False
    ctx = m.group("ctx")
    if ctx and not _PROMPT_CTX_MARKERS.intersection(ctx):
        return False
    if m.group("glyph") in "#%" and not ctx:
        return False
    return True


def is_working_status(line: str) -> bool:
    stripped = line.strip()
    return bool(_THINKING_STAR_RE.match(stripped) or _STATUS_WORKING_RE.match(stripped))


def strip_response_marker(line: str) -> str:
    """Drop a leading ⏺ so response text reads as plain prose."""
    return _RESPONSE_MARKER_RE.sub("", line, count=1)


def strip_tool_connector(line: str) -> str:
    """Drop a leading ⎿ connector from tool output lines."""
    return _TOOL_CONNECTOR_RE.sub("", line, count=1)


# --- Boundary rules ---


class BoundaryKind(Enum):
    FENCE_OPEN = "fence_open"
    FENCE_CLOSE = "fence_close"
    TOOL_START = "tool_start"
    THINKING_OPEN = "thinking_open"
    THINKING_CLOSE = "thinking_close"
    PROMPT = "prompt"
    WORKING_STATUS = "working_status"
    CONTENT_START = "content_start"


@dataclass(frozen=True)
class Boundary:
    """A detected state boundary and the values captured from its line.

    ``text`` holds the thinking content sharing the line with a tag.
    ``lead`` is response text before an opening tag and ``trail`` is
    response text after a closing tag.
    """

    kind: BoundaryKind
    language: str | None = None
    tool_name: str | None = None
    tool_details: str | None = None
    text: str = ""
    lead: str = ""
    trail: str = ""


@dataclass(frozen=True)
class BoundaryRule:
    """One entry of the priority table.

    Attributes:
        kind: Boundary produced when ``detect`` matches.
        states: Parser states in which the rule is evaluated.
        detect: Pure predicate returning a Boundary or None.
        option: Name of the ParserConfig flag that enables the rule, if any.
    """

    kind: BoundaryKind
    states: frozenset[ParserState]
    detect: Callable[[str], Boundary | None]
    option: str | None = None


def _detect_fence_open(line: str) -> Boundary | None:
    language = match_fence_open(line)
    if language is None:
        return None
    return Boundary(BoundaryKind.FENCE_OPEN, language=language)


def _detect_fence_close(line: str) -> Boundary | None:
    return Boundary(BoundaryKind.FENCE_CLOSE) if is_fence_close(line) else None


def _detect_tool_start(line: str) -> Boundary | None:
    if not has_tool_marker(line):
        return None
    call = parse_tool_call(line)
    if call is None:
        return None
    return Boundary(BoundaryKind.TOOL_START, tool_name=call[0], tool_details=call[1])


def _detect_thinking_open(line: str) -> Boundary | None:
    m = _THINKING_OPEN_RE.search(line)
    if not m:
        return None
    return Boundary(BoundaryKind.THINKING_OPEN, text=line[m.end():], lead=line[:m.start()])


def _detect_thinking_close(line: str) -> Boundary | None:
    m = _THINKING_CLOSE_RE.search(line)
    if not m:
        return None
    return Boundary(BoundaryKind.THINKING_CLOSE, text=line[:m.start()], trail=line[m.end():])


def _detect_prompt(line: str) -> Boundary | None:
    return Boundary(BoundaryKind.PROMPT) if is_prompt(line) else None


def _detect_working_status(line: str) -> Boundary | None:
    return Boundary(BoundaryKind.WORKING_STATUS, text=line.strip()) if is_working_status(line) else None


def _detect_content_start(line: str) -> Boundary | None:
    if not line.strip() or is_prompt(line) or is_working_status(line):
        return None
    return Boundary(BoundaryKind.CONTENT_START)


_S = ParserState
# States whose content is prose, where new blocks may open
_OPENABLE = frozenset({_S.IDLE, _S.WAITING, _S.USER_INPUT, _S.ASSISTANT_RESPONSE, _S.TOOL_CALL})

BOUNDARY_RULES: tuple[BoundaryRule, ...] = (
    BoundaryRule(BoundaryKind.FENCE_OPEN, _OPENABLE, _detect_fence_open, "detect_code_blocks"),
    BoundaryRule(BoundaryKind.FENCE_CLOSE, frozenset({_S.CODE_BLOCK}), _detect_fence_close, "detect_code_blocks"),
    # TOOL_CALL is excluded: the tool-call handler owns marker lines there
    BoundaryRule(BoundaryKind.TOOL_START, _OPENABLE - {_S.TOOL_CALL}, _detect_tool_start, "detect_tool_calls"),
    BoundaryRule(BoundaryKind.THINKING_OPEN, _OPENABLE, _detect_thinking_open),
    BoundaryRule(BoundaryKind.THINKING_CLOSE, frozenset({_S.THINKING}), _detect_thinking_close),
    BoundaryRule(
        BoundaryKind.PROMPT,
        frozenset({_S.ASSISTANT_RESPONSE, _S.TOOL_CALL, _S.WAITING}),
        _detect_prompt,
    ),
    BoundaryRule(BoundaryKind.WORKING_STATUS, frozenset({_S.IDLE}), _detect_working_status),
    BoundaryRule(BoundaryKind.CONTENT_START, frozenset({_S.IDLE, _S.WAITING}), _detect_content_start),
)


def classify_boundary(
    line: str,
    state: ParserState,
    options: dict[str, bool] | None = None,
    rules: tuple[BoundaryRule, ...] = BOUNDARY_RULES,
) -> Boundary | None:
    """Find the first boundary rule that applies to ``line`` in ``state``.

    Args:
        line: ANSI-free line without its terminator.
        state: Current parser state.
        options: Rule switches keyed by ``BoundaryRule.option``; a missing
            key means enabled.
        rules: Rule table to evaluate, highest priority first.

    Returns:
        The first matching Boundary, or None when the line causes no
        transition and belongs to the current state's handler.
    """
    options = options or {}
    for rule in rules:
        if state not in rule.states:
            continue
        if rule.option is not None and not options.get(rule.option, True):
            continue
        boundary = rule.detect(line)
        if boundary is not None:
            return boundary
    return None

"""ANSI escape handling: stripping for classification, SGR decoding for styling."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace

# Cursor forward: ESC[NC. Claude Code uses ESC[1C between words.
_CURSOR_FORWARD_RE = re.compile(r"\x1b\[(\d*)C")

# Counts come from the stream; a move never widens a line past this
MAX_CURSOR_FORWARD = 512

# Longer numeric parameters are treated as unknown
_MAX_PARAM_DIGITS = 4

# Order matters: the single-escape catch-all is last so it cannot cut a
# longer sequence (DCS starts with ESC P, CSI with ESC [, ...) in half.
_ANSI_RE = re.compile(
    r"\x1b"
    r"(?:"
    r"\[[0-?]*[ -/]*[@-~]"              # CSI (SGR and private modes included)
    r"|\][^\x07\x1b]*(?:\x07|\x1b\\)"   # OSC: ESC ] ... BEL or ST
    r"|[PX^_][^\x1b]*\x1b\\"            # DCS, SOS, PM, APC: ... ST
    r"|[ -/]+[0-~]"                     # nF: ESC ( B and friends
    r"|[0-~]"                           # two-byte escapes
    r")"
)

# Truncated sequences leave a bare ESC behind; dropping it keeps strip a fixed point
_STRAY_ESC_RE = re.compile(r"\x1b")

_SGR_RE = re.compile(r"\x1b\[([0-9;]*)m")


def strip_ansi(text: str) -> str:
    """Remove every ANSI escape sequence from ``text``.

    Malformed or truncated sequences are removed best-effort; the function
    never raises and ``strip_ansi(strip_ansi(x)) == strip_ansi(x)``.
    """
    if "\x1b" not in text:
        return text
    return _STRAY_ESC_RE.sub("", _ANSI_RE.sub("", text))


def expand_cursor_forward(text: str) -> str:
    """Replace ``ESC[nC`` cursor-forward moves with ``n`` spaces.

    ``n`` is capped at ``MAX_CURSOR_FORWARD``.
    """
    return _CURSOR_FORWARD_RE.sub(lambda m: " " * _cursor_count(m.group(1)), text)


def _cursor_count(digits: str) -> int:
    if not digits:
        return 1
    if len(digits) > _MAX_PARAM_DIGITS:
        return MAX_CURSOR_FORWARD
    return min(int(digits), MAX_CURSOR_FORWARD)


def clean_line(text: str) -> str:
    """Line cleanup used before classification: cursor-forward to spaces, then strip."""
    return strip_ansi(expand_cursor_forward(text))


@dataclass(frozen=True)
class TextStyle:
    """SGR attributes in effect for a span. ``None`` means never set."""

    bold: bool | None = None
    dim: bool | None = None
    italic: bool | None = None
    underline: bool | None = None
    inverse: bool | None = None
    strikethrough: bool | None = None
    foreground: int | None = None
    background: int | None = None


@dataclass(frozen=True)
class StyleSpan:
    """A run of text rendered with one :class:`TextStyle`."""

    text: str
    style: TextStyle = field(default_factory=TextStyle)


_SET_FLAGS = {
    1: {"bold": True},
    2: {"dim": True},
    3: {"italic": True},
    4: {"underline": True},
    7: {"inverse": True},
    9: {"strikethrough": True},
    22: {"bold": False, "dim": False},
    23: {"italic": False},
    24: {"underline": False},
    27: {"inverse": False},
    29: {"strikethrough": False},
    39: {"foreground": None},
    49: {"background": None},
}


def apply_sgr_codes(codes: list[int], style: TextStyle) -> TextStyle:
    """Fold a list of SGR parameters into ``style`` and return the result.

    Unknown codes are ignored. Extended colour selectors (``38;5;n``,
    ``38;2;r;g;b`` and the ``48`` background forms) are skipped as a unit
    so their arguments are not read as standalone codes.
    """
    i = 0
    while i < len(codes):
        code = codes[i]
        i += 1
        if code == 0:
            style = TextStyle()
        elif code in _SET_FLAGS:
            style = replace(style, **_SET_FLAGS[code])
        elif 30 <= code <= 37:
            style = replace(style, foreground=code - 30)
        elif 90 <= code <= 97:
            style = replace(style, foreground=code - 90 + 8)
        elif 40 <= code <= 47:
            style = replace(style, background=code - 40)
        elif 100 <= code <= 107:
            style = replace(style, background=code - 100 + 8)
        elif code in (38, 48) and i < len(codes):
            if codes[i] == 5:
                i += 2
            elif codes[i] == 2:
                i += 4
    return style


def _parse_params(params: str) -> list[int]:
    # Empty parameters ("ESC[m", "ESC[;1m") mean 0; overlong ones map to -1, an unknown code
    return [
        -1 if len(p) > _MAX_PARAM_DIGITS else int(p) if p else 0
        for p in params.split(";")
    ]


def decode_styles(text: str) -> list[StyleSpan]:
    """Split ``text`` into styled spans by interpreting SGR sequences.

    Only SGR (``ESC[...m``) sequences are interpreted; other escapes are left
    in the span text untouched.

    Args:
        text: Raw terminal text containing SGR sequences.

    Returns:
        Spans in order, each with a snapshot of the style in effect.
        Empty runs between adjacent sequences are not emitted.
    """
    spans: list[StyleSpan] = []
    style = TextStyle()
    last = 0
    for match in _SGR_RE.finditer(text):
        if match.start() > last:
            spans.append(StyleSpan(text[last:match.start()], style))
        style = apply_sgr_codes(_parse_params(match.group(1)), style)
        last = match.end()
    if last < len(text):
        spans.append(StyleSpan(text[last:], style))
    return spans

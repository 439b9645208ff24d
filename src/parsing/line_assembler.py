"""Byte-safe line buffering for a PTY stream.

Chunks arrive with no alignment to lines, escape sequences or even UTF-8
characters. Bytes go through an incremental decoder so a multi-byte
character split across two reads is decoded once both halves are here.
"""

from __future__ import annotations

import codecs
import re

# Claude Code terminates lines with \r\r\n; plain shells with \r\n or \n
_LINE_END_RE = re.compile(r"\r*\n")


class LineAssembler:
    """Accumulate decoded text and hand out complete lines.

    The unterminated tail is never dropped: it stays buffered until a line
    terminator arrives, :meth:`clear` is called, or a final split releases it.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")("replace")
        self._buffer = ""

    @property
    def tail(self) -> str:
        return self._buffer

    def feed(self, data: str | bytes) -> int:
        """Append a chunk and return its size in bytes."""
        if isinstance(data, str):
            # Keep ordering if a str chunk follows a dangling byte sequence
            if self._decoder.getstate()[0]:
                self._buffer += self._decoder.decode(b"", final=True)
                self._decoder.reset()
            self._buffer += data
            return len(data.encode("utf-8", errors="replace"))
        self._buffer += self._decoder.decode(bytes(data))
        return len(data)

    def split(self, final: bool = False) -> list[str]:
        """Remove and return every complete line in the buffer.

        Args:
            final: End of stream. Pending bytes are decoded (invalid ones as
                U+FFFD) and a non-empty tail is returned as a last line.

        Returns:
            Complete lines without their terminators, in arrival order.
        """
        if final:
            self._buffer += self._decoder.decode(b"", final=True)
            self._decoder.reset()
        if not self._buffer:
            return []
        lines = _LINE_END_RE.split(self._buffer)
        self._buffer = lines.pop()
        if final and self._buffer:
            lines.append(self._buffer)
            self._buffer = ""
        return lines

    def clear(self) -> None:
        self._buffer = ""
        self._decoder.reset()

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import pexpect

from src.log_setup import TRACE

logger = logging.getLogger(__name__)


class ClaudeProcess:
    """Async wrapper around a pexpect-managed CLI subprocess in a PTY.

    Output is read as raw bytes: decoding (including characters split
    across reads) is left to the stream parser.
    """

    def __init__(
        self,
        command: str,
        args: list[str],
        cwd: str,
        env: dict[str, str] | None = None,
        dimensions: tuple[int, int] = (40, 120),
    ) -> None:
        """Initialize a ClaudeProcess without spawning it.

        Args:
            command: The CLI command to execute (e.g. "claude").
            args: List of command-line arguments to pass.
            cwd: Working directory in which to spawn the process.
            env: Extra environment variables to set for the process.
                 Merged on top of the current environment. Tilde (~)
                 in values is expanded to the user home directory.
            dimensions: PTY size as (rows, cols).
        """
        self._command = command
        self._args = args
        self._cwd = cwd
        self._env = self._build_env(env or {})
        self._dimensions = dimensions
        self._process: pexpect.spawn | None = None
        self._buffer = bytearray()
        self._eof = False

    @staticmethod
    def _build_env(extra: dict[str, str]) -> dict[str, str]:
        """Merge extra env vars into a copy of the current environment.

        Expands ~ to the user home directory in values.
        """
        merged = os.environ.copy()
        for key, value in extra.items():
            merged[key] = str(Path(value).expanduser()) if "~" in value else value
        return merged

    async def spawn(self) -> None:
        """Spawn the command in a PTY on a background thread."""
        logger.debug("Spawning process: cmd=%s args=%s cwd=%s", self._command, self._args, self._cwd)
        loop = asyncio.get_running_loop()
        self._process = await loop.run_in_executor(
            None,
            lambda: pexpect.spawn(
                self._command,
                self._args,
                cwd=self._cwd,
                env=self._env,
                encoding=None,
                timeout=5,
                maxread=4096,
                dimensions=self._dimensions,
            ),
        )
        self._eof = False
        logger.debug("Process spawned pid=%d", self._process.pid)

    def is_alive(self) -> bool:
        if self._process is None:
            return False
        return self._process.isalive()

    @property
    def at_eof(self) -> bool:
        """True once the PTY reported end of file (output fully drained)."""
        return self._eof

    async def write(self, text: str) -> None:
        """Send raw text to the process via the PTY.

        Does nothing if the process is not alive.
        """
        if not self.is_alive():
            return
        logger.debug("PTY write: %r", text[:200])
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._process.send, text.encode("utf-8"))

    def read_available(self) -> bytes:
        """Drain all currently available output from the PTY.

        Non-blocking; safe to call when nothing is available.

        Returns:
            Bytes read since the last call, or ``b""``.
        """
        if self._process is None:
            return b""
        try:
            while True:
                try:
                    chunk = self._process.read_nonblocking(size=4096, timeout=0)
                    logger.log(TRACE, "PTY read chunk len=%d", len(chunk))
                    self._buffer.extend(chunk)
                except pexpect.TIMEOUT:
                    break
                except pexpect.EOF:
                    self._eof = True
                    break
        except OSError as exc:
            logger.warning("Unexpected error draining PTY buffer: %s", exc)
            self._eof = True
        result = bytes(self._buffer)
        self._buffer.clear()
        return result

    async def terminate(self) -> None:
        """Force-close the PTY process if it is still alive."""
        if self._process is None:
            return
        logger.debug("Terminating process pid=%s", self._process.pid)
        loop = asyncio.get_running_loop()
        if self._process.isalive():
            await loop.run_in_executor(None, self._process.close, True)

    def exit_code(self) -> int | None:
        """Return the exit code, or the signal number if the process was killed."""
        if self._process is None:
            return None
        # pexpect sets signalstatus (not exitstatus) when process is killed by signal
        if self._process.exitstatus is not None:
            return self._process.exitstatus
        return self._process.signalstatus

"""StreamSession: pump one PTY process into one OutputParser."""

from __future__ import annotations

import asyncio
import logging
from typing import BinaryIO

from src.claude_process import ClaudeProcess
from src.config import ParserConfig, ProcessConfig
from src.output_parser import OutputParser

logger = logging.getLogger(__name__)


class StreamSession:
    """Bind a :class:`ClaudeProcess` to its own :class:`OutputParser`.

    Each session owns exactly one parser, so sessions never share parsing
    state. :meth:`run` polls the PTY until the process exits and its output
    is drained, then performs a final flush and destroys the parser.
    """

    def __init__(
        self,
        process: ClaudeProcess,
        parser: OutputParser,
        poll_interval_ms: int = 50,
        capture: BinaryIO | None = None,
    ) -> None:
        """Bind ``process`` to ``parser``.

        Args:
            process: PTY process to read from; spawned by :meth:`run`.
            parser: Parser owned by this session.
            poll_interval_ms: Sleep between PTY drains.
            capture: Optional binary file receiving every raw byte read,
                in order, for later replay.
        """
        self.process = process
        self.parser = parser
        self.capture = capture
        self._poll_interval = poll_interval_ms / 1000
        self._stopped = asyncio.Event()

    @classmethod
    def from_config(
        cls,
        process_config: ProcessConfig,
        parser_config: ParserConfig,
        capture: BinaryIO | None = None,
    ) -> StreamSession:
        process = ClaudeProcess(
            command=process_config.command,
            args=process_config.args,
            cwd=process_config.cwd,
            env=process_config.env,
        )
        return cls(
            process, OutputParser(parser_config), process_config.poll_interval_ms, capture,
        )

    def pump(self) -> int:
        """Move whatever the PTY has buffered into the parser.

        Returns:
            Number of bytes forwarded.
        """
        data = self.process.read_available()
        if data:
            if self.capture is not None:
                self.capture.write(data)
            self.parser.write(data)
        return len(data)

    async def run(self) -> int | None:
        """Spawn the process and stream its output until it ends or :meth:`stop`.

        Returns:
            The process exit code, or None if it was stopped before exiting.
        """
        await self.process.spawn()
        try:
            while not self._stopped.is_set():
                self.pump()
                if self.process.at_eof or not self.process.is_alive():
                    # Drain what was written between the last read and exit
                    self.pump()
                    break
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=self._poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.parser.flush(final=True)
            self.parser.destroy()
            await self.process.terminate()
        code = self.process.exit_code()
        logger.info("Session ended exit_code=%s", code)
        return code

    def stop(self) -> None:
        self._stopped.set()

    async def send(self, text: str) -> None:
        """Forward user keystrokes to the PTY."""
        await self.process.write(text)

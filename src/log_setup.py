"""Logging for the stream parser: a TRACE level below DEBUG plus trace artifacts.

Trace mode writes two files per run under ``TRACE_DIR``, sharing one
timestamp: ``trace-<ts>.log`` with every record down to TRACE, and
``pty-<ts>.raw`` with the untouched PTY bytes, which ``--replay`` accepts.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import BinaryIO

TRACE = 5
TRACE_DIR = "debug"
LOGGER_NAME = "src"

logging.addLevelName(TRACE, "TRACE")


def _trace(self, message, *args, **kwargs):
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


logging.Logger.trace = _trace

_CONSOLE_FMT = "%(levelname)-5s %(name)s: %(message)s"
_FILE_FMT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s:%(funcName)s:%(lineno)d %(message)s"
_FILE_DATEFMT = "%H:%M:%S"


def _console_level(debug: bool, trace: bool, verbose: bool) -> int:
    if trace and verbose:
        return TRACE
    if debug or trace:
        return logging.DEBUG
    return logging.INFO


def trace_path(prefix: str, suffix: str, stamp: str | None = None) -> str:
    """Return ``TRACE_DIR/<prefix>-<stamp><suffix>``, creating the directory."""
    os.makedirs(TRACE_DIR, exist_ok=True)
    stamp = stamp or datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    return os.path.join(TRACE_DIR, f"{prefix}-{stamp}{suffix}")


def setup_logging(
    *, debug: bool, trace: bool, verbose: bool
) -> logging.Logger:
    """Configure the package logger that every ``src.*`` module logger propagates to.

    Console output goes to stderr so stdout stays free for the event stream.
    Calling it again replaces the previous handlers.
    """
    root = logging.getLogger(LOGGER_NAME)
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(TRACE)

    console = logging.StreamHandler()
    console.setLevel(_console_level(debug, trace, verbose))
    console.setFormatter(logging.Formatter(_CONSOLE_FMT))
    root.addHandler(console)

    if trace:
        fh = logging.FileHandler(trace_path("trace", ".log"), encoding="utf-8")
        fh.setLevel(TRACE)
        fh.setFormatter(logging.Formatter(_FILE_FMT, datefmt=_FILE_DATEFMT))
        root.addHandler(fh)

    return root


def open_pty_capture() -> BinaryIO:
    """Open a fresh ``pty-<ts>.raw`` file for the raw PTY byte stream."""
    path = trace_path("pty", ".raw")
    logging.getLogger(__name__).info("Capturing raw PTY output to %s", path)
    return open(path, "wb")

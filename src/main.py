from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path

from src.config import AppConfig, ConfigError, load_config
from src.log_setup import open_pty_capture, setup_logging
from src.output_parser import OutputParser
from src.parsing.events import ParserEvent, event_to_dict
from src.session import StreamSession

logger = logging.getLogger(__name__)

REPLAY_CHUNK_SIZE = 512


def print_event(event: ParserEvent) -> None:
    """Write one event to stdout as a JSON line."""
    sys.stdout.write(json.dumps(event_to_dict(event), ensure_ascii=False) + "\n")
    sys.stdout.flush()


def replay(path: str, parser: OutputParser, chunk_size: int = REPLAY_CHUNK_SIZE) -> int:
    """Feed a captured raw PTY log through ``parser`` in fixed-size chunks.

    Returns:
        Number of bytes replayed.
    """
    data = Path(path).read_bytes()
    for start in range(0, len(data), chunk_size):
        parser.write(data[start:start + chunk_size])
        parser.flush()
    parser.flush(final=True)
    parser.destroy()
    logger.info("Replayed %d bytes from %s", len(data), path)
    return len(data)


def _load_app_config(path: str | None) -> AppConfig:
    if path is None:
        if os.path.exists("config.yaml"):
            return load_config("config.yaml")
        return AppConfig()
    return load_config(path)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run a CLI in a PTY and print its output as chat events (JSON lines)",
    )
    parser.add_argument("--config", default=None,
                        help="Path to YAML config file (default: ./config.yaml if present)")
    parser.add_argument("--replay", metavar="FILE", default=None,
                        help="Parse a captured raw PTY log instead of spawning a process")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug mode (verbose logging)")
    parser.add_argument("--trace", action="store_true",
                        help="Enable trace mode (writes trace file to debug/)")
    parser.add_argument("--verbose", action="store_true",
                        help="With --trace, also send trace output to terminal")
    parser.add_argument("command", nargs=argparse.REMAINDER,
                        help="Command to run instead of process.command from the config")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Entry point: stream a PTY session (or a replay) to stdout."""
    args = _parse_args(argv)
    try:
        config = _load_app_config(args.config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    trace = args.trace or config.debug.trace
    setup_logging(
        debug=args.debug or config.debug.enabled,
        trace=trace,
        verbose=args.verbose or config.debug.verbose,
    )

    if args.replay:
        parser = OutputParser(config.parser)
        parser.subscribe(print_event)
        replay(args.replay, parser)
        return 0

    if args.command:
        config.process.command = args.command[0]
        config.process.args = args.command[1:]

    capture = open_pty_capture() if trace else None
    session = StreamSession.from_config(config.process, config.parser, capture)
    session.parser.subscribe(print_event)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, session.stop)

    logger.info("Streaming %s %s", config.process.command, " ".join(config.process.args))
    try:
        code = await session.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        if capture is not None:
            capture.close()
    return code or 0


def cli() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()

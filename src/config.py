from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


@dataclass
class ParserConfig:
    """Stream parser tuning: timer windows and detection switches."""

    pause_threshold_ms: int = 500
    strip_ansi: bool = True
    detect_tool_calls: bool = True
    detect_code_blocks: bool = True
    buffer_flush_interval_ms: int = 100

    def __post_init__(self) -> None:
        for name in ("pause_threshold_ms", "buffer_flush_interval_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"parser.{name} must be a non-negative integer, got {value!r}")
        for name in ("strip_ansi", "detect_tool_calls", "detect_code_blocks"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"parser.{name} must be true or false")


@dataclass
class ProcessConfig:
    """CLI process spawned in the PTY."""

    command: str = "claude"
    args: list[str] = field(default_factory=list)
    cwd: str = "."
    env: dict[str, str] = field(default_factory=dict)
    poll_interval_ms: int = 50


@dataclass
class DebugConfig:
    """Debug mode settings."""

    enabled: bool = False
    trace: bool = False
    verbose: bool = False


@dataclass
class AppConfig:
    """Top-level configuration aggregating all subsections."""

    parser: ParserConfig = field(default_factory=ParserConfig)
    process: ProcessConfig = field(default_factory=ProcessConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)


_PARSER_KEYS = frozenset(ParserConfig.__dataclass_fields__)


def load_config(path: str) -> AppConfig:
    """Load and validate configuration from a YAML file.

    Every section is optional; missing keys take the dataclass defaults.

    Args:
        path: Filesystem path to the YAML configuration file.

    Returns:
        A fully populated AppConfig instance.

    Raises:
        ConfigError: If the file does not exist, is not a mapping, names an
            unknown parser option, or holds an invalid value.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)
    # An empty file loads as None
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")

    # `or {}` fallback handles YAML null values for optional sections
    parser_raw = raw.get("parser", {}) or {}
    process_raw = raw.get("process", {}) or {}
    debug_raw = raw.get("debug", {}) or {}

    unknown = set(parser_raw) - _PARSER_KEYS
    if unknown:
        raise ConfigError(f"Unknown parser option(s): {', '.join(sorted(unknown))}")

    args = process_raw.get("args", []) or []
    if not isinstance(args, list):
        raise ConfigError("process.args must be a list")
    poll_interval_ms = process_raw.get("poll_interval_ms", 50)
    if not isinstance(poll_interval_ms, int) or poll_interval_ms <= 0:
        raise ConfigError("process.poll_interval_ms must be a positive integer")

    logger.debug("Loaded config from %s", path)

    return AppConfig(
        parser=ParserConfig(**parser_raw),
        process=ProcessConfig(
            command=process_raw.get("command", "claude"),
            args=[str(a) for a in args],
            cwd=process_raw.get("cwd", "."),
            env={str(k): str(v) for k, v in (process_raw.get("env", {}) or {}).items()},
            poll_interval_ms=poll_interval_ms,
        ),
        debug=DebugConfig(
            enabled=bool(debug_raw.get("enabled", False)),
            trace=bool(debug_raw.get("trace", False)),
            verbose=bool(debug_raw.get("verbose", False)),
        ),
    )

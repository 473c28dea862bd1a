"""
Logging configuration — central setup for all entrypoints.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    --debug  >  --verbose  >  --quiet  >  BUILDRIG_LOG_LEVEL env var  >  WARNING

Optional file output via BUILDRIG_LOG_FILE / BUILDRIG_LOG_FILE_LEVEL env vars.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Iterable, Mapping

ENV_LOG_LEVEL = "BUILDRIG_LOG_LEVEL"
ENV_LOG_FILE = "BUILDRIG_LOG_FILE"
ENV_LOG_FILE_LEVEL = "BUILDRIG_LOG_FILE_LEVEL"

REDACTED = "***"

# Console format by level; WARNING and above print the bare message
_CONSOLE_FORMATS = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(threadName)s %(name)s: %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FMT_FILE = "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d: %(message)s"


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(ENV_LOG_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger once for the whole process.

    Args:
        level: Console level name.
        log_file: Optional path of a log file, always in full detail.
        log_file_level: Level for the log file (default: *level*).
    """
    console_level = _parse_level(level)
    fmt, datefmt = "%(message)s", None
    for threshold in (logging.DEBUG, logging.INFO):
        if console_level <= threshold:
            fmt, datefmt = _CONSOLE_FORMATS[threshold]
            break

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric


# ── Secret redaction ────────────────────────────────────────────


def _ordered(secrets: Iterable[str]) -> list[str]:
    # Longest first so a secret containing another is fully masked
    return sorted({s for s in secrets if s}, key=len, reverse=True)


def redact(value: Any, secrets: Iterable[str]) -> Any:
    """Return *value* with every secret replaced by ``***``.

    Strings are rewritten; lists, tuples and dict values are walked
    recursively. Anything else is returned unchanged.
    """
    ordered = _ordered(secrets)
    if not ordered:
        return value
    return _redact_value(value, ordered)


def _redact_value(value: Any, secrets: list[str]) -> Any:
    if isinstance(value, str):
        for secret in secrets:
            value = value.replace(secret, REDACTED)
        return value
    if isinstance(value, dict):
        return {k: _redact_value(v, secrets) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact_value(v, secrets) for v in value]
    return value


class SecretFilter(logging.Filter):
    """Replace secret parameter values in log records with ``***``."""

    def __init__(self, secrets: Iterable[str]):
        super().__init__()
        self.secrets = _ordered(secrets)

    def _redact(self, text: str) -> str:
        return _redact_value(text, self.secrets)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = self._redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def install_secret_filter(secrets: Iterable[str]) -> SecretFilter:
    """Attach a SecretFilter to every root handler.

    Handler-level filters see records from all loggers, which a
    root-logger filter would not.
    """
    secret_filter = SecretFilter(secrets)
    for handler in logging.getLogger().handlers:
        for existing in [f for f in handler.filters if isinstance(f, SecretFilter)]:
            handler.removeFilter(existing)
        handler.addFilter(secret_filter)
    return secret_filter

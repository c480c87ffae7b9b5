"""Logging for the assistant session.

Records go to a rotating file under ``~/.keymentor/logs``. The REPL owns
stdout, so the console handler only reports warnings and up. The
``debug_enabled`` setting can be flipped while the session runs; that path
adjusts levels in place through :func:`set_debug` instead of rebuilding the
handlers. API keys are masked before a record reaches any handler.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
from pathlib import Path

__all__ = ["setup_logging", "set_debug", "get_log_path", "mask_api_keys"]

_DEFAULT_LOG_DIR = Path.home() / ".keymentor" / "logs"
_LOG_FILENAME = "keymentor.log"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_API_KEY_PATTERN = re.compile(r"(?<![A-Za-z0-9])sk-[A-Za-z0-9_\-]{8,}")
_LOG_PATH: Path | None = None


class _ApiKeyFilter(logging.Filter):
    """Rewrites records whose message contains something shaped like an API key."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = mask_api_keys(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def mask_api_keys(text: str) -> str:
    """Replace ``sk-...`` tokens with ``sk*****xy`` style hints."""

    return _API_KEY_PATTERN.sub(lambda match: _mask(match.group(0)), text)


def setup_logging(
    *,
    debug: bool = False,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Configure root logging for a session.

    Repeated calls return the existing log path unless ``force`` is set.

    Returns:
        The path of the active log file.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    level = _level_for(debug)
    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILENAME

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    key_filter = _ApiKeyFilter()

    handlers: list[logging.Handler] = []
    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(level)
    handlers.append(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        handlers.append(console_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(key_filter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _tune_external_loggers(level)

    _LOG_PATH = log_path
    return log_path


def set_debug(enabled: bool) -> int:
    """Raise or lower verbosity of the running session; returns the new level."""

    level = _level_for(enabled)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            handler.setLevel(level)
    _tune_external_loggers(level)
    return level


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH


def _level_for(debug: bool) -> int:
    return logging.DEBUG if debug else logging.INFO


def _mask(key: str) -> str:
    return f"{key[:2]}{'*' * (len(key) - 4)}{key[-2:]}"


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    env_override = os.environ.get("KEYMENTOR_LOG_DIR")
    return Path(log_dir or env_override or _DEFAULT_LOG_DIR).expanduser()


def _tune_external_loggers(root_level: int) -> None:
    quiet_level = logging.WARNING if root_level < logging.WARNING else root_level
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)

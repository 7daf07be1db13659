"""Logging setup for hosts embedding the highlight assistant.

Handlers are attached to the ``highlight_assistant`` package logger rather
than the root logger, so the host keeps control of its own logging. Records
still propagate to the root logger.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..services.settings import Settings

__all__ = [
    "PACKAGE_LOGGER",
    "SecretRedactingFilter",
    "setup_logging",
    "setup_logging_from_settings",
    "reset_logging",
    "get_log_path",
]

PACKAGE_LOGGER = "highlight_assistant"

_LOG_DIR_ENV = "HIGHLIGHT_ASSISTANT_LOG_DIR"
_LOG_FILENAME = "highlight_assistant.log"
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai")
_API_KEY_RE = re.compile(r"\b(sk-(?:or-v1-)?[A-Za-z0-9]{2})[A-Za-z0-9_-]{6,}")

_HANDLERS: list[logging.Handler] = []
_LOG_PATH: Path | None = None


class SecretRedactingFilter(logging.Filter):
    """Masks API keys (``sk-…`` and OpenRouter ``sk-or-v1-…``) in rendered messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _API_KEY_RE.sub(r"\1****", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = False,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Send package logs to a rotating file, plus stderr when ``console`` is set.

    Repeated calls return the existing log path unless ``force`` is set, in
    which case the previous handlers are closed and replaced.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH
    reset_logging()

    target_dir = Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _default_log_dir()).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILENAME

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    redactor = SecretRedactingFilter()
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        package_logger.addHandler(handler)
    package_logger.setLevel(level)
    _HANDLERS.extend(handlers)

    # Request logs from the HTTP stack stay at WARNING unless the package is stricter
    quiet_level = max(level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)

    _LOG_PATH = log_path
    package_logger.debug("Logging configured at %s", log_path)
    return log_path


def setup_logging_from_settings(settings: "Settings", **kwargs: object) -> Path:
    """Configure logging at DEBUG when ``settings.debug_logging`` is on, else INFO."""

    level = logging.DEBUG if settings.debug_logging else logging.INFO
    return setup_logging(level, **kwargs)  # type: ignore[arg-type]


def reset_logging() -> None:
    """Detach and close the handlers installed by :func:`setup_logging`."""

    global _LOG_PATH
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    while _HANDLERS:
        handler = _HANDLERS.pop()
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    _LOG_PATH = None


def get_log_path() -> Path | None:
    return _LOG_PATH


def _default_log_dir() -> Path:
    return Path.home() / ".highlight_assistant" / "logs"

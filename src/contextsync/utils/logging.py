"""Logging helpers for the context engine.

The engine is embedded inside an editor process, so only the ``contextsync``
logger hierarchy is configured; the host's root logger is left alone.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

from ..settings import LoggingSettings

__all__ = ["setup_logging", "get_log_path", "PACKAGE_LOGGER"]

PACKAGE_LOGGER = "contextsync"
_DEFAULT_LOG_DIR = Path.home() / ".contextsync" / "logs"
_HANDLER_MARK = "_contextsync_handler"
_LOG_PATH: Path | None = None


def setup_logging(
    settings: LoggingSettings | None = None,
    *,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """Attach a rotating file handler (and optionally console) to the package logger.

    Calling this again replaces the handlers installed by a previous call.
    """

    global _LOG_PATH
    config = settings or LoggingSettings()
    level = logging.DEBUG if config.debug else _parse_level(config.level)

    target_dir = _resolve_log_dir(config.log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / "contextsync.log"

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [file_handler]
    if config.console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        logger.addHandler(handler)

    logger.setLevel(level)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    _LOG_PATH = log_path
    logger.debug("Logging configured at %s (level=%s)", log_path, logging.getLevelName(level))
    return log_path


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH


def _parse_level(name: str) -> int:
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _resolve_log_dir(log_dir: str | None) -> Path:
    env_override = os.environ.get("CONTEXTSYNC_LOG_DIR")
    return Path(log_dir or env_override or _DEFAULT_LOG_DIR).expanduser()

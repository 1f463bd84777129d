"""Shared helpers."""

from .logging import PACKAGE_LOGGER, get_log_path, setup_logging

__all__ = ["PACKAGE_LOGGER", "get_log_path", "setup_logging"]

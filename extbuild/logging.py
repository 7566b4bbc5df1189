"""Logging utilities for extbuild commands."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "extbuild"
_PREFIX_WIDTH = 40


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the extbuild hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def module_prefix(name: str | None) -> str:
    """Return the padded ``[name]`` prefix used for per-module log lines."""
    return f"[{(name or ''):<{_PREFIX_WIDTH}}]"


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the extbuild logger with console output and optional file sink."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when CLI is invoked multiple times.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("[extbuild] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger", "module_prefix"]

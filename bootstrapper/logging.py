"""Console logging setup for the bootstrapper CLI and API.

Records go to stderr through a Rich handler. Records from third-party
loggers (httpx, uvicorn, sqlalchemy) get a short bracketed prefix so they
stand apart from convergence progress lines.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

PROJECT_PREFIX = "bootstrapper"

# Loggers that are chatty at INFO and only useful when debugging.
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "alembic.runtime.migration")


class ThirdPartyPrefixFilter(logging.Filter):
    """Set `record.prefix` to `[package]` for loggers outside this project."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith(PROJECT_PREFIX):
            record.prefix = f"[{record.name.split('.')[0]}]"
        else:
            record.prefix = ""
        return True


def logging_console_handler(level: int = logging.INFO, debug_mode: bool = False) -> RichHandler:
    """Build the Rich console handler.

    In debug mode the handler logs at DEBUG and shows source locations and
    logger names instead of the third-party prefix.

    Args:
        level: Minimum level for console output (overridden to DEBUG in debug_mode).
        debug_mode: Enable debug formatting.

    Returns:
        RichHandler: Handler suitable for the root logger.
    """

    if debug_mode:
        level = logging.DEBUG

    handler = RichHandler(
        level=level,
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_time=debug_mode,
        show_path=debug_mode,
        enable_link_path=debug_mode,
    )
    fmt = "%(prefix)s %(message)s" if not debug_mode else "%(name)s [%(threadName)s]: %(message)s"
    handler.setFormatter(logging.Formatter(fmt=fmt))
    if not debug_mode:
        handler.addFilter(ThirdPartyPrefixFilter())
    return handler


def logging_configure(level: str | int = "INFO", debug_mode: bool = False) -> RichHandler:
    """Install the console handler on the root logger, replacing earlier handlers.

    Args:
        level: Level name or number for console output.
        debug_mode: Enable debug formatting and DEBUG level.

    Returns:
        RichHandler: Installed handler.

    Raises:
        ValueError: Raised when the level name is unknown.
    """

    numeric_level = level if isinstance(level, int) else logging.getLevelName(str(level).strip().upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level}")

    handler = logging_console_handler(level=numeric_level, debug_mode=debug_mode)
    root_logger = logging.getLogger()
    for existing_handler in list(root_logger.handlers):
        root_logger.removeHandler(existing_handler)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if debug_mode else numeric_level)

    quiet_level = logging.DEBUG if debug_mode else logging.WARNING
    for logger_name in _QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
    return handler

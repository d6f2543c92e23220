"""Loguru logging for the data-access layer.

The package logs through loguru's global ``logger`` but keeps itself
disabled until the host application opts in with :func:`configure_logging`,
so importing the library never produces output on its own.
"""

import sys

import typing as t
from loguru import logger

from .config import DataAccessSettings, get_settings

LOG_FORMAT: dict[str, str] = {
    "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
    "level": " <level>{level:>8}</level>",
    "sep": " <b><w>in</w></b> ",
    "name": "<b>{name:>32}</b>",
    "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
    "message": "  <level>{message}</level>",
}

_handler_id: int | None = None


def configure_logging(
    settings: DataAccessSettings | None = None,
    sink: t.Any = None,
) -> int:
    """Enable package logging and (re)install its sink.

    Returns the loguru handler id of the installed sink.
    """
    global _handler_id

    settings = settings or get_settings()
    if _handler_id is not None:
        logger.remove(_handler_id)

    _handler_id = logger.add(
        sink or sys.stderr,
        level=settings.log_level,
        format="".join(LOG_FORMAT.values()),
        filter="schooldata",
        colorize=sink is None,
        backtrace=False,
        diagnose=False,
    )
    logger.enable("schooldata")
    return _handler_id


logger.disable("schooldata")

__all__ = ["LOG_FORMAT", "configure_logging", "logger"]

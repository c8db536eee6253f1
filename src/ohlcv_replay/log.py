"""Loguru sink setup.

Modules log through ``from loguru import logger``. Call
:func:`configure_logging` once at startup to swap loguru's default DEBUG
sink for a single sink at the configured level.
"""

from __future__ import annotations

import sys

from loguru import logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_sink_id: int | None = None


def configure_logging(level: str = "INFO", sink=sys.stderr) -> int:
    """Install a single sink at *level* and return its id.

    The first call also removes loguru's default handler; later calls
    replace the sink installed by the previous one.
    """
    global _sink_id
    if _sink_id is None:
        logger.remove()
    else:
        logger.remove(_sink_id)
    _sink_id = logger.add(
        sink,
        level=level.upper(),
        format=_FORMAT,
        backtrace=True,
        diagnose=False,
    )
    logger.debug("Logging configured at {}", level.upper())
    return _sink_id

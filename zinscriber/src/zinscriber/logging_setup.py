"""
Logging configuration driven by InscriberSettings.
"""

from __future__ import annotations

import sys

from loguru import logger

from zinscriber.config import InscriberSettings, get_settings

SHORT_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"
VERBOSE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(settings: InscriberSettings | None = None) -> None:
    """
    Configure loguru sinks.

    Always logs to stderr at ``log_level``. ``log_verbose`` switches to the
    format with module, function and line. When ``log_file`` is set, the same
    records also go to that file, rotated at ``log_rotation``.
    """
    settings = settings or get_settings()
    log_format = VERBOSE_FORMAT if settings.log_verbose else SHORT_FORMAT

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format=log_format)
    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            format=log_format,
            rotation=settings.log_rotation,
            colorize=False,
        )
    logger.debug(f"Logging configured at {settings.log_level}")

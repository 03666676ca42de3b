"""Logging configuration for notemap."""

import sys

from loguru import logger

from notemap.config import settings


def configure_logging(*, verbose: bool = False) -> None:
    """Configure loguru with appropriate level."""
    logger.remove()
    level = "DEBUG" if verbose else settings.log_level
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")

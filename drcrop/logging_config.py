"""Logging configuration module."""

import logging

from drcrop.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure root logger according to project conventions."""

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

"""Centralized logging configuration."""

from __future__ import annotations

import logging

from .config import get_settings


def setup_logging() -> None:
    """Configure the root logger from ``LOG_LEVEL`` and quiet chatty dependencies."""
    settings = get_settings()
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        level=getattr(logging, settings.log_level, logging.INFO),
        force=True,
    )

    for name in ("apscheduler", "httpx", "httpcore", "psycopg.pool"):
        logging.getLogger(name).setLevel(logging.WARNING)

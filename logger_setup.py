"""Console logging setup."""

from __future__ import annotations

import logging
import os


def setup_logger(level: str | None = None) -> None:
    """Sets up a basic console logger; level defaults to $LOG_LEVEL or INFO."""
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

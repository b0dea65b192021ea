"""Console logging setup for the CLI."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging once; a no-op when handlers are already installed."""

    level_num = (
        getattr(logging, str(level).upper(), logging.INFO) if isinstance(level, str) else level
    )
    logging.basicConfig(level=level_num, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger("alembic").setLevel(max(level_num, logging.WARNING))

"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys

from athlinked.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stdout handler on the root logger.

    Existing root handlers are cleared so that reloads under uvicorn do not
    duplicate every line.
    """
    root = logging.getLogger()
    if root.handlers:
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.setLevel((level or settings.log_level).upper())
    root.addHandler(handler)

    if settings.sql_debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

from __future__ import annotations

import logging

from .config import settings


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=settings.log_format,
    )

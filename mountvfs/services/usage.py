from __future__ import annotations

import logging

import psutil

from ..schemas import StoreUsage

logger = logging.getLogger(__name__)


def volume_usage(root: str) -> StoreUsage | None:
    try:
        usage = psutil.disk_usage(root)
    except OSError as exc:
        logger.warning('Usage lookup for %s failed: %s', root, exc)
        return None
    return StoreUsage(total=usage.total, used=usage.used, free=usage.free, percent=usage.percent)

"""
Clock helpers.

All state timestamps are UTC seconds, the same unit the registry uses for its
reference time. Poll scheduling uses the monotonic clock instead (see loop.py).
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional


def now_seconds() -> int:
    return int(round(time.time()))


def _utc(ts: Optional[float]) -> datetime:
    return datetime.fromtimestamp(time.time() if ts is None else ts, tz=timezone.utc)


def today(ts: Optional[float] = None) -> str:
    """Calendar day key, e.g. ``2024-03-17``."""
    return _utc(ts).strftime("%Y-%m-%d")


def ten_day_period(ts: Optional[float] = None) -> str:
    """Fee bucket key: ``YYYY-MM-1:10``, ``YYYY-MM-11:20`` or ``YYYY-MM-21:31``."""
    dt = _utc(ts)
    prefix = dt.strftime("%Y-%m-")
    if dt.day <= 10:
        return prefix + "1:10"
    if dt.day <= 20:
        return prefix + "11:20"
    return prefix + "21:31"

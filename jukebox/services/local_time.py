"""
Local Calendar Helpers

Day bucketing for the analytics time series. Every function takes an explicit
``tz``; ``None`` means the host's local timezone.
"""

from __future__ import annotations

import time as _time
from datetime import date, datetime, time, timedelta, tzinfo

DATE_FORMAT = "%Y-%m-%d"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(_time.time() * 1000)


def local_date(timestamp_ms: int, tz: tzinfo | None = None) -> date:
    """Calendar day of an epoch-millisecond timestamp in ``tz``."""
    # fromtimestamp(ts, None) converts to naive host-local time
    return datetime.fromtimestamp(timestamp_ms / 1000, tz).date()


def local_date_label(timestamp_ms: int, tz: tzinfo | None = None) -> str:
    """Format the local calendar day of a timestamp as ``YYYY-MM-DD``."""
    return local_date(timestamp_ms, tz).strftime(DATE_FORMAT)


def local_midnight_ms(day: date, tz: tzinfo | None = None) -> int:
    """Epoch milliseconds of local midnight at the start of ``day``."""
    midnight = datetime.combine(day, time.min, tzinfo=tz)
    return int(midnight.timestamp() * 1000)


def window_days(today: date, days: int) -> list[date]:
    """``days`` consecutive calendar days ending at ``today``, oldest first."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]

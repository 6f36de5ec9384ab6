"""
Clock helpers.

`MonotonicClock` issues strictly increasing UTC timestamps so two records
created by the same process never share a `created_at`.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

_TICK = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MonotonicClock:
    """
    Wall clock that never repeats or goes backwards.

    If the underlying source returns a value at or before the last issued
    timestamp, the result is bumped one microsecond past it.
    """

    def __init__(self, source: Optional[Callable[[], datetime]] = None) -> None:
        self._source = source or utc_now
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._source()
            if self._last is not None and current <= self._last:
                current = self._last + _TICK
            self._last = current
            return current


__all__ = ["MonotonicClock", "utc_now"]

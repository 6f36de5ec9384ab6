"""
Profiling utilities for spendsync.

Measures wall-clock time and resident memory around a block of work. The
reconciler wraps each sync pass in `profile_block` so the duration ends up in
`SyncResult` and `SyncStatus` for "last sync took N s" style reporting.

Usage:
    from spendsync.utils.profiler import profile_block

    with profile_block("sync") as stats:
        await reconciler.sync()

    print(stats.duration_seconds, stats.peak_rss_bytes)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)


def _current_rss() -> Optional[int]:
    try:
        return psutil.Process().memory_info().rss
    except psutil.Error:
        return None


@contextlib.contextmanager
def profile_block(label: str) -> Generator[ProfileStats, None, None]:
    """
    Context manager timing a block of code.

    RSS is sampled at entry and exit only; the block may contain awaits, so
    no background sampling thread is used.
    """
    stats = ProfileStats(label=label)
    rss_before = _current_rss()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts

        rss_after = _current_rss()
        samples = [value for value in (rss_before, rss_after) if value]
        stats.peak_rss_bytes = max(samples) if samples else None


__all__ = ["ProfileStats", "profile_block"]

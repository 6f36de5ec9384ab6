"""
Utilities package for spendsync.

Exports shared helpers for logging, profiling, and clocks. Keep this package
lightweight and free of domain-specific logic.
"""

from spendsync.utils.clock import MonotonicClock, utc_now
from spendsync.utils.logging import configure_logging, get_logger
from spendsync.utils.profiler import ProfileStats, profile_block

__all__ = [
    "MonotonicClock",
    "ProfileStats",
    "configure_logging",
    "get_logger",
    "profile_block",
    "utc_now",
]

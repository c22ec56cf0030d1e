"""Scheduled and batch jobs for Hebrew birthday upkeep."""

from .backfill import backfill_hebrew_dates  # noqa: F401
from .sweep import HebrewBirthdaySweep, run_hebrew_sweep  # noqa: F401

__all__ = [
    "HebrewBirthdaySweep",
    "run_hebrew_sweep",
    "backfill_hebrew_dates",
]

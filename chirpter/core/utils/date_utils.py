"""
Date utility functions shared by the ledger and the sweep job.
"""

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Replaces deprecated datetime.utcnow() which is scheduled for removal in Python 3.14.
    See: https://docs.python.org/3/library/datetime.html#datetime.datetime.utcnow
    """
    return datetime.now(UTC)


def minutes_from_now(minutes: float, reference: datetime | None = None) -> datetime:
    """
    Return a timezone-aware UTC datetime `minutes` after `reference` (default: now).

    Args:
        minutes: Offset in minutes (may be negative)
        reference: Base time, defaults to utcnow()
    """
    return (reference or utcnow()) + timedelta(minutes=minutes)


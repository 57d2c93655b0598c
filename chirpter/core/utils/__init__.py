"""
Core utility functions for the Chirpter backend.
"""

from .date_utils import minutes_from_now, utcnow

__all__ = [
    "utcnow",
    "minutes_from_now",
]

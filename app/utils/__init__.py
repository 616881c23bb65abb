"""Utility functions."""

from app.utils.errors import describe_exception
from app.utils.timestamps import (
    ensure_utc,
    minutes_between,
    utc_today,
    utcnow,
)

__all__ = [
    "describe_exception",
    "ensure_utc",
    "minutes_between",
    "utc_today",
    "utcnow",
]

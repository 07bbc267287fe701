"""
Datetime utility functions.
"""

from datetime import datetime, timedelta

import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def hours_ago(hours: int) -> datetime:
    """Return the UTC datetime ``hours`` hours before now."""
    return utcnow() - timedelta(hours=hours)

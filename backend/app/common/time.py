"""
Time Utilities

Wall-clock timestamps reported to operators are UTC-aware datetimes.
"""

from __future__ import annotations

from datetime import datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)

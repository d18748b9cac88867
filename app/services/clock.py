"""
Current-time helpers.

All timestamps are stored as naive UTC datetimes. Services call these
helpers instead of ``datetime.now`` so tests can pin the clock with
``monkeypatch``.
"""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    """Return the current UTC date."""
    return utcnow().date()

"""Date helpers shared by the engines.

Callers may hand in timezone-aware timestamps (JSON with offsets) while
reference times default to naive local time; everything is compared as
naive UTC.
"""

from datetime import datetime, timezone


def to_naive(moment: datetime) -> datetime:
    """Drop tzinfo after converting aware timestamps to UTC."""
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def days_between(later: datetime, earlier: datetime) -> float:
    """Fractional days from ``earlier`` to ``later``."""
    return (to_naive(later) - to_naive(earlier)).total_seconds() / 86400


def reference_time(now: datetime | None) -> datetime:
    return to_naive(now) if now is not None else datetime.now()

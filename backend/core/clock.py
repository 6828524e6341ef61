"""Time sources.

Wait scheduling, business-hours checks and the resumption poller all ask
a clock for "now" instead of reading the wall clock, so tests can pin it.
"""

from datetime import datetime, timezone


class SystemClock:
    """Wall-clock time, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as SQLite returns them) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

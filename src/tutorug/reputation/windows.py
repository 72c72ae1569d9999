"""Weekly / monthly reputation windows.

Used both by the rollover check in ``award_points`` and by progress reporting,
so the two always agree on where a window starts. Weeks start on Monday, all
in UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def week_start(now: datetime) -> datetime:
    """Monday 00:00 UTC of the week containing ``now``."""
    now = _as_utc(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=midnight.weekday())


def month_start(now: datetime) -> datetime:
    """1st of the month 00:00 UTC."""
    now = _as_utc(now)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

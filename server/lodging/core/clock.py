"""Time utilities for consistent timestamp handling."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current UTC timestamp as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def stay_dates(check_in: date, check_out: date) -> list[date]:
    """Nights occupied by a stay: every date in [check_in, check_out)."""
    return [check_in + timedelta(days=offset) for offset in range((check_out - check_in).days)]


def check_in_instant(check_in: date, check_in_hour: int) -> datetime:
    return datetime.combine(check_in, time(hour=check_in_hour))

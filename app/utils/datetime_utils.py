"""
Timezone-aware datetime helpers.
- Store timestamps in UTC.
- Leave dates are calendar days in the configured local zone (settings.APP_TIMEZONE, Asia/Dhaka).
"""
from datetime import date, datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from app.core.config import settings

UTC = timezone.utc


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.APP_TIMEZONE)


def now_utc() -> datetime:
    """Current time in UTC (timezone-aware)."""
    return datetime.now(UTC)


def today_local() -> date:
    """Today's calendar date in the configured zone."""
    return datetime.now(local_zone()).date()


def to_local_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """
    Normalise a date, datetime or ISO string to a local calendar day.

    Naive datetimes are treated as UTC; aware ones are converted to the local
    zone before the date is taken, so 2026-03-01T20:00Z is 2026-03-02 in Dhaka.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(local_zone()).date()
    return value


def iso_local(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as ISO-8601 with the local offset. Used for API response timestamps."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(local_zone()).isoformat()

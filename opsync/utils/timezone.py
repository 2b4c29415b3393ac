"""Timezone helpers: UTC for storage, the configured local zone for display."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
import pytz

from config.settings import settings


LOCAL_TZ = pytz.timezone(settings.sync.display_timezone)


def utc_now() -> datetime:
    """Current UTC time as a naive datetime.

    All scheduler timestamps are stored naive-UTC so values read back from
    SQLite and PostgreSQL compare cleanly with freshly computed ones.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today(now: Optional[datetime] = None) -> date:
    return (now or utc_now()).date()


def utc_yesterday(now: Optional[datetime] = None) -> date:
    return utc_today(now) - timedelta(days=1)


def to_local(dt: datetime) -> datetime:
    """
    Convert a datetime to the display timezone.

    Args:
        dt: Datetime to convert (naive values are treated as UTC)

    Returns:
        Datetime in the display timezone
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)

    return dt.astimezone(LOCAL_TZ)


def format_local_datetime(dt: datetime, include_timezone: bool = True) -> str:
    """
    Format datetime in the display timezone.

    Returns:
        Formatted string like "2024-01-15 14:30 CET"
    """
    if dt is None:
        return "N/A"

    local_dt = to_local(dt)
    formatted = local_dt.strftime("%Y-%m-%d %H:%M")

    if include_timezone:
        formatted += f" {local_dt.strftime('%Z')}"

    return formatted


def isoformat_or_none(value) -> Optional[str]:
    return value.isoformat() if value else None

"""Time Utilities - UTC timestamps and day arithmetic"""
import math
from datetime import datetime, timezone, timedelta
from typing import Optional
from dateutil import parser as date_parser

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string
    
    Args:
        dt: Datetime object
        
    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime
    
    Args:
        iso_string: ISO formatted datetime string
        
    Returns:
        Datetime object in UTC
    """
    return ensure_utc(date_parser.isoparse(iso_string))


def add_days(dt: datetime, days: float) -> datetime:
    """Add (possibly fractional) days to datetime"""
    return dt + timedelta(days=days)


def elapsed_days(since: datetime, now: datetime) -> float:
    """Days elapsed between two instants (negative if since is in the future)"""
    return (ensure_utc(now) - ensure_utc(since)).total_seconds() / SECONDS_PER_DAY


def elapsed_hours(since: datetime, now: datetime) -> float:
    """Hours elapsed between two instants"""
    return (ensure_utc(now) - ensure_utc(since)).total_seconds() / 3600


def days_until_ceil(target: datetime, now: datetime) -> int:
    """
    Whole days remaining until target, rounded up
    
    Returns:
        0 if target is now or in the past
    """
    remaining = -elapsed_days(target, now)
    return math.ceil(remaining) if remaining > 0 else 0


def latest(*values: Optional[datetime]) -> Optional[datetime]:
    """Most recent of the given datetimes, ignoring None"""
    present = [ensure_utc(v) for v in values if v is not None]
    return max(present) if present else None

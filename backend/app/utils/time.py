"""Time Utilities - UTC timestamps and formatting"""
from datetime import datetime, timezone, timedelta
from typing import Optional
from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB returns naive values)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def add_days(dt: datetime, days: int) -> datetime:
    """Add days to datetime"""
    return dt + timedelta(days=days)


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Check if an expiry datetime has passed

    Args:
        expires_at: Expiry datetime or None (never expires)
        now: Reference time, defaults to the current UTC time

    Returns:
        True if expired, False otherwise
    """
    if expires_at is None:
        return False
    return ensure_utc(now or utc_now()) > ensure_utc(expires_at)


def format_display_date(value) -> str:
    """Format a date or datetime for emails and vouchers (e.g. 05 Jan 2026)"""
    if isinstance(value, str):
        value = date_parser.isoparse(value)
    return value.strftime("%d %b %Y")

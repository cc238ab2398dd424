"""Charge expiry countdown helpers for the payment view."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pix_poller.config import settings


def resolve_expiry(expires_at: Optional[datetime], now: datetime) -> datetime:
    """Expiry to display; charges without one get the default TTL from `now`."""
    if expires_at is not None:
        return expires_at
    return now + timedelta(minutes=settings.charge_default_ttl_minutes)


def seconds_left(expires_at: datetime, now: datetime) -> int:
    """Whole seconds until expiry, never negative."""
    return max(0, (expires_at - now) // timedelta(seconds=1))


def format_countdown(seconds: int) -> str:
    """Render seconds as MM:SS (minutes are not wrapped at 60)."""
    mins, secs = divmod(max(0, seconds), 60)
    return f"{mins:02d}:{secs:02d}"


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """Current UTC time.

    Note: Services take a ``Clock`` so tests can inject a fixed time source.
    """
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by MySQL) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def truncate_to_millis(value: datetime) -> datetime:
    value = as_utc(value)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_epoch_millis(value: datetime) -> int:
    value = as_utc(value)
    return int(value.timestamp()) * 1000 + value.microsecond // 1000


def iso_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2026-02-01T08:30:00.000Z``."""
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


ONE_MILLISECOND = timedelta(milliseconds=1)

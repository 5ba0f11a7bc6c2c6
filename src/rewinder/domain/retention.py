"""Grace-period helpers shared by the reaper and listings."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def grace_window(*, days: float) -> timedelta:
    if days < 0:
        raise ValueError("grace period must not be negative")
    return timedelta(days=days)


def calculate_reap_at(trashed_at: datetime, window: timedelta) -> datetime:
    """Moment from which a trashed item may be deleted."""

    return as_utc(trashed_at) + window


def is_reap_eligible(trashed_at: datetime | None, window: timedelta, *, now: datetime) -> bool:
    """``trashed_at + window <= now``; items never trashed are not eligible."""

    if trashed_at is None:
        return False
    return calculate_reap_at(trashed_at, window) <= as_utc(now)


def reap_cutoff(window: timedelta, *, now: datetime) -> datetime:
    """Latest ``trashed_at`` that is eligible at ``now``."""

    return as_utc(now) - window


__all__ = [
    "Clock",
    "as_utc",
    "calculate_reap_at",
    "grace_window",
    "is_reap_eligible",
    "reap_cutoff",
    "utc_now",
]

from datetime import datetime, timedelta, timezone

from cadence.domain.constants import SECONDS_PER_DAY

UTC = timezone.utc


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are treated as UTC; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_days(delta: timedelta) -> float:
    return delta.total_seconds() / SECONDS_PER_DAY


def _trim(value: float) -> str:
    return f"{value:.1f}".rstrip("0").rstrip(".")


def format_interval(delta: timedelta) -> str:
    """
    Human-readable interval for rating buttons.

    Examples: "1m", "10m", "3h", "3d", "2mo", "1.5y".
    """
    seconds = max(delta.total_seconds(), 0.0)
    minutes = round(seconds / 60)
    if minutes < 60:
        return f"{max(minutes, 1)}m"
    hours = seconds / 3600
    if hours < 24:
        return f"{round(hours)}h"
    days = seconds / SECONDS_PER_DAY
    if days < 30:
        return f"{round(days)}d"
    if days < 365:
        return f"{_trim(days / 30)}mo"
    return f"{_trim(days / 365)}y"

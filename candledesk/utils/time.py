"""UTC helpers and bar-clock arithmetic.

All times are UTC. Synthetic bars carry timezone-aware datetimes and are
rendered as ISO 8601 with a Z suffix at the display/serialization boundary.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Return the current UTC datetime, timezone-aware."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as ISO 8601 with millisecond precision and Z suffix.

    Output format: YYYY-MM-DDTHH:MM:SS.fffZ
    """
    utc_dt = ensure_utc(dt)
    return utc_dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_dt.microsecond // 1000:03d}Z"


def parse_timestamp(s: str) -> datetime:
    """Parse an ISO 8601 timestamp with Z suffix back to UTC datetime."""
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(s))


def format_clock(dt: datetime) -> str:
    """HH:MM in UTC, the compact bar label used in analysis prompts."""
    return ensure_utc(dt).strftime("%H:%M")


def history_timestamps(
    count: int,
    interval: timedelta,
    now: datetime,
) -> list[datetime]:
    """Bar open times for ``count`` bars whose last bar closes at ``now``.

    The i-th bar opens at ``now - (count - i) * interval``.
    """
    end = ensure_utc(now)
    return [end - (count - i) * interval for i in range(count)]

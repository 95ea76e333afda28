"""Session filter — pure function, checks if a bar falls inside the trading window."""

from datetime import datetime, timezone
from typing import AbstractSet


def is_active_trading_hour(
    timestamp_ms: int,
    blocked_hours: AbstractSet[int] = frozenset(),
    blocked_days: AbstractSet[int] = frozenset(),
    session_start: int = 6,
    session_end: int = 22,
) -> bool:
    """Return True if the bar at *timestamp_ms* may open a trade.

    Default window: 06:00–22:59 UTC (both hour bounds inclusive).

    Args:
        timestamp_ms: Bar open time, epoch milliseconds.
        blocked_hours: UTC hours (0–23) that never trade.
        blocked_days: ISO weekdays (1=Mon … 7=Sun) that never trade.
        session_start: First active UTC hour (inclusive).
        session_end: Last active UTC hour (inclusive).
    """
    dt = datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc)
    if dt.hour in blocked_hours:
        return False
    if dt.isoweekday() in blocked_days:
        return False
    return session_start <= dt.hour <= session_end

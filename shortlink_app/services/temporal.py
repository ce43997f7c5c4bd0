"""
Time-window membership shared by schedules and password protections.

All datetimes handled here are naive UTC. Callers always pass ``now``
explicitly; nothing in this module reads the clock except ``utcnow`` itself.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol, Sequence, TypeVar


class TimeWindowed(Protocol):
    """Anything with optional start/end bounds (schedules, password protections)"""

    start_time: Optional[datetime]
    end_time: Optional[datetime]


class ScheduledTarget(TimeWindowed, Protocol):
    target_url: str


W = TypeVar("W", bound=TimeWindowed)


def utcnow() -> datetime:
    """Current time as naive UTC, the form every stored datetime takes"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_active(window: TimeWindowed, now: datetime) -> bool:
    """
    Check whether ``now`` falls inside the window.

    Both bounds are inclusive. A missing bound is unbounded in that direction,
    so a window without any bounds is always active.
    """
    if window.start_time is not None and now < window.start_time:
        return False
    if window.end_time is not None and now > window.end_time:
        return False
    return True


def active_windows(items: Iterable[W], now: datetime) -> List[W]:
    """Keep only the items active at ``now``, preserving their order"""
    return [item for item in items if is_active(item, now)]


def resolve_target(
    default_url: str,
    schedules: Sequence[ScheduledTarget],
    now: datetime
) -> str:
    """
    Pick the URL a link should serve at ``now``.

    Overlapping schedules: the earliest-starting active schedule wins. When
    several active schedules share the same start time, the first one in
    ``schedules`` wins (the store returns them ordered by start time, then id).
    Falls back to ``default_url`` when no schedule is active.
    """
    active = active_windows(schedules, now)
    if not active:
        return default_url

    # min() keeps the first of equal keys, which makes ties follow input order
    effective = min(active, key=lambda schedule: schedule.start_time)
    return effective.target_url

"""
Interval algebra over a single day.

Availability is represented as a sorted list of disjoint half-open
intervals [start, end) measured in minutes since midnight. All functions
here are pure and never mutate their inputs.

Seconds are truncated when converting from datetime.time; schedule data is
minute-granular.
"""

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta

MINUTES_PER_DAY = 24 * 60

Interval = tuple[int, int]


def to_minutes(value: time) -> int:
    """Convert a wall-clock time to minutes since midnight."""
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    """
    Convert minutes since midnight back to a wall-clock time.

    Raises:
        ValueError: If minutes falls outside [0, 1440)
    """
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"minutes out of range for a single day: {minutes}")
    return time(hour=minutes // 60, minute=minutes % 60)


def overlaps(a: Interval, b: Interval) -> bool:
    """Half-open intersection test: [s1,e1) and [s2,e2) conflict iff s1 < e2 and s2 < e1."""
    return a[0] < b[1] and b[0] < a[1]


def normalize(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort, drop empty intervals and merge overlapping or touching ones."""
    merged: list[Interval] = []
    for start, end in sorted(iv for iv in intervals if iv[1] > iv[0]):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract(intervals: Iterable[Interval], removals: Iterable[Interval]) -> list[Interval]:
    """
    Remove every range in `removals` from `intervals`.

    A removal can split one interval into zero, one or two pieces.

    Example:
        >>> subtract([(540, 720)], [(600, 630)])
        [(540, 600), (630, 720)]
    """
    result = normalize(intervals)
    for r_start, r_end in normalize(removals):
        remaining: list[Interval] = []
        for start, end in result:
            if not overlaps((start, end), (r_start, r_end)):
                remaining.append((start, end))
                continue
            if start < r_start:
                remaining.append((start, r_start))
            if r_end < end:
                remaining.append((r_end, end))
        result = remaining
    return result


def contains(intervals: Iterable[Interval], candidate: Interval) -> bool:
    """True if candidate lies fully inside one of the intervals."""
    return any(
        start <= candidate[0] and candidate[1] <= end for start, end in normalize(intervals)
    )


def clip_to_day(start_at: datetime, end_at: datetime, day: date) -> Interval | None:
    """
    Project an absolute datetime range onto a single day.

    Returns the part of [start_at, end_at) falling on `day` as minutes, with
    the end clamped to 1440 when the range continues past midnight, or None
    when the range does not touch the day.
    """
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    if not (start_at < day_end and day_start < end_at):
        return None

    start = 0 if start_at <= day_start else int((start_at - day_start).total_seconds() // 60)
    end = (
        MINUTES_PER_DAY
        if end_at >= day_end
        else -int(-(end_at - day_start).total_seconds() // 60)
    )
    if end <= start:
        return None
    return (start, end)

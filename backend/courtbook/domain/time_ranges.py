"""
Interval arithmetic over times of day.

Times are handled as integer minutes from midnight. Computed gap slots are
aligned to the booking granularity; exact slot-instance matching never
goes through the rounding helpers.
"""

from __future__ import annotations

from datetime import time
from typing import Iterable, List, NamedTuple, Union

from ..core.constants import MIN_SLOT_DURATION_MINUTES, SLOT_GRANULARITY_MINUTES

TimeLike = Union[str, time]


class TimeRange(NamedTuple):
    """Half-open interval ``[start, end)`` in minutes from midnight."""

    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        return ranges_overlap(self.start, self.end, other.start, other.end)


def time_to_minutes(value: TimeLike) -> int:
    """
    Minutes from midnight for ``"HH:MM"``, ``"HH:MM:SS"`` or a ``time``.

    Seconds are ignored.
    """
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time string: {value!r}")
    hours = int(parts[0])
    minutes = int(parts[1] or 0)
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    """Always ``HH:MM:00``."""
    if minutes < 0:
        raise ValueError(f"minutes out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}:00"


def minutes_to_clock(minutes: int) -> time:
    """Same as ``minutes_to_time`` but as a ``datetime.time``."""
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"minutes out of range: {minutes}")
    return time(minutes // 60, minutes % 60)


def round_up_to_granularity(minutes: int, granularity: int = SLOT_GRANULARITY_MINUTES) -> int:
    return -(-minutes // granularity) * granularity


def round_down_to_granularity(minutes: int, granularity: int = SLOT_GRANULARITY_MINUTES) -> int:
    return (minutes // granularity) * granularity


def ranges_overlap(a_start, a_end, b_start, b_end) -> bool:
    """Strict overlap of half-open intervals; touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def to_range(start: TimeLike, end: TimeLike) -> TimeRange:
    return TimeRange(time_to_minutes(start), time_to_minutes(end))


def subtract_busy_from_free(free: TimeRange, busy: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Return the parts of ``free`` not covered by any ``busy`` range.

    ``busy`` must be sorted by start. Ranges entirely outside ``free`` are
    ignored and overlapping busy ranges are handled by only ever moving the
    cursor forward.
    """
    gaps: List[TimeRange] = []
    cursor = free.start

    for block in busy:
        if block.end <= cursor or block.start >= free.end:
            continue
        if block.start > cursor:
            gaps.append(TimeRange(cursor, min(block.start, free.end)))
        cursor = max(cursor, block.end)

    if cursor < free.end:
        gaps.append(TimeRange(cursor, free.end))

    return gaps


def filter_and_round_gaps(
    gaps: Iterable[TimeRange],
    *,
    min_duration: int = MIN_SLOT_DURATION_MINUTES,
    granularity: int = SLOT_GRANULARITY_MINUTES,
) -> List[TimeRange]:
    """Snap gaps inward to clean clock times and drop any shorter than ``min_duration``."""
    rounded = (
        TimeRange(
            round_up_to_granularity(gap.start, granularity),
            round_down_to_granularity(gap.end, granularity),
        )
        for gap in gaps
    )
    return [gap for gap in rounded if gap.duration >= min_duration]


def split_into_intervals(window: TimeRange, step_minutes: int) -> List[TimeRange]:
    """
    Cut ``window`` into back-to-back ``step_minutes`` pieces after snapping
    it to the booking granularity. A trailing remainder shorter than one
    step is dropped.
    """
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    start = round_up_to_granularity(window.start)
    end = round_down_to_granularity(window.end)
    pieces: List[TimeRange] = []
    while start + step_minutes <= end:
        pieces.append(TimeRange(start, start + step_minutes))
        start += step_minutes
    return pieces

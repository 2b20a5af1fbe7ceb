"""
Capacity aggregation over admission events.

Pure functions only: callers fetch timestamps (check-ins, queue joins) and
get back totals, trailing-hour counts, hour histograms and rates. Nothing
here touches the database or the clock.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Hashable, Iterable, Optional, TypeVar

T = TypeVar("T")

TRAILING_WINDOW = timedelta(minutes=60)


@dataclass
class AdmissionSummary:
    total: int
    last_hour: int
    by_hour: dict[datetime, int] = field(default_factory=dict)
    peak_hour: Optional[datetime] = None
    peak_count: int = 0


def truncate_to_hour(ts: datetime) -> datetime:
    return ts.replace(minute=0, second=0, microsecond=0)


def count_in_range(timestamps: Iterable[datetime], start: datetime, end: datetime) -> int:
    """Timestamps with ``start <= ts < end``."""
    return sum(1 for ts in timestamps if start <= ts < end)


def count_since(
    timestamps: Iterable[datetime],
    now: datetime,
    window: timedelta = TRAILING_WINDOW,
) -> int:
    """Timestamps within the trailing ``window`` ending at ``now`` (inclusive)."""
    since = now - window
    return sum(1 for ts in timestamps if since <= ts <= now)


def hourly_histogram(timestamps: Iterable[datetime]) -> dict[datetime, int]:
    """Counts keyed by the hour each timestamp falls in, in ascending hour order."""
    counts = Counter(truncate_to_hour(ts) for ts in timestamps)
    return {hour: counts[hour] for hour in sorted(counts)}


def peak_bucket(histogram: dict[datetime, int]) -> Optional[tuple[datetime, int]]:
    """
    Bucket with the highest count; the earliest bucket wins a tie.
    Returns None for an empty histogram.
    """
    peak = None
    for hour in sorted(histogram):
        count = histogram[hour]
        if peak is None or count > peak[1]:
            peak = (hour, count)
    return peak


def summarize_admissions(
    timestamps: Iterable[datetime],
    start: datetime,
    end: datetime,
    now: datetime,
) -> AdmissionSummary:
    in_range = [ts for ts in timestamps if start <= ts < end]
    histogram = hourly_histogram(in_range)
    peak = peak_bucket(histogram)

    return AdmissionSummary(
        total=len(in_range),
        last_hour=count_since(in_range, now),
        by_hour=histogram,
        peak_hour=peak[0] if peak else None,
        peak_count=peak[1] if peak else 0,
    )


def check_in_rate(checked_in: int, expected: int) -> int:
    """
    Percentage of expected guests admitted, rounded half up.
    Zero when nothing was expected.
    """
    if expected <= 0:
        return 0
    return (checked_in * 200 + expected) // (2 * expected)


def estimate_wait_minutes(
    people_ahead: int,
    capacity_per_batch: int,
    batch_interval_minutes: int,
) -> int:
    """
    Batches fully occupied by the people ahead, times the batch interval.

    Whoever fits in the batch currently being admitted waits 0 minutes.
    """
    if capacity_per_batch < 1:
        raise ValueError("capacity_per_batch must be at least 1")
    return (max(people_ahead, 0) // capacity_per_batch) * batch_interval_minutes


def count_by(items: Iterable[T], key: Callable[[T], Hashable]) -> dict[Hashable, int]:
    """Group items by ``key`` and count each group, most common first."""
    return dict(Counter(key(item) for item in items).most_common())

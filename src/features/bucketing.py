"""
Module: bucketing

Purpose: Group timelines into fixed-width time buckets for trend charts.

Bucket boundaries are walked backward from a single ``now`` in fixed steps
(24h days, 7-day weeks, calendar months). They are not aligned to calendar
boundaries unless the caller aligns ``now``. Every bucket is emitted, including
empty ones, oldest first.
"""

import calendar
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

import numpy as np

from src.data.schemas import ActivityKind, KindTrendBucket, TrendBucket, TrendUnit
from src.features.activity import Timeline

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class TimeWindow:
    """``count`` buckets of width ``unit`` ending at "now"."""

    unit: TrendUnit
    count: int

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"TimeWindow count must be >= 1, got {self.count}")

    @classmethod
    def weeks(cls, count: int) -> "TimeWindow":
        return cls(TrendUnit.WEEK, count)

    @classmethod
    def days(cls, count: int) -> "TimeWindow":
        return cls(TrendUnit.DAY, count)

    @classmethod
    def months(cls, count: int) -> "TimeWindow":
        return cls(TrendUnit.MONTH, count)


def window_for_days(days: int, unit: TrendUnit = TrendUnit.WEEK) -> TimeWindow:
    """Window covering a lookback of ``days`` (weeks: ceil(days/7), months: ceil(days/30))."""
    if unit == TrendUnit.DAY:
        count = days
    elif unit == TrendUnit.WEEK:
        count = math.ceil(days / 7)
    else:
        count = math.ceil(days / 30)
    return TimeWindow(unit, max(1, count))


def shift_months(moment: datetime, months: int) -> datetime:
    """Move ``moment`` by whole calendar months, clamping the day of month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def step_back(now: datetime, unit: TrendUnit, steps: int) -> datetime:
    """The boundary ``steps`` units before ``now``."""
    if unit == TrendUnit.DAY:
        return now - timedelta(days=steps)
    if unit == TrendUnit.WEEK:
        return now - timedelta(weeks=steps)
    return shift_months(now, -steps)


def window_edges(window: TimeWindow, now: datetime) -> list[datetime]:
    """``count + 1`` bucket boundaries, oldest first, the last one being ``now``."""
    return [step_back(now, window.unit, window.count - k) for k in range(window.count + 1)]


def bucket_label(start: datetime, unit: TrendUnit) -> str:
    """Chart label for a bucket starting at ``start``."""
    if unit == TrendUnit.MONTH:
        return f"{start:%b %Y}"
    return f"{start:%b} {start.day}"


def _to_micros(moments: Iterable[datetime]) -> np.ndarray:
    return np.fromiter(((m - _EPOCH) // _MICROSECOND for m in moments), dtype=np.int64)


def _bucket_indices(timestamps: Sequence[datetime], edges: list[datetime]) -> np.ndarray:
    """Bucket index per timestamp; -1 for timestamps outside the window."""
    if not timestamps:
        return np.empty(0, dtype=np.int64)

    n_buckets = len(edges) - 1
    edge_arr = _to_micros(edges)
    ts_arr = _to_micros(timestamps)

    idx = np.searchsorted(edge_arr, ts_arr, side="right") - 1
    # The newest bucket also takes entries logged exactly at "now"
    idx[ts_arr == edge_arr[-1]] = n_buckets - 1
    idx[(idx < 0) | (idx >= n_buckets)] = -1
    return idx


def count_per_bucket(timestamps: Sequence[datetime], edges: list[datetime]) -> list[int]:
    """Number of timestamps falling in each ``[edges[i], edges[i+1])``."""
    n_buckets = len(edges) - 1
    idx = _bucket_indices(timestamps, edges)
    counts = np.bincount(idx[idx >= 0], minlength=n_buckets)
    return [int(c) for c in counts]


def bucket_timestamps(
    timestamps: Sequence[datetime],
    window: TimeWindow,
    now: datetime,
) -> list[TrendBucket]:
    """
    Count arbitrary timestamps per bucket.

    Args:
        timestamps: Timestamps in any order
        window: Bucket unit and count
        now: Single reference time for all boundaries

    Returns:
        ``window.count`` buckets, oldest first, zero-filled
    """
    edges = window_edges(window, now)
    counts = count_per_bucket(list(timestamps), edges)
    return [
        TrendBucket(
            label=bucket_label(edges[i], window.unit),
            start=edges[i],
            end=edges[i + 1],
            count=counts[i],
        )
        for i in range(window.count)
    ]


def bucket_timeline(timeline: Timeline, window: TimeWindow, now: datetime) -> list[TrendBucket]:
    """Count a single client's activity per bucket."""
    return bucket_timestamps(timeline.timestamps, window, now)


def bucket_timelines(
    timelines: Iterable[Timeline],
    window: TimeWindow,
    now: datetime,
) -> list[TrendBucket]:
    """Count the combined activity of many clients per bucket."""
    timestamps = [ts for timeline in timelines for ts in timeline.timestamps]
    return bucket_timestamps(timestamps, window, now)


def bucket_by_kind(
    timelines: Iterable[Timeline],
    window: TimeWindow,
    now: datetime,
) -> list[KindTrendBucket]:
    """
    Count activity per bucket broken down by meal, workout and hydration.

    Args:
        timelines: One or more client timelines
        window: Bucket unit and count
        now: Single reference time for all boundaries

    Returns:
        ``window.count`` buckets, oldest first, zero-filled
    """
    edges = window_edges(window, now)
    per_kind: dict[ActivityKind, list[datetime]] = {kind: [] for kind in ActivityKind}
    for timeline in timelines:
        for ts, kind in zip(timeline.timestamps, timeline.kinds):
            per_kind[kind].append(ts)

    counts = {kind: count_per_bucket(stamps, edges) for kind, stamps in per_kind.items()}

    return [
        KindTrendBucket(
            label=bucket_label(edges[i], window.unit),
            start=edges[i],
            end=edges[i + 1],
            meal=counts[ActivityKind.MEAL][i],
            workout=counts[ActivityKind.WORKOUT][i],
            hydration=counts[ActivityKind.HYDRATION][i],
        )
        for i in range(window.count)
    ]

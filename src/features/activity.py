"""
Module: activity

Purpose: Merge a client's meal, workout and hydration logs into one timeline.

Pure functions and a small immutable Timeline type. The risk scorer only needs
timestamps; trend breakdowns also use the kind of each entry.
"""

from bisect import bisect_left, bisect_right
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

from src.data.schemas import ActivityEvent, ActivityKind


@dataclass(frozen=True)
class Timeline:
    """Chronologically sorted activity of a single client."""

    client_id: str
    timestamps: tuple[datetime, ...] = ()
    kinds: tuple[ActivityKind, ...] = ()

    def __len__(self) -> int:
        return len(self.timestamps)

    @property
    def is_empty(self) -> bool:
        return not self.timestamps

    @property
    def first_activity(self) -> datetime | None:
        return self.timestamps[0] if self.timestamps else None

    @property
    def last_activity(self) -> datetime | None:
        return self.timestamps[-1] if self.timestamps else None

    def as_of(self, now: datetime) -> "Timeline":
        """Drop entries logged after ``now``."""
        cut = bisect_right(self.timestamps, now)
        if cut == len(self.timestamps):
            return self
        return Timeline(self.client_id, self.timestamps[:cut], self.kinds[:cut])

    def count_between(self, start: datetime, end: datetime, *, inclusive_end: bool = False) -> int:
        """Count entries in ``[start, end)`` (or ``[start, end]``)."""
        lo = bisect_left(self.timestamps, start)
        hi = bisect_right(self.timestamps, end) if inclusive_end else bisect_left(self.timestamps, end)
        return max(0, hi - lo)

    def between(self, start: datetime, end: datetime) -> list[datetime]:
        """Timestamps in ``[start, end)``."""
        lo = bisect_left(self.timestamps, start)
        hi = bisect_left(self.timestamps, end)
        return list(self.timestamps[lo:hi])

    def has_activity_since(self, cutoff: datetime) -> bool:
        """Whether any entry is at or after ``cutoff``."""
        return bool(self.timestamps) and self.timestamps[-1] >= cutoff

    def active_days(self, start: datetime, end: datetime) -> int:
        """Distinct UTC calendar days with at least one entry in ``[start, end]``."""
        lo = bisect_left(self.timestamps, start)
        hi = bisect_right(self.timestamps, end)
        days: set[date] = {ts.date() for ts in self.timestamps[lo:hi]}
        return len(days)

    def count_by_kind(self) -> dict[ActivityKind, int]:
        """Entries per kind; every kind is present, possibly with zero."""
        counts: Counter[ActivityKind] = Counter(self.kinds)
        return {kind: counts.get(kind, 0) for kind in ActivityKind}

    def of_kind(self, kind: ActivityKind) -> "Timeline":
        """Sub-timeline containing only one kind."""
        pairs = [(ts, k) for ts, k in zip(self.timestamps, self.kinds) if k == kind]
        return Timeline(
            self.client_id,
            tuple(ts for ts, _ in pairs),
            tuple(k for _, k in pairs),
        )


def build_timeline(client_id: str, events: Iterable[ActivityEvent]) -> Timeline:
    """
    Build a sorted timeline from any mix of activity events.

    Ordering is by timestamp then kind, so the same set of events in any input
    order produces an identical timeline.

    Args:
        client_id: Owner of the events
        events: Activity events (may be empty)

    Returns:
        Timeline sorted oldest first
    """
    ordered = sorted(
        ((e.occurred_at, e.kind) for e in events),
        key=lambda pair: (pair[0], pair[1].value),
    )
    return Timeline(
        client_id=client_id,
        timestamps=tuple(ts for ts, _ in ordered),
        kinds=tuple(kind for _, kind in ordered),
    )


def merge_event_streams(
    client_id: str,
    *,
    meals: Iterable[datetime] = (),
    workouts: Iterable[datetime] = (),
    hydration: Iterable[datetime] = (),
) -> Timeline:
    """
    Build a timeline from per-kind timestamp streams.

    Any stream may be empty.
    """
    events = [
        ActivityEvent(client_id=client_id, occurred_at=ts, kind=kind)
        for kind, stream in (
            (ActivityKind.MEAL, meals),
            (ActivityKind.WORKOUT, workouts),
            (ActivityKind.HYDRATION, hydration),
        )
        for ts in stream
    ]
    return build_timeline(client_id, events)


def group_events_by_client(events: Iterable[ActivityEvent]) -> dict[str, list[ActivityEvent]]:
    """
    Group events by client ID.

    Args:
        events: Iterable of activity events for any number of clients

    Returns:
        Dictionary mapping client_id to that client's events
    """
    grouped: dict[str, list[ActivityEvent]] = defaultdict(list)
    for event in events:
        grouped[event.client_id].append(event)
    return dict(grouped)


def days_since(moment: datetime | None, now: datetime) -> int | None:
    """Whole days elapsed from ``moment`` to ``now`` (floored), or None."""
    if moment is None:
        return None
    return (now - moment) // timedelta(days=1)

"""
Module: cohorts

Purpose: Join-month cohort retention and headline retention metrics.

A client is "active" when they logged anything in the trailing 14 days, the
same boundary the risk scorer uses for its top recency bracket.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from src.data.schemas import (
    ClientSnapshot,
    CohortRow,
    RetentionSummary,
    RetentionTrendPoint,
    SubscriptionTier,
    TierRetention,
)
from src.features.activity import Timeline, build_timeline
from src.features.bucketing import (
    TimeWindow,
    bucket_label,
    shift_months,
    window_edges,
    window_for_days,
)

logger = logging.getLogger(__name__)

ACTIVE_WINDOW_DAYS = 14
LOST_AFTER_DAYS = 30
DEFAULT_COHORT_MONTHS = 6


@dataclass(frozen=True)
class ClientActivity:
    """A client's join date paired with their timeline."""

    client_id: str
    tier: SubscriptionTier
    joined_at: datetime
    timeline: Timeline

    @classmethod
    def from_snapshot(cls, snapshot: ClientSnapshot) -> "ClientActivity":
        return cls(
            client_id=snapshot.client_id,
            tier=snapshot.client.tier,
            joined_at=snapshot.client.created_at,
            timeline=build_timeline(snapshot.client_id, snapshot.events),
        )


def _rate(part: int, whole: int) -> float:
    return (part / whole * 100) if whole > 0 else 0.0


def is_active(timeline: Timeline, now: datetime, *, window_days: int = ACTIVE_WINDOW_DAYS) -> bool:
    """Whether the timeline has an entry in ``[now - window_days, now]``."""
    cutoff = now - timedelta(days=window_days)
    return timeline.as_of(now).has_activity_since(cutoff)


def cohort_table(
    clients: Iterable[ClientActivity],
    now: datetime,
    *,
    months: int = DEFAULT_COHORT_MONTHS,
    active_window_days: int = ACTIVE_WINDOW_DAYS,
) -> list[CohortRow]:
    """
    Retention per monthly join cohort.

    Cohort ``i`` (0 = newest) holds clients who joined in
    ``[now - (i+1) months, now - i months)``.

    Args:
        clients: Clients with join dates and timelines
        now: Reference time
        months: Number of cohorts (K)
        active_window_days: Trailing days that count as active

    Returns:
        ``months`` rows, oldest cohort first
    """
    members = list(clients)
    rows: list[CohortRow] = []

    for i in range(months - 1, -1, -1):
        start = shift_months(now, -(i + 1))
        end = shift_months(now, -i)
        cohort = [c for c in members if start <= c.joined_at < end]
        active = sum(1 for c in cohort if is_active(c.timeline, now, window_days=active_window_days))
        rows.append(
            CohortRow(
                cohort_month=f"{start:%b %Y}",
                cohort_start=start,
                cohort_end=end,
                total_clients=len(cohort),
                active_clients=active,
                retention_rate=_rate(active, len(cohort)),
            )
        )

    logger.info(f"Built {len(rows)} cohorts from {len(members)} clients")
    return rows


def summarize_retention(
    clients: Iterable[ClientActivity],
    now: datetime,
    *,
    lookback_days: int = 90,
    active_window_days: int = ACTIVE_WINDOW_DAYS,
    lost_after_days: int = LOST_AFTER_DAYS,
) -> RetentionSummary:
    """
    Headline retention figures.

    New clients joined within the lookback; lost clients have been idle for
    more than ``lost_after_days`` (or never logged anything).
    """
    members = list(clients)
    total = len(members)
    active = sum(1 for c in members if is_active(c.timeline, now, window_days=active_window_days))

    period_start = now - timedelta(days=lookback_days)
    new_clients = sum(1 for c in members if c.joined_at >= period_start)

    lost_cutoff = now - timedelta(days=lost_after_days)
    lost = 0
    for c in members:
        last = c.timeline.as_of(now).last_activity
        if last is None or last < lost_cutoff:
            lost += 1

    retention = _rate(active, total)
    return RetentionSummary(
        total_clients=total,
        active_clients=active,
        retention_rate=retention,
        churn_rate=(100.0 - retention) if total > 0 else 0.0,
        new_clients=new_clients,
        lost_clients=lost,
    )


def retention_by_tier(
    clients: Iterable[ClientActivity],
    now: datetime,
    *,
    active_window_days: int = ACTIVE_WINDOW_DAYS,
) -> list[TierRetention]:
    """Retention within each subscription tier; every tier is listed."""
    members = list(clients)
    result: list[TierRetention] = []
    for tier in SubscriptionTier:
        in_tier = [c for c in members if c.tier == tier]
        active = sum(1 for c in in_tier if is_active(c.timeline, now, window_days=active_window_days))
        result.append(
            TierRetention(
                tier=tier,
                total_clients=len(in_tier),
                active_clients=active,
                retention_rate=_rate(active, len(in_tier)),
            )
        )
    return result


def retention_trend(
    clients: Iterable[ClientActivity],
    now: datetime,
    *,
    window: TimeWindow | None = None,
    lookback_days: int = 90,
) -> list[RetentionTrendPoint]:
    """
    Clients with at least one entry per bucket, as a share of all clients.

    Args:
        clients: Clients with timelines
        now: Reference time
        window: Bucket definition (defaults to weekly over the lookback)
        lookback_days: Used when ``window`` is not given

    Returns:
        One point per bucket, oldest first
    """
    members = list(clients)
    window = window or window_for_days(lookback_days)
    edges = window_edges(window, now)
    total = len(members)

    points: list[RetentionTrendPoint] = []
    for i in range(window.count):
        start, end = edges[i], edges[i + 1]
        newest = i == window.count - 1
        active = sum(
            1
            for c in members
            if c.timeline.count_between(start, end, inclusive_end=newest) > 0
        )
        points.append(
            RetentionTrendPoint(
                label=bucket_label(start, window.unit),
                start=start,
                end=end,
                active_clients=active,
                retention_rate=_rate(active, total),
            )
        )
    return points

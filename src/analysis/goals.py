"""
Module: goals

Purpose: Goal achievement metrics across a coach's clients.

Covers success rate, time to completion, on-track detection, per-type
breakdowns, progress distribution, a weekly completion timeline and the
clients with the most completed goals.
"""

import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable

from src.data.schemas import (
    ClientSnapshot,
    GoalMetrics,
    GoalPerformer,
    GoalRecord,
    GoalStatus,
    GoalTimelinePoint,
    GoalTypeMetrics,
    ProgressBand,
)
from src.features.bucketing import (
    TimeWindow,
    bucket_label,
    count_per_bucket,
    window_edges,
    window_for_days,
)

KNOWN_GOAL_TYPES = ("weight_loss", "muscle_gain", "maintenance", "performance")

# (label, lower bound inclusive, upper bound exclusive)
PROGRESS_BANDS: tuple[tuple[str, float, float], ...] = (
    ("0-25%", -math.inf, 25.0),
    ("25-50%", 25.0, 50.0),
    ("50-75%", 50.0, 75.0),
    ("75-100%", 75.0, 100.0),
    ("100%+", 100.0, math.inf),
)

ON_TRACK_RATIO = 0.75
DEFAULT_TOP_PERFORMERS = 10


def _rate(part: int, whole: int) -> float:
    return (part / whole * 100) if whole > 0 else 0.0


def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta / timedelta(days=1))


def days_to_complete(goal: GoalRecord) -> int | None:
    """Whole days (rounded up) from creation to completion, if completed."""
    if goal.status != GoalStatus.COMPLETED or goal.completed_at is None or goal.created_at is None:
        return None
    return _ceil_days(goal.completed_at - goal.created_at)


def expected_progress(goal: GoalRecord, now: datetime) -> float | None:
    """Percent of the goal's time span already elapsed, or None without both dates."""
    if goal.target_date is None or goal.created_at is None:
        return None
    total_days = _ceil_days(goal.target_date - goal.created_at)
    elapsed_days = _ceil_days(now - goal.created_at)
    if total_days <= 0:
        return 100.0
    return elapsed_days / total_days * 100


def is_on_track(goal: GoalRecord, now: datetime) -> bool:
    """
    Whether an active goal's progress keeps up with the calendar.

    On track means progress is at least 75% of the progress expected by now.
    Goals without a target or creation date count as on track.
    """
    if not goal.is_active:
        return False
    expected = expected_progress(goal, now)
    if expected is None:
        return True
    return goal.progress_pct >= expected * ON_TRACK_RATIO


def progress_distribution(goals: Iterable[GoalRecord]) -> list[ProgressBand]:
    """Active goals counted per progress band."""
    active = [g for g in goals if g.is_active]
    return [
        ProgressBand(label=label, count=sum(1 for g in active if low <= g.progress_pct < high))
        for label, low, high in PROGRESS_BANDS
    ]


def metrics_by_type(goals: list[GoalRecord]) -> list[GoalTypeMetrics]:
    """Per-type totals; the four standard types always appear, others when present."""
    types = list(KNOWN_GOAL_TYPES)
    types += sorted({g.goal_type for g in goals} - set(KNOWN_GOAL_TYPES))

    result: list[GoalTypeMetrics] = []
    for goal_type in types:
        of_type = [g for g in goals if g.goal_type == goal_type]
        completed = sum(1 for g in of_type if g.status == GoalStatus.COMPLETED)
        result.append(
            GoalTypeMetrics(
                goal_type=goal_type,
                total=len(of_type),
                completed=completed,
                active=sum(1 for g in of_type if g.is_active),
                success_rate=_rate(completed, len(of_type)),
            )
        )
    return result


def completion_timeline(
    goals: list[GoalRecord],
    window: TimeWindow,
    now: datetime,
) -> list[GoalTimelinePoint]:
    """Goals started and completed per bucket, oldest first."""
    edges = window_edges(window, now)
    started = count_per_bucket([g.created_at for g in goals if g.created_at is not None], edges)
    completed = count_per_bucket(
        [
            g.completed_at
            for g in goals
            if g.status == GoalStatus.COMPLETED and g.completed_at is not None
        ],
        edges,
    )
    return [
        GoalTimelinePoint(
            label=bucket_label(edges[i], window.unit),
            start=edges[i],
            end=edges[i + 1],
            started=started[i],
            completed=completed[i],
        )
        for i in range(window.count)
    ]


def top_performers(
    goals: list[GoalRecord],
    *,
    names: dict[str, str] | None = None,
    n: int = DEFAULT_TOP_PERFORMERS,
) -> list[GoalPerformer]:
    """Clients with at least one completed goal, most completions first (ties by client ID)."""
    names = names or {}
    totals: dict[str, int] = defaultdict(int)
    completions: dict[str, int] = defaultdict(int)
    for goal in goals:
        totals[goal.client_id] += 1
        if goal.status == GoalStatus.COMPLETED:
            completions[goal.client_id] += 1

    ranked = sorted(
        (cid for cid, done in completions.items() if done > 0),
        key=lambda cid: (-completions[cid], cid),
    )
    return [
        GoalPerformer(
            client_id=cid,
            full_name=names.get(cid, ""),
            completed=completions[cid],
            total=totals[cid],
        )
        for cid in ranked[:n]
    ]


def analyze_goals(
    snapshots: Iterable[ClientSnapshot],
    now: datetime,
    *,
    lookback_days: int | None = 90,
    goal_type: str | None = None,
    top_n: int = DEFAULT_TOP_PERFORMERS,
) -> GoalMetrics:
    """
    Goal achievement metrics for goals created within the lookback.

    Goals without a creation date cannot be placed in the period and are
    left out here; they still feed risk scoring.

    Args:
        snapshots: Clients with their goals
        now: Reference time
        lookback_days: Only goals created in the last N days (None for all time)
        goal_type: Restrict to one goal type
        top_n: Size of the top-performers list

    Returns:
        GoalMetrics; all rates are 0 when there are no goals
    """
    members = list(snapshots)
    names = {s.client_id: s.client.full_name for s in members}

    goals = [
        g for s in members for g in s.goals if g.created_at is not None and g.created_at <= now
    ]
    if lookback_days is not None:
        start = now - timedelta(days=lookback_days)
        goals = [g for g in goals if g.created_at >= start]
    if goal_type is not None:
        goals = [g for g in goals if g.goal_type == goal_type]

    completed = [g for g in goals if g.status == GoalStatus.COMPLETED]
    durations = [d for d in (days_to_complete(g) for g in completed) if d is not None]

    if lookback_days is not None:
        window = window_for_days(lookback_days)
    else:
        earliest = min((g.created_at for g in goals), default=now)
        window = window_for_days(max(1, _ceil_days(now - earliest)))

    return GoalMetrics(
        total_goals=len(goals),
        completed_goals=len(completed),
        active_goals=sum(1 for g in goals if g.is_active),
        success_rate=_rate(len(completed), len(goals)),
        avg_days_to_complete=max(0.0, sum(durations) / len(durations)) if durations else 0.0,
        on_track_goals=sum(1 for g in goals if is_on_track(g, now)),
        by_type=metrics_by_type(goals),
        progress_distribution=progress_distribution(goals),
        completion_timeline=completion_timeline(goals, window, now),
        top_performers=top_performers(goals, names=names, n=top_n),
    )

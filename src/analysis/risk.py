"""
Module: risk

Purpose: Deterministic churn-risk scoring for coached clients.

Key Functions:
- score_recency / score_frequency / score_trend / score_goal_progress: the four capped factors
- classify_tier: Map a 0-100 score onto none/low/medium/high
- assess_client: Full RiskAssessment for one client snapshot
- assess_clients: At-risk listing sorted by score
- summarize_churn: Tier counts and churn rate

Architecture Notes:
- Weighted heuristic, not a learned model; every point of the score is
  attributable to one named factor
- A single ``now`` is threaded through every comparison
- Factors whose source data failed to load contribute 0 and are reported
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from src.data.schemas import (
    ChurnSummary,
    ClientSnapshot,
    GoalRecord,
    RiskAssessment,
    RiskFactors,
    RiskTier,
)
from src.features.activity import Timeline, build_timeline, days_since

logger = logging.getLogger(__name__)


# =============================================================================
# THRESHOLDS
# =============================================================================

RECENCY_MAX = 40
FREQUENCY_MAX = 30
TREND_MAX = 20
GOAL_MAX = 10

# (days strictly greater than, points)
RECENCY_BRACKETS: tuple[tuple[int, int], ...] = ((14, 40), (7, 30), (3, 15))
# (active days strictly fewer than, points)
FREQUENCY_BRACKETS: tuple[tuple[int, int], ...] = ((5, 30), (10, 20), (15, 10))
# (current/prior ratio strictly below, points)
TREND_BRACKETS: tuple[tuple[float, int], ...] = ((0.5, 20), (0.75, 10))
# (progress percent strictly below, points)
GOAL_BRACKETS: tuple[tuple[float, int], ...] = ((25.0, 10), (50.0, 5))

# (minimum score, tier), highest first
TIER_THRESHOLDS: tuple[tuple[int, RiskTier], ...] = (
    (75, RiskTier.HIGH),
    (50, RiskTier.MEDIUM),
    (25, RiskTier.LOW),
)

FREQUENCY_WINDOW_DAYS = 30
TREND_WINDOW_DAYS = 14

FACTOR_RECENCY = "recency"
FACTOR_FREQUENCY = "frequency"
FACTOR_TREND = "trend"
FACTOR_GOAL = "goal_progress"
EVENT_FACTORS = (FACTOR_RECENCY, FACTOR_FREQUENCY, FACTOR_TREND)


# =============================================================================
# FACTORS
# =============================================================================


def score_recency(days_since_activity: int | None) -> int:
    """
    Recency factor (0-40).

    No activity ever scores the maximum. Brackets are strict, so exactly
    14 days idle scores 30, not 40.
    """
    if days_since_activity is None:
        return RECENCY_MAX
    for threshold, points in RECENCY_BRACKETS:
        if days_since_activity > threshold:
            return points
    return 0


def score_frequency(active_days: int) -> int:
    """Frequency factor (0-30) from distinct active days in the trailing 30 days."""
    for threshold, points in FREQUENCY_BRACKETS:
        if active_days < threshold:
            return points
    return 0


def score_trend(current_count: int, prior_count: int) -> int:
    """
    Trend factor (0-20) comparing the last 14 days with the 14 before.

    With no activity in the prior window there is no baseline, so the factor is 0.
    """
    if prior_count <= 0:
        return 0
    ratio = current_count / prior_count
    for threshold, points in TREND_BRACKETS:
        if ratio < threshold:
            return points
    return 0


def score_goal_progress(goal: GoalRecord | None) -> int:
    """Goal factor (0-10). No active goal, or a non-positive target, scores the maximum."""
    if goal is None:
        return GOAL_MAX
    progress = goal.progress_pct
    for threshold, points in GOAL_BRACKETS:
        if progress < threshold:
            return points
    return 0


def classify_tier(score: int) -> RiskTier:
    """Map a score onto a risk tier (75 high, 50 medium, 25 low)."""
    for minimum, tier in TIER_THRESHOLDS:
        if score >= minimum:
            return tier
    return RiskTier.NONE


def select_active_goal(goals: Iterable[GoalRecord]) -> GoalRecord | None:
    """The active goal used for scoring: earliest created (undated last), then by goal type."""
    active = [g for g in goals if g.is_active]
    if not active:
        return None
    dated = [g for g in active if g.created_at is not None]
    if dated:
        return min(dated, key=lambda g: (g.created_at, g.goal_type))
    return min(active, key=lambda g: g.goal_type)


# =============================================================================
# ACTIVITY WINDOWS
# =============================================================================


@dataclass(frozen=True)
class ActivityWindows:
    """Activity measurements of one timeline relative to ``now``."""

    days_since_activity: int | None
    active_days: int
    current_count: int
    prior_count: int

    @classmethod
    def measure(cls, timeline: Timeline, now: datetime) -> "ActivityWindows":
        timeline = timeline.as_of(now)
        trend_cut = now - timedelta(days=TREND_WINDOW_DAYS)
        prior_cut = now - timedelta(days=2 * TREND_WINDOW_DAYS)
        return cls(
            days_since_activity=days_since(timeline.last_activity, now),
            active_days=timeline.active_days(now - timedelta(days=FREQUENCY_WINDOW_DAYS), now),
            current_count=timeline.count_between(trend_cut, now, inclusive_end=True),
            prior_count=timeline.count_between(prior_cut, trend_cut),
        )


# =============================================================================
# ASSESSMENT
# =============================================================================


def score_timeline(
    client_id: str,
    timeline: Timeline,
    active_goal: GoalRecord | None,
    now: datetime,
    *,
    events_available: bool = True,
    goals_available: bool = True,
) -> RiskAssessment:
    """
    Score one client's timeline and active goal.

    Args:
        client_id: Client being scored
        timeline: The client's activity timeline
        active_goal: The client's active goal, if any
        now: Reference time for every comparison
        events_available: False when the client's activity failed to load
        goals_available: False when the client's goals failed to load

    Returns:
        RiskAssessment with the full factor breakdown
    """
    windows = ActivityWindows.measure(timeline, now)
    unavailable: list[str] = []

    if events_available:
        recency = score_recency(windows.days_since_activity)
        frequency = score_frequency(windows.active_days)
        trend = score_trend(windows.current_count, windows.prior_count)
    else:
        recency = frequency = trend = 0
        unavailable.extend(EVENT_FACTORS)

    if goals_available:
        goal_points = score_goal_progress(active_goal)
    else:
        goal_points = 0
        unavailable.append(FACTOR_GOAL)

    factors = RiskFactors(
        recency=recency,
        frequency=frequency,
        trend=trend,
        goal_progress=goal_points,
    )
    score = max(0, min(100, factors.total))

    return RiskAssessment(
        client_id=client_id,
        score=score,
        tier=classify_tier(score),
        factors=factors,
        computed_at=now,
        days_since_activity=windows.days_since_activity if events_available else None,
        active_days=windows.active_days if events_available else 0,
        lifetime_events=len(timeline.as_of(now)) if events_available else 0,
        has_active_goal=active_goal is not None,
        unavailable_factors=unavailable,
        degraded=bool(unavailable),
    )


def assess_client(snapshot: ClientSnapshot, now: datetime) -> RiskAssessment:
    """
    Assess a single client snapshot.

    Args:
        snapshot: Client with events and goals
        now: Reference time

    Returns:
        RiskAssessment
    """
    timeline = build_timeline(snapshot.client_id, snapshot.events)
    assessment = score_timeline(
        snapshot.client_id,
        timeline,
        select_active_goal(snapshot.goals),
        now,
        events_available=snapshot.events_available,
        goals_available=snapshot.goals_available,
    )
    if assessment.degraded:
        logger.warning(
            f"Client {snapshot.client_id} scored without {', '.join(assessment.unavailable_factors)}"
        )
    return assessment


def assess_all(snapshots: Iterable[ClientSnapshot], now: datetime) -> list[RiskAssessment]:
    """Assess every client, in input order."""
    return [assess_client(snapshot, now) for snapshot in snapshots]


def at_risk(assessments: Iterable[RiskAssessment]) -> list[RiskAssessment]:
    """Clients with tier other than none, highest score first (ties by client ID)."""
    flagged = [a for a in assessments if a.is_at_risk]
    return sorted(flagged, key=lambda a: (-a.score, a.client_id))


def assess_clients(snapshots: Iterable[ClientSnapshot], now: datetime) -> list[RiskAssessment]:
    """At-risk listing for a batch of clients."""
    return at_risk(assess_all(snapshots, now))


def summarize_churn(assessments: list[RiskAssessment]) -> ChurnSummary:
    """
    Count clients per risk tier.

    Args:
        assessments: Assessments for all clients (not just at-risk ones)

    Returns:
        ChurnSummary; churn_rate is the at-risk share in percent (0 with no clients)
    """
    total = len(assessments)
    high = sum(1 for a in assessments if a.tier == RiskTier.HIGH)
    medium = sum(1 for a in assessments if a.tier == RiskTier.MEDIUM)
    low = sum(1 for a in assessments if a.tier == RiskTier.LOW)
    flagged = high + medium + low

    return ChurnSummary(
        total_clients=total,
        high_risk=high,
        medium_risk=medium,
        low_risk=low,
        total_at_risk=flagged,
        churn_rate=(flagged / total * 100) if total > 0 else 0.0,
    )


def describe_risk_factors(assessment: RiskAssessment) -> list[str]:
    """
    Short badges explaining why a client is flagged.

    Args:
        assessment: A client's assessment

    Returns:
        Badge strings in display order
    """
    badges: list[str] = []
    days = assessment.days_since_activity
    if days is not None and days > 14:
        badges.append(f"Inactive {days}+ days")
    if FACTOR_FREQUENCY not in assessment.unavailable_factors and assessment.active_days < 5:
        badges.append(f"Low engagement ({assessment.active_days} active days)")
    if FACTOR_GOAL not in assessment.unavailable_factors and not assessment.has_active_goal:
        badges.append("No active goals")
    if FACTOR_RECENCY not in assessment.unavailable_factors and assessment.lifetime_events < 10:
        badges.append("Limited activity history")
    return badges

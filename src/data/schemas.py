"""
Module: schemas

Purpose: Pydantic models for all data structures in the engagement engine.

All models use Pydantic v2 for validation with strict type hints. Input records
(clients, activity events, goals) and every engine output are frozen; outputs are
recomputed wholesale rather than mutated.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================


class SubscriptionTier(str, Enum):
    """Client subscription tiers, cheapest first."""

    BASE = "base"
    PREMIUM = "premium"
    PRO = "pro"
    ELITE = "elite"


class ActivityKind(str, Enum):
    """Kinds of client activity logs."""

    MEAL = "meal"
    WORKOUT = "workout"
    HYDRATION = "hydration"


class GoalStatus(str, Enum):
    """Goal lifecycle status."""

    ACTIVE = "active"
    COMPLETED = "completed"


class RiskTier(str, Enum):
    """Churn-risk classification tiers."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrendUnit(str, Enum):
    """Bucket width for trend windows."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# BASE MODELS
# =============================================================================


class BaseSchema(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


# =============================================================================
# INPUT RECORDS
# =============================================================================


class ClientRecord(BaseSchema):
    """A coached client with their current subscription tier."""

    client_id: str
    full_name: str = ""
    email: str | None = None
    tier: SubscriptionTier
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def __repr__(self) -> str:
        return f"ClientRecord(id={self.client_id!r}, tier={self.tier.value!r})"


class ActivityEvent(BaseSchema):
    """A single meal, workout or hydration log entry."""

    client_id: str
    occurred_at: datetime
    kind: ActivityKind

    @field_validator("occurred_at")
    @classmethod
    def _occurred_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def __repr__(self) -> str:
        return (
            f"ActivityEvent(client_id={self.client_id!r}, "
            f"kind={self.kind.value!r}, "
            f"occurred_at={self.occurred_at.isoformat()})"
        )


class GoalRecord(BaseSchema):
    """A client goal with its progress toward a numeric target."""

    client_id: str
    goal_type: str
    target_value: float = 0.0
    current_value: float = 0.0
    status: GoalStatus
    # Some store views omit the creation date; such goals still count for risk
    created_at: datetime | None = None
    target_date: datetime | None = None
    completed_at: datetime | None = None

    @field_validator("created_at", "target_date", "completed_at")
    @classmethod
    def _dates_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @property
    def progress_pct(self) -> float:
        """Progress toward the target as a percentage (0 when the target is not positive)."""
        if self.target_value <= 0:
            return 0.0
        return self.current_value / self.target_value * 100

    @property
    def is_active(self) -> bool:
        return self.status == GoalStatus.ACTIVE


class ClientSnapshot(BaseSchema):
    """Everything the engine knows about one client at a point in time.

    ``events_available`` / ``goals_available`` are False when that upstream
    source failed to load for this client; the affected risk factors are then
    skipped instead of being read as "no activity" or "no goal".
    ``skipped_rows`` counts raw rows that could not be read and were left out.
    """

    client: ClientRecord
    events: list[ActivityEvent] = Field(default_factory=list)
    goals: list[GoalRecord] = Field(default_factory=list)
    events_available: bool = True
    goals_available: bool = True
    # Malformed activity or goal rows dropped during normalization
    skipped_rows: Annotated[int, Field(ge=0)] = 0

    @property
    def client_id(self) -> str:
        return self.client.client_id

    def __repr__(self) -> str:
        return (
            f"ClientSnapshot(client_id={self.client_id!r}, "
            f"events={len(self.events)}, goals={len(self.goals)})"
        )


# =============================================================================
# TREND SCHEMAS
# =============================================================================


class TrendBucket(BaseSchema):
    """Event count for one time bucket."""

    label: str
    start: datetime
    end: datetime
    count: Annotated[int, Field(ge=0)] = 0


class KindTrendBucket(BaseSchema):
    """Per-kind event counts for one time bucket."""

    label: str
    start: datetime
    end: datetime
    meal: Annotated[int, Field(ge=0)] = 0
    workout: Annotated[int, Field(ge=0)] = 0
    hydration: Annotated[int, Field(ge=0)] = 0

    @property
    def total(self) -> int:
        return self.meal + self.workout + self.hydration


# =============================================================================
# RISK SCHEMAS
# =============================================================================


class RiskFactors(BaseSchema):
    """The four capped contributions that make up a churn-risk score."""

    recency: Annotated[int, Field(ge=0, le=40)]
    frequency: Annotated[int, Field(ge=0, le=30)]
    trend: Annotated[int, Field(ge=0, le=20)]
    goal_progress: Annotated[int, Field(ge=0, le=10)]

    @property
    def total(self) -> int:
        return self.recency + self.frequency + self.trend + self.goal_progress


class RiskAssessment(BaseSchema):
    """Churn-risk score for a single client with its factor breakdown."""

    client_id: str
    score: Annotated[int, Field(ge=0, le=100)]
    tier: RiskTier
    factors: RiskFactors
    computed_at: datetime

    # Context for display and badges
    days_since_activity: int | None = None
    active_days: Annotated[int, Field(ge=0)] = 0
    lifetime_events: Annotated[int, Field(ge=0)] = 0
    has_active_goal: bool = False

    # Partial-data handling
    unavailable_factors: list[str] = Field(default_factory=list)
    degraded: bool = False

    @property
    def is_at_risk(self) -> bool:
        return self.tier != RiskTier.NONE

    def __repr__(self) -> str:
        return (
            f"RiskAssessment(client_id={self.client_id!r}, "
            f"score={self.score}, tier={self.tier.value!r})"
        )


class ChurnSummary(BaseSchema):
    """Counts of at-risk clients per tier."""

    total_clients: Annotated[int, Field(ge=0)]
    high_risk: Annotated[int, Field(ge=0)] = 0
    medium_risk: Annotated[int, Field(ge=0)] = 0
    low_risk: Annotated[int, Field(ge=0)] = 0
    total_at_risk: Annotated[int, Field(ge=0)] = 0
    churn_rate: Annotated[float, Field(ge=0.0, le=100.0)] = 0.0


# =============================================================================
# RETENTION SCHEMAS
# =============================================================================


class CohortRow(BaseSchema):
    """Retention of the clients who joined within one monthly window."""

    cohort_month: str
    cohort_start: datetime
    cohort_end: datetime
    total_clients: Annotated[int, Field(ge=0)]
    active_clients: Annotated[int, Field(ge=0)]
    retention_rate: Annotated[float, Field(ge=0.0, le=100.0)]


class RetentionSummary(BaseSchema):
    """Headline retention figures across all clients."""

    total_clients: Annotated[int, Field(ge=0)]
    active_clients: Annotated[int, Field(ge=0)]
    retention_rate: Annotated[float, Field(ge=0.0, le=100.0)]
    churn_rate: Annotated[float, Field(ge=0.0, le=100.0)]
    new_clients: Annotated[int, Field(ge=0)]
    lost_clients: Annotated[int, Field(ge=0)]


class TierRetention(BaseSchema):
    """Retention within one subscription tier."""

    tier: SubscriptionTier
    total_clients: Annotated[int, Field(ge=0)]
    active_clients: Annotated[int, Field(ge=0)]
    retention_rate: Annotated[float, Field(ge=0.0, le=100.0)]


class RetentionTrendPoint(BaseSchema):
    """Share of all clients active within one week."""

    label: str
    start: datetime
    end: datetime
    active_clients: Annotated[int, Field(ge=0)]
    retention_rate: Annotated[float, Field(ge=0.0, le=100.0)]


# =============================================================================
# REVENUE SCHEMAS
# =============================================================================


class ClientRevenue(BaseSchema):
    """Monetary value of one client."""

    client_id: str
    full_name: str = ""
    tier: SubscriptionTier
    joined_at: datetime
    monthly_value: Annotated[Decimal, Field(ge=0)]
    months_subscribed: Annotated[int, Field(ge=1)]
    period_revenue: Annotated[Decimal, Field(ge=0)]
    lifetime_value: Annotated[Decimal, Field(ge=0)]

    def __repr__(self) -> str:
        return (
            f"ClientRevenue(client_id={self.client_id!r}, "
            f"tier={self.tier.value!r}, "
            f"lifetime=${self.lifetime_value:.2f})"
        )


class TierRevenue(BaseSchema):
    """Revenue rollup for one subscription tier."""

    tier: SubscriptionTier
    count: Annotated[int, Field(ge=0)]
    revenue: Annotated[Decimal, Field(ge=0)]
    avg_rpc: Annotated[Decimal, Field(ge=0)]
    share_of_clients: Annotated[float, Field(ge=0.0, le=100.0)] = 0.0


class RevenueTrendPoint(BaseSchema):
    """Recurring revenue from clients who had joined by the end of one month."""

    label: str
    start: datetime
    end: datetime
    clients: Annotated[int, Field(ge=0)]
    revenue: Annotated[Decimal, Field(ge=0)]
    rpc: Annotated[Decimal, Field(ge=0)]


class RevenueSnapshot(BaseSchema):
    """Aggregate and per-client revenue figures for a lookback period."""

    lookback_days: Annotated[int, Field(ge=1)]
    total_clients: Annotated[int, Field(ge=0)]
    paying_clients: Annotated[int, Field(ge=0)]
    total_revenue: Annotated[Decimal, Field(ge=0)]
    average_rpc: Annotated[Decimal, Field(ge=0)]
    mrr: Annotated[Decimal, Field(ge=0)]
    projected_arr: Annotated[Decimal, Field(ge=0)]

    by_tier: list[TierRevenue] = Field(default_factory=list)
    clients: list[ClientRevenue] = Field(default_factory=list)
    top_clients: list[ClientRevenue] = Field(default_factory=list)
    trend: list[RevenueTrendPoint] = Field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"RevenueSnapshot(clients={self.total_clients}, "
            f"mrr=${self.mrr:.2f}, total=${self.total_revenue:.2f})"
        )


# =============================================================================
# GOAL SCHEMAS
# =============================================================================


class GoalTypeMetrics(BaseSchema):
    """Goal outcomes for a single goal type."""

    goal_type: str
    total: Annotated[int, Field(ge=0)]
    completed: Annotated[int, Field(ge=0)]
    active: Annotated[int, Field(ge=0)]
    success_rate: Annotated[float, Field(ge=0.0, le=100.0)]


class ProgressBand(BaseSchema):
    """Number of active goals within a progress range."""

    label: str
    count: Annotated[int, Field(ge=0)]


class GoalTimelinePoint(BaseSchema):
    """Goals started and completed within one week."""

    label: str
    start: datetime
    end: datetime
    started: Annotated[int, Field(ge=0)]
    completed: Annotated[int, Field(ge=0)]


class GoalPerformer(BaseSchema):
    """A client ranked by completed goals."""

    client_id: str
    full_name: str = ""
    completed: Annotated[int, Field(ge=0)]
    total: Annotated[int, Field(ge=0)]


class GoalMetrics(BaseSchema):
    """Goal achievement metrics for a lookback period."""

    total_goals: Annotated[int, Field(ge=0)]
    completed_goals: Annotated[int, Field(ge=0)]
    active_goals: Annotated[int, Field(ge=0)]
    success_rate: Annotated[float, Field(ge=0.0, le=100.0)]
    avg_days_to_complete: Annotated[float, Field(ge=0.0)]
    on_track_goals: Annotated[int, Field(ge=0)]

    by_type: list[GoalTypeMetrics] = Field(default_factory=list)
    progress_distribution: list[ProgressBand] = Field(default_factory=list)
    completion_timeline: list[GoalTimelinePoint] = Field(default_factory=list)
    top_performers: list[GoalPerformer] = Field(default_factory=list)

"""
Module: engine

Purpose: Main orchestrator computing every engagement view from one snapshot.

Key Functions:
- run_engine: Execute all analyses over a list of client snapshots
- EngineConfig: Configuration for engine execution
- EngineResult: Container for engine outputs

Architecture Notes:
- A single "now" is captured once and passed to every stage
- Stages are pure; the same snapshot and "now" give identical output
- Invalid records (unknown tier, missing join date) abort the run with
  InvalidRecordError; missing data sources only degrade affected clients
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from config.settings import Settings, price_table_from_settings
from src.analysis.cohorts import (
    ClientActivity,
    cohort_table,
    retention_by_tier,
    retention_trend,
    summarize_retention,
)
from src.analysis.goals import analyze_goals
from src.analysis.recommendations import recommend_batch
from src.analysis.revenue import DEFAULT_LOOKBACK_DAYS, RevenueCalculator, TierPriceTable
from src.analysis.risk import assess_all, at_risk, describe_risk_factors, summarize_churn
from src.data.schemas import (
    ChurnSummary,
    ClientSnapshot,
    CohortRow,
    GoalMetrics,
    KindTrendBucket,
    RetentionSummary,
    RetentionTrendPoint,
    RevenueSnapshot,
    RiskAssessment,
    TierRetention,
    TrendBucket,
    TrendUnit,
)
from src.features.activity import build_timeline
from src.features.bucketing import (
    TimeWindow,
    bucket_by_kind,
    bucket_timeline,
    bucket_timelines,
    window_for_days,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class EngineConfig:
    """Configuration for engine execution."""

    # Reference time; captured once at the start of a run when None
    reference_date: datetime | None = None

    # Periods
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    cohort_months: int = 6
    trend_unit: TrendUnit = TrendUnit.WEEK

    # Revenue
    price_table: TierPriceTable = field(default_factory=TierPriceTable)
    top_n_clients: int = 10

    # Goals
    goal_type: str | None = None

    # Output options
    verbose: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "EngineConfig":
        """Build a config from loaded settings; keyword overrides win."""
        values: dict[str, Any] = {
            "lookback_days": settings.lookback_days,
            "cohort_months": settings.cohort_months,
            "trend_unit": settings.trend_unit,
            "top_n_clients": settings.top_n_clients,
            "price_table": price_table_from_settings(settings),
        }
        values.update(overrides)
        return cls(**values)

    @property
    def trend_window(self) -> TimeWindow:
        return window_for_days(self.lookback_days, self.trend_unit)


@dataclass
class EngineStageResult:
    """Result from a single engine stage."""

    stage_name: str
    success: bool
    duration_ms: float
    metrics: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None


@dataclass
class EngineResult:
    """Complete engine output for one snapshot."""

    reference_date: datetime

    # Risk
    assessments: list[RiskAssessment]
    at_risk: list[RiskAssessment]
    churn_summary: ChurnSummary
    recommendations: dict[str, list[str]]

    # Retention
    cohorts: list[CohortRow]
    retention: RetentionSummary
    retention_by_tier: list[TierRetention]
    retention_trend: list[RetentionTrendPoint]

    # Engagement
    engagement_trend: list[TrendBucket]
    engagement_by_kind: list[KindTrendBucket]

    # Revenue and goals
    revenue: RevenueSnapshot
    goals: GoalMetrics

    # Metadata
    config: EngineConfig
    warnings: list[str] = field(default_factory=list)
    stage_results: list[EngineStageResult] = field(default_factory=list)
    total_duration_ms: float = 0.0

    @property
    def degraded(self) -> bool:
        """Whether any client was scored without some of its data."""
        return any(a.degraded for a in self.assessments)

    def get_client_details(self, client_id: str) -> dict[str, Any] | None:
        """Assessment, interventions, badges and revenue for one client."""
        assessment = next((a for a in self.assessments if a.client_id == client_id), None)
        if assessment is None:
            return None

        return {
            "assessment": assessment,
            "recommendations": self.recommendations.get(client_id, []),
            "risk_factors": describe_risk_factors(assessment),
            "revenue": next((r for r in self.revenue.clients if r.client_id == client_id), None),
        }

    def get_summary(self) -> dict[str, Any]:
        """Get summary of engine results."""
        return {
            "reference_date": self.reference_date.isoformat(),
            "total_clients": self.churn_summary.total_clients,
            "at_risk_clients": self.churn_summary.total_at_risk,
            "high_risk_clients": self.churn_summary.high_risk,
            "retention_rate": self.retention.retention_rate,
            "mrr": str(self.revenue.mrr),
            "total_duration_ms": self.total_duration_ms,
            "warnings": len(self.warnings),
            "stages": [
                {
                    "name": s.stage_name,
                    "success": s.success,
                    "duration_ms": s.duration_ms,
                }
                for s in self.stage_results
            ],
        }


# =============================================================================
# ENGINE EXECUTION
# =============================================================================


def _time_stage(
    stage_name: str,
    func: Callable[[], Any],
    verbose: bool = False,
) -> tuple[Any, EngineStageResult]:
    """Execute a stage and time it."""
    if verbose:
        logger.info(f"[Engine] Starting: {stage_name}")

    start = time.perf_counter()
    try:
        result = func()
    except Exception as e:
        duration = (time.perf_counter() - start) * 1000
        logger.error(f"[Engine] Failed: {stage_name} after {duration:.1f}ms - {e}")
        raise

    duration = (time.perf_counter() - start) * 1000
    if verbose:
        logger.info(f"[Engine] Completed: {stage_name} ({duration:.1f}ms)")

    return result, EngineStageResult(
        stage_name=stage_name,
        success=True,
        duration_ms=duration,
    )


def collect_data_warnings(snapshots: Iterable[ClientSnapshot]) -> list[str]:
    """Non-fatal warnings for clients whose events or goals failed to load or had unreadable rows."""
    warnings: list[str] = []
    for snapshot in snapshots:
        if not snapshot.events_available:
            warnings.append(f"Activity unavailable for client {snapshot.client_id}")
        if not snapshot.goals_available:
            warnings.append(f"Goals unavailable for client {snapshot.client_id}")
        if snapshot.skipped_rows:
            warnings.append(
                f"Skipped {snapshot.skipped_rows} unreadable rows for client {snapshot.client_id}"
            )
    return warnings


def run_engine(
    snapshots: Iterable[ClientSnapshot],
    config: EngineConfig | None = None,
    *,
    warnings: list[str] | None = None,
) -> EngineResult:
    """
    Compute every engagement view for a snapshot of clients.

    Args:
        snapshots: One snapshot per client
        config: Engine configuration
        warnings: Upstream warnings to carry into the result

    Returns:
        EngineResult with all outputs

    Raises:
        InvalidRecordError: If a client's tier is not in the price table
    """
    config = config or EngineConfig()
    now = config.reference_date or datetime.now(timezone.utc)
    start_time = time.perf_counter()
    stage_results: list[EngineStageResult] = []

    members = list(snapshots)
    all_warnings = list(warnings or []) + collect_data_warnings(members)
    for message in all_warnings:
        logger.warning(message)

    # Stage 1: Activity aggregation
    def aggregate() -> list[ClientActivity]:
        return [ClientActivity.from_snapshot(s) for s in members]

    activities, stage = _time_stage("Activity Aggregation", aggregate, config.verbose)
    stage.metrics = {
        "n_clients": len(activities),
        "n_events": sum(len(a.timeline) for a in activities),
    }
    stage_results.append(stage)
    timelines = [a.timeline for a in activities]

    # Stage 2: Risk scoring
    def score() -> list[RiskAssessment]:
        return assess_all(members, now)

    assessments, stage = _time_stage("Risk Scoring", score, config.verbose)
    flagged = at_risk(assessments)
    stage.metrics = {"n_assessed": len(assessments), "n_at_risk": len(flagged)}
    stage_results.append(stage)

    # Stage 3: Recommendations
    recommendations, stage = _time_stage(
        "Recommendations",
        lambda: recommend_batch(flagged),
        config.verbose,
    )
    stage_results.append(stage)

    # Stage 4: Engagement trends
    window = config.trend_window

    def trends() -> tuple[list[TrendBucket], list[KindTrendBucket]]:
        return bucket_timelines(timelines, window, now), bucket_by_kind(timelines, window, now)

    (engagement_trend, engagement_by_kind), stage = _time_stage(
        "Engagement Trends", trends, config.verbose
    )
    stage.metrics = {"n_buckets": len(engagement_trend)}
    stage_results.append(stage)

    # Stage 5: Retention
    def retention() -> tuple[
        list[CohortRow], RetentionSummary, list[TierRetention], list[RetentionTrendPoint]
    ]:
        return (
            cohort_table(activities, now, months=config.cohort_months),
            summarize_retention(activities, now, lookback_days=config.lookback_days),
            retention_by_tier(activities, now),
            retention_trend(activities, now, window=window),
        )

    (cohorts, retention_summary, tier_retention, trend_points), stage = _time_stage(
        "Retention Analysis", retention, config.verbose
    )
    stage.metrics = {"n_cohorts": len(cohorts)}
    stage_results.append(stage)

    # Stage 6: Revenue
    def revenue() -> RevenueSnapshot:
        calculator = RevenueCalculator(
            price_table=config.price_table,
            lookback_days=config.lookback_days,
            top_n=config.top_n_clients,
        )
        return calculator.calculate([s.client for s in members], now)

    revenue_snapshot, stage = _time_stage("Revenue Calculation", revenue, config.verbose)
    stage.metrics = {"mrr": float(revenue_snapshot.mrr)}
    stage_results.append(stage)

    # Stage 7: Goals
    goal_metrics, stage = _time_stage(
        "Goal Metrics",
        lambda: analyze_goals(
            members,
            now,
            lookback_days=config.lookback_days,
            goal_type=config.goal_type,
        ),
        config.verbose,
    )
    stage.metrics = {"n_goals": goal_metrics.total_goals}
    stage_results.append(stage)

    total_duration = (time.perf_counter() - start_time) * 1000
    logger.info(
        f"Engine run for {len(members)} clients at {now.isoformat()}: "
        f"{len(flagged)} at risk, {len(all_warnings)} warnings, {total_duration:.1f}ms"
    )

    return EngineResult(
        reference_date=now,
        assessments=assessments,
        at_risk=flagged,
        churn_summary=summarize_churn(assessments),
        recommendations=recommendations,
        cohorts=cohorts,
        retention=retention_summary,
        retention_by_tier=tier_retention,
        retention_trend=trend_points,
        engagement_trend=engagement_trend,
        engagement_by_kind=engagement_by_kind,
        revenue=revenue_snapshot,
        goals=goal_metrics,
        config=config,
        warnings=all_warnings,
        stage_results=stage_results,
        total_duration_ms=total_duration,
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def client_engagement_trend(
    snapshot: ClientSnapshot,
    now: datetime,
    *,
    window: TimeWindow | None = None,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> list[TrendBucket]:
    """Trend buckets for a single client's activity."""
    window = window or window_for_days(lookback_days)
    return bucket_timeline(build_timeline(snapshot.client_id, snapshot.events), window, now)


def format_engine_summary(result: EngineResult) -> str:
    """
    Format engine result as human-readable summary.

    Args:
        result: EngineResult

    Returns:
        Formatted summary string
    """
    churn = result.churn_summary
    revenue = result.revenue
    lines = [
        "=" * 60,
        "CLIENT ENGAGEMENT REPORT",
        "=" * 60,
        "",
        f"As of: {result.reference_date.isoformat()}",
        f"Duration: {result.total_duration_ms:.1f}ms",
        "",
        "CHURN RISK:",
        f"  - Clients: {churn.total_clients}",
        f"  - At risk: {churn.total_at_risk} ({churn.churn_rate:.1f}%)",
        f"  - High / Medium / Low: {churn.high_risk} / {churn.medium_risk} / {churn.low_risk}",
        "",
        "RETENTION:",
        f"  - Active clients: {result.retention.active_clients}",
        f"  - Retention rate: {result.retention.retention_rate:.1f}%",
        f"  - New / Lost: {result.retention.new_clients} / {result.retention.lost_clients}",
        "",
        "COHORTS:",
    ]
    for row in result.cohorts:
        lines.append(
            f"  {row.cohort_month}: {row.active_clients}/{row.total_clients} "
            f"({row.retention_rate:.1f}%)"
        )

    lines.extend([
        "",
        "REVENUE:",
        f"  - Total ({revenue.lookback_days}d): ${revenue.total_revenue:,.2f}",
        f"  - Avg per client: ${revenue.average_rpc:,.2f}",
        f"  - MRR: ${revenue.mrr:,.2f}",
        f"  - Projected ARR: ${revenue.projected_arr:,.2f}",
        "",
        "GOALS:",
        f"  - Success rate: {result.goals.success_rate:.1f}%",
        f"  - On track: {result.goals.on_track_goals}/{result.goals.active_goals}",
        "",
    ])

    if result.warnings:
        lines.append("WARNINGS:")
        for message in result.warnings:
            lines.append(f"  ! {message}")
        lines.append("")

    lines.append("STAGE TIMINGS:")
    for stage in result.stage_results:
        status = "✓" if stage.success else "✗"
        lines.append(f"  {status} {stage.stage_name}: {stage.duration_ms:.1f}ms")

    lines.extend([
        "",
        "=" * 60,
    ])

    return "\n".join(lines)


# =============================================================================
# EXPORT FUNCTIONS
# =============================================================================


def export_result_to_dict(result: EngineResult, *, include_timings: bool = False) -> dict[str, Any]:
    """
    Export engine results to a dictionary for serialization or caching.

    Timings are left out by default so that identical inputs export identically.

    Args:
        result: EngineResult
        include_timings: Add per-stage durations

    Returns:
        Dictionary suitable for JSON serialization
    """

    def dump(models: Iterable[Any]) -> list[dict[str, Any]]:
        return [m.model_dump(mode="json") for m in models]

    data: dict[str, Any] = {
        "reference_date": result.reference_date.isoformat(),
        "at_risk": dump(result.at_risk),
        "churn_summary": result.churn_summary.model_dump(mode="json"),
        "recommendations": result.recommendations,
        "cohorts": dump(result.cohorts),
        "retention": result.retention.model_dump(mode="json"),
        "retention_by_tier": dump(result.retention_by_tier),
        "retention_trend": dump(result.retention_trend),
        "engagement_trend": dump(result.engagement_trend),
        "engagement_by_kind": dump(result.engagement_by_kind),
        "revenue": result.revenue.model_dump(mode="json"),
        "goals": result.goals.model_dump(mode="json"),
        "warnings": list(result.warnings),
    }

    if include_timings:
        data["total_duration_ms"] = result.total_duration_ms
        data["stages"] = [
            {"name": s.stage_name, "duration_ms": s.duration_ms, "metrics": s.metrics}
            for s in result.stage_results
        ]

    return data

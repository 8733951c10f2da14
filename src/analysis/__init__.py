"""
Analysis module for client engagement.

Provides churn-risk scoring, cohort retention, revenue rollups, goal
achievement metrics and risk-based intervention recommendations.
"""

from src.analysis.cohorts import (
    ClientActivity,
    cohort_table,
    retention_by_tier,
    retention_trend,
    summarize_retention,
)
from src.analysis.goals import analyze_goals
from src.analysis.recommendations import (
    interventions_for_tier,
    recommend,
    recommend_batch,
)
from src.analysis.revenue import (
    RevenueCalculator,
    TierPriceTable,
    calculate_revenue,
)
from src.analysis.risk import (
    assess_all,
    assess_client,
    assess_clients,
    at_risk,
    classify_tier,
    describe_risk_factors,
    summarize_churn,
)

__all__ = [
    # Risk
    "assess_client",
    "assess_all",
    "assess_clients",
    "at_risk",
    "classify_tier",
    "describe_risk_factors",
    "summarize_churn",
    # Retention
    "ClientActivity",
    "cohort_table",
    "summarize_retention",
    "retention_by_tier",
    "retention_trend",
    # Revenue
    "RevenueCalculator",
    "TierPriceTable",
    "calculate_revenue",
    # Goals
    "analyze_goals",
    # Recommendations
    "interventions_for_tier",
    "recommend",
    "recommend_batch",
]

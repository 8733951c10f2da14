"""
Module: recommendations

Purpose: Map churn-risk tiers to suggested coach interventions.

The mapping is a static table so it can be audited and tested without the
scorer. Interventions are listed highest priority first.
"""

from typing import Iterable

from src.data.schemas import RiskAssessment, RiskTier

INTERVENTIONS: dict[RiskTier, tuple[str, ...]] = {
    RiskTier.HIGH: (
        "send personalized re-engagement message within 24 hours",
        "schedule a check-in call",
    ),
    RiskTier.MEDIUM: (
        "review goals and send motivational message",
        "offer additional support",
    ),
    RiskTier.LOW: (
        "send gentle activity reminder",
        "share momentum tips",
    ),
    RiskTier.NONE: (),
}


def interventions_for_tier(tier: RiskTier) -> list[str]:
    """Interventions for a risk tier, highest priority first."""
    return list(INTERVENTIONS[tier])


def recommend(assessment: RiskAssessment) -> list[str]:
    """Interventions for one client's assessment."""
    return interventions_for_tier(assessment.tier)


def recommend_batch(assessments: Iterable[RiskAssessment]) -> dict[str, list[str]]:
    """Interventions keyed by client ID, preserving input order."""
    return {a.client_id: recommend(a) for a in assessments}

"""
Tests for data schemas and exceptions.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from src.data.schemas import (
    ActivityEvent,
    ActivityKind,
    ClientRecord,
    ClientSnapshot,
    GoalRecord,
    GoalStatus,
    KindTrendBucket,
    RiskAssessment,
    RiskFactors,
    RiskTier,
    SubscriptionTier,
    ensure_utc,
)
from src.exceptions import (
    ConfigurationError,
    DataSourceError,
    EngagementEngineError,
    InsufficientDataError,
    InvalidRecordError,
)


NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# EXCEPTION TESTS
# =============================================================================


class TestExceptions:
    """Tests for exception hierarchy."""

    def test_base_exception(self) -> None:
        """Test base exception with context."""
        exc = EngagementEngineError("Test error", context={"key": "value"})
        assert exc.message == "Test error"
        assert exc.context == {"key": "value"}
        assert "Test error" in str(exc)

    def test_base_exception_repr(self) -> None:
        """Test exception repr."""
        exc = EngagementEngineError("Test", context={"a": 1})
        repr_str = repr(exc)
        assert "EngagementEngineError" in repr_str
        assert "Test" in repr_str

    def test_invalid_record_error(self) -> None:
        """Test invalid record error carries field, value and client."""
        exc = InvalidRecordError("Unknown tier", field="tier", value="gold", client_id="c1")
        assert exc.field == "tier"
        assert exc.value == "gold"
        assert exc.client_id == "c1"
        assert exc.context == {"field": "tier", "value": "gold", "client_id": "c1"}
        assert isinstance(exc, EngagementEngineError)

    def test_data_source_error(self) -> None:
        """Test data source error records its source."""
        exc = DataSourceError("fetch failed", source="clients")
        assert exc.source == "clients"
        assert exc.context["source"] == "clients"

    def test_insufficient_data_error(self) -> None:
        """Test insufficient data error."""
        exc = InsufficientDataError("No clients", required=1, actual=0, data_type="clients")
        assert exc.required == 1
        assert exc.actual == 0
        assert exc.context["data_type"] == "clients"

    def test_configuration_error(self) -> None:
        """Test configuration error with setting name."""
        exc = ConfigurationError("bad prices", setting="tier_prices")
        assert exc.setting == "tier_prices"
        assert exc.context == {"setting": "tier_prices"}


# =============================================================================
# INPUT RECORD TESTS
# =============================================================================


class TestClientRecord:
    """Tests for ClientRecord schema."""

    def test_valid_client(self) -> None:
        """Test creating a valid client."""
        client = ClientRecord(
            client_id="c1",
            full_name="Ana Silva",
            tier=SubscriptionTier.PREMIUM,
            created_at=NOW,
        )
        assert client.client_id == "c1"
        assert client.email is None

    def test_naive_datetime_becomes_utc(self) -> None:
        """Test naive join dates are read as UTC."""
        client = ClientRecord(client_id="c1", tier="base", created_at=datetime(2024, 1, 1))
        assert client.created_at.tzinfo is not None
        assert client.created_at.utcoffset() == timedelta(0)

    def test_unknown_tier_rejected(self) -> None:
        """Test that tiers outside the enum fail validation."""
        with pytest.raises(ValidationError):
            ClientRecord(client_id="c1", tier="platinum", created_at=NOW)

    def test_client_is_frozen(self) -> None:
        """Test that records are immutable."""
        client = ClientRecord(client_id="c1", tier="base", created_at=NOW)
        with pytest.raises(ValidationError):
            client.tier = SubscriptionTier.ELITE  # type: ignore[misc]

    def test_extra_fields_forbidden(self) -> None:
        """Test that unknown fields are rejected."""
        with pytest.raises(ValidationError):
            ClientRecord(client_id="c1", tier="base", created_at=NOW, coach="x")  # type: ignore[call-arg]


class TestActivityEvent:
    """Tests for ActivityEvent schema."""

    def test_offset_converted_to_utc(self) -> None:
        """Test aware timestamps are converted to UTC."""
        plus_two = timezone(timedelta(hours=2))
        event = ActivityEvent(
            client_id="c1",
            occurred_at=datetime(2024, 6, 1, 10, 0, tzinfo=plus_two),
            kind=ActivityKind.MEAL,
        )
        assert event.occurred_at == datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)

    def test_repr(self) -> None:
        """Test event repr shows kind."""
        event = ActivityEvent(client_id="c1", occurred_at=NOW, kind=ActivityKind.WORKOUT)
        assert "workout" in repr(event)


class TestGoalRecord:
    """Tests for GoalRecord schema."""

    def test_progress_pct(self) -> None:
        """Test progress is current over target."""
        goal = GoalRecord(
            client_id="c1",
            goal_type="weight_loss",
            target_value=10,
            current_value=6,
            status=GoalStatus.ACTIVE,
            created_at=NOW,
        )
        assert goal.progress_pct == pytest.approx(60.0)
        assert goal.is_active

    def test_zero_target_has_zero_progress(self) -> None:
        """Test that a non-positive target yields 0% instead of dividing by zero."""
        goal = GoalRecord(
            client_id="c1",
            goal_type="maintenance",
            target_value=0,
            current_value=5,
            status=GoalStatus.ACTIVE,
            created_at=NOW,
        )
        assert goal.progress_pct == 0.0

    def test_completed_goal_not_active(self) -> None:
        """Test completed goals are not active."""
        goal = GoalRecord(
            client_id="c1",
            goal_type="performance",
            status=GoalStatus.COMPLETED,
            created_at=NOW - timedelta(days=10),
            completed_at=NOW,
        )
        assert not goal.is_active


class TestClientSnapshot:
    """Tests for ClientSnapshot schema."""

    def test_defaults(self) -> None:
        """Test missing collections default to empty and sources to available."""
        snapshot = ClientSnapshot(
            client=ClientRecord(client_id="c1", tier="base", created_at=NOW)
        )
        assert snapshot.events == []
        assert snapshot.goals == []
        assert snapshot.events_available
        assert snapshot.goals_available
        assert snapshot.client_id == "c1"


# =============================================================================
# OUTPUT SCHEMA TESTS
# =============================================================================


class TestRiskSchemas:
    """Tests for risk factor and assessment schemas."""

    def test_factor_total(self) -> None:
        """Test the four factors sum to the total."""
        factors = RiskFactors(recency=40, frequency=30, trend=0, goal_progress=10)
        assert factors.total == 80

    def test_factor_caps_enforced(self) -> None:
        """Test each factor is capped at its maximum."""
        with pytest.raises(ValidationError):
            RiskFactors(recency=41, frequency=0, trend=0, goal_progress=0)
        with pytest.raises(ValidationError):
            RiskFactors(recency=0, frequency=0, trend=21, goal_progress=0)

    def test_score_bounds(self) -> None:
        """Test scores outside 0-100 are rejected."""
        factors = RiskFactors(recency=0, frequency=0, trend=0, goal_progress=0)
        with pytest.raises(ValidationError):
            RiskAssessment(
                client_id="c1",
                score=101,
                tier=RiskTier.HIGH,
                factors=factors,
                computed_at=NOW,
            )

    def test_is_at_risk(self) -> None:
        """Test tier none is not at risk."""
        factors = RiskFactors(recency=0, frequency=0, trend=0, goal_progress=0)
        assessment = RiskAssessment(
            client_id="c1", score=0, tier=RiskTier.NONE, factors=factors, computed_at=NOW
        )
        assert not assessment.is_at_risk


class TestKindTrendBucket:
    """Tests for per-kind trend buckets."""

    def test_total(self) -> None:
        bucket = KindTrendBucket(label="Jun 1", start=NOW, end=NOW, meal=3, workout=1, hydration=2)
        assert bucket.total == 6


def test_ensure_utc_keeps_instant() -> None:
    """Test conversion preserves the instant."""
    eastern = timezone(timedelta(hours=-5))
    moment = datetime(2024, 1, 1, 7, 0, tzinfo=eastern)
    assert ensure_utc(moment) == moment
    assert ensure_utc(moment).hour == 12


def test_money_fields_are_decimal() -> None:
    """Test money amounts stay Decimal."""
    from src.data.schemas import ClientRevenue

    row = ClientRevenue(
        client_id="c1",
        tier=SubscriptionTier.PREMIUM,
        joined_at=NOW,
        monthly_value=Decimal("9.99"),
        months_subscribed=1,
        period_revenue=Decimal("9.99"),
        lifetime_value=Decimal("9.99"),
    )
    assert isinstance(row.monthly_value, Decimal)

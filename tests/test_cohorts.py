"""
Tests for cohort retention analysis.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.analysis.cohorts import (
    ClientActivity,
    cohort_table,
    is_active,
    retention_by_tier,
    retention_trend,
    summarize_retention,
)
from src.data.schemas import (
    ActivityEvent,
    ActivityKind,
    ClientRecord,
    ClientSnapshot,
    SubscriptionTier,
)
from src.features.activity import build_timeline
from src.features.bucketing import TimeWindow


NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# FIXTURES
# =============================================================================


def make_client(
    client_id: str,
    joined_at: datetime,
    *,
    event_days_ago: list[float] | None = None,
    tier: SubscriptionTier = SubscriptionTier.BASE,
) -> ClientActivity:
    """Helper to create a ClientActivity with meal logs at the given offsets."""
    events = [
        ActivityEvent(
            client_id=client_id,
            occurred_at=NOW - timedelta(days=d),
            kind=ActivityKind.MEAL,
        )
        for d in (event_days_ago or [])
    ]
    return ClientActivity(
        client_id=client_id,
        tier=tier,
        joined_at=joined_at,
        timeline=build_timeline(client_id, events),
    )


@pytest.fixture
def march_cohort() -> list[ClientActivity]:
    """Ten clients joined in the cohort four months back, four of them active."""
    joined = datetime(2024, 3, 10, tzinfo=timezone.utc)
    clients = [make_client(f"active_{i}", joined, event_days_ago=[2]) for i in range(4)]
    clients += [make_client(f"idle_{i}", joined, event_days_ago=[40]) for i in range(6)]
    return clients


# =============================================================================
# ACTIVITY TESTS
# =============================================================================


class TestIsActive:
    """Tests for the active-client rule."""

    def test_activity_within_window(self) -> None:
        client = make_client("c1", NOW - timedelta(days=60), event_days_ago=[13])
        assert is_active(client.timeline, NOW)

    def test_activity_exactly_at_window_start(self) -> None:
        client = make_client("c1", NOW - timedelta(days=60), event_days_ago=[14])
        assert is_active(client.timeline, NOW)

    def test_stale_activity(self) -> None:
        client = make_client("c1", NOW - timedelta(days=60), event_days_ago=[15])
        assert not is_active(client.timeline, NOW)

    def test_future_activity_ignored(self) -> None:
        client = make_client("c1", NOW - timedelta(days=60), event_days_ago=[-2])
        assert not is_active(client.timeline, NOW)

    def test_from_snapshot(self) -> None:
        snapshot = ClientSnapshot(
            client=ClientRecord(client_id="c1", tier="pro", created_at=NOW - timedelta(days=3)),
            events=[ActivityEvent(client_id="c1", occurred_at=NOW, kind=ActivityKind.WORKOUT)],
        )
        activity = ClientActivity.from_snapshot(snapshot)
        assert activity.tier == SubscriptionTier.PRO
        assert len(activity.timeline) == 1


# =============================================================================
# COHORT TABLE TESTS
# =============================================================================


class TestCohortTable:
    """Tests for monthly cohorts."""

    def test_row_count_and_order(self) -> None:
        rows = cohort_table([], NOW, months=6)
        assert len(rows) == 6
        starts = [r.cohort_start for r in rows]
        assert starts == sorted(starts)
        assert rows[-1].cohort_end == NOW

    def test_empty_cohort_rate_zero(self) -> None:
        rows = cohort_table([], NOW, months=3)
        assert all(r.total_clients == 0 for r in rows)
        assert all(r.retention_rate == 0.0 for r in rows)

    def test_retention_rate(self, march_cohort: list[ClientActivity]) -> None:
        """Four of ten clients active gives 40%."""
        rows = cohort_table(march_cohort, NOW, months=6)
        march = [r for r in rows if r.total_clients > 0]
        assert len(march) == 1
        assert march[0].total_clients == 10
        assert march[0].active_clients == 4
        assert march[0].retention_rate == pytest.approx(40.0)
        assert march[0].cohort_month == "Feb 2024"

    def test_cohort_boundaries_half_open(self) -> None:
        boundary = datetime(2024, 5, 30, 12, 0, tzinfo=timezone.utc)
        clients = [make_client("c1", boundary), make_client("c2", NOW)]
        rows = cohort_table(clients, NOW, months=2)
        # Joined exactly at a cohort start belongs to that (newer) cohort; joined at now is excluded
        assert [r.total_clients for r in rows] == [0, 1]

    def test_clients_older_than_window_excluded(self) -> None:
        clients = [make_client("c1", NOW - timedelta(days=400), event_days_ago=[1])]
        rows = cohort_table(clients, NOW, months=6)
        assert sum(r.total_clients for r in rows) == 0


# =============================================================================
# RETENTION SUMMARY TESTS
# =============================================================================


class TestRetentionSummary:
    """Tests for headline retention figures."""

    def test_summary(self) -> None:
        clients = [
            make_client("new_active", NOW - timedelta(days=10), event_days_ago=[1]),
            make_client("old_active", NOW - timedelta(days=200), event_days_ago=[3]),
            make_client("old_idle", NOW - timedelta(days=200), event_days_ago=[45]),
            make_client("never", NOW - timedelta(days=100)),
        ]
        summary = summarize_retention(clients, NOW, lookback_days=90)
        assert summary.total_clients == 4
        assert summary.active_clients == 2
        assert summary.retention_rate == pytest.approx(50.0)
        assert summary.churn_rate == pytest.approx(50.0)
        assert summary.new_clients == 1
        assert summary.lost_clients == 2

    def test_no_clients(self) -> None:
        summary = summarize_retention([], NOW)
        assert summary.retention_rate == 0.0
        assert summary.churn_rate == 0.0

    def test_by_tier_lists_every_tier(self) -> None:
        clients = [
            make_client("p1", NOW - timedelta(days=50), event_days_ago=[1], tier=SubscriptionTier.PREMIUM),
            make_client("p2", NOW - timedelta(days=50), tier=SubscriptionTier.PREMIUM),
        ]
        by_tier = {row.tier: row for row in retention_by_tier(clients, NOW)}
        assert set(by_tier) == set(SubscriptionTier)
        assert by_tier[SubscriptionTier.PREMIUM].retention_rate == pytest.approx(50.0)
        assert by_tier[SubscriptionTier.ELITE].total_clients == 0
        assert by_tier[SubscriptionTier.ELITE].retention_rate == 0.0


class TestRetentionTrend:
    """Tests for per-bucket active share."""

    def test_weekly_points(self) -> None:
        clients = [
            make_client("c1", NOW - timedelta(days=90), event_days_ago=[1, 8]),
            make_client("c2", NOW - timedelta(days=90), event_days_ago=[9]),
        ]
        points = retention_trend(clients, NOW, window=TimeWindow.weeks(2))
        assert [p.active_clients for p in points] == [2, 1]
        assert [p.retention_rate for p in points] == [pytest.approx(100.0), pytest.approx(50.0)]

    def test_activity_at_now_counts_in_newest_bucket(self) -> None:
        clients = [make_client("c1", NOW - timedelta(days=90), event_days_ago=[0])]
        points = retention_trend(clients, NOW, window=TimeWindow.weeks(1))
        assert points[0].active_clients == 1

    def test_default_window_from_lookback(self) -> None:
        points = retention_trend([], NOW, lookback_days=28)
        assert len(points) == 4
        assert all(p.retention_rate == 0.0 for p in points)

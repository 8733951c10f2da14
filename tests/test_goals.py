"""
Tests for goal achievement metrics.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.analysis.goals import (
    KNOWN_GOAL_TYPES,
    analyze_goals,
    completion_timeline,
    days_to_complete,
    expected_progress,
    is_on_track,
    metrics_by_type,
    progress_distribution,
    top_performers,
)
from src.data.schemas import ClientRecord, ClientSnapshot, GoalRecord, GoalStatus, SubscriptionTier
from src.features.bucketing import TimeWindow


NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# FIXTURES
# =============================================================================


def make_goal(
    client_id: str = "c1",
    *,
    goal_type: str = "weight_loss",
    target: float = 10.0,
    current: float = 0.0,
    created_days_ago: float = 30,
    span_days: float | None = None,
    completed_days_ago: float | None = None,
) -> GoalRecord:
    """Helper to create a GoalRecord; a completion date makes it completed."""
    created = NOW - timedelta(days=created_days_ago)
    completed = NOW - timedelta(days=completed_days_ago) if completed_days_ago is not None else None
    return GoalRecord(
        client_id=client_id,
        goal_type=goal_type,
        target_value=target,
        current_value=current,
        status=GoalStatus.COMPLETED if completed else GoalStatus.ACTIVE,
        created_at=created,
        target_date=created + timedelta(days=span_days) if span_days is not None else None,
        completed_at=completed,
    )


def make_snapshot(client_id: str, goals: list[GoalRecord], full_name: str = "") -> ClientSnapshot:
    """Helper to wrap goals in a ClientSnapshot."""
    return ClientSnapshot(
        client=ClientRecord(
            client_id=client_id,
            full_name=full_name,
            tier=SubscriptionTier.PREMIUM,
            created_at=NOW - timedelta(days=365),
        ),
        goals=goals,
    )


# =============================================================================
# PER-GOAL TESTS
# =============================================================================


class TestGoalTiming:
    """Tests for completion time and expected progress."""

    def test_days_to_complete(self) -> None:
        goal = make_goal(created_days_ago=20, completed_days_ago=10)
        assert days_to_complete(goal) == 10

    def test_days_to_complete_rounds_up(self) -> None:
        goal = make_goal(created_days_ago=20.5, completed_days_ago=10)
        assert days_to_complete(goal) == 11

    def test_active_goal_has_no_completion_time(self) -> None:
        assert days_to_complete(make_goal()) is None

    def test_expected_progress(self) -> None:
        goal = make_goal(created_days_ago=50, span_days=100)
        assert expected_progress(goal, NOW) == pytest.approx(50.0)

    def test_expected_progress_without_target_date(self) -> None:
        assert expected_progress(make_goal(), NOW) is None

    def test_zero_span_expects_full_progress(self) -> None:
        goal = make_goal(created_days_ago=5, span_days=0)
        assert expected_progress(goal, NOW) == 100.0


class TestOnTrack:
    """Tests for on-track detection."""

    def test_on_track_at_three_quarters_of_expected(self) -> None:
        # 50% expected, 40% actual >= 37.5%
        assert is_on_track(make_goal(created_days_ago=50, span_days=100, current=4), NOW)

    def test_behind(self) -> None:
        # 50% expected, 30% actual < 37.5%
        assert not is_on_track(make_goal(created_days_ago=50, span_days=100, current=3), NOW)

    def test_no_target_date_counts_as_on_track(self) -> None:
        assert is_on_track(make_goal(current=0), NOW)

    def test_completed_goal_not_on_track(self) -> None:
        assert not is_on_track(make_goal(created_days_ago=20, completed_days_ago=1), NOW)


# =============================================================================
# AGGREGATE TESTS
# =============================================================================


class TestDistributions:
    """Tests for per-type metrics and progress bands."""

    def test_progress_bands(self) -> None:
        goals = [
            make_goal(current=1),  # 10%
            make_goal(current=2.5),  # 25%
            make_goal(current=7.5),  # 75%
            make_goal(current=10),  # 100%
            make_goal(current=12),  # 120%
            make_goal(created_days_ago=20, completed_days_ago=1, current=10),
        ]
        bands = {b.label: b.count for b in progress_distribution(goals)}
        assert bands == {"0-25%": 1, "25-50%": 1, "50-75%": 0, "75-100%": 1, "100%+": 2}

    def test_metrics_by_type_lists_known_types(self) -> None:
        goals = [
            make_goal(goal_type="weight_loss", created_days_ago=20, completed_days_ago=1),
            make_goal(goal_type="weight_loss"),
            make_goal(goal_type="flexibility"),
        ]
        rows = {r.goal_type: r for r in metrics_by_type(goals)}
        assert set(KNOWN_GOAL_TYPES) <= set(rows)
        assert rows["weight_loss"].success_rate == pytest.approx(50.0)
        assert rows["muscle_gain"].total == 0
        assert rows["muscle_gain"].success_rate == 0.0
        assert rows["flexibility"].active == 1

    def test_completion_timeline(self) -> None:
        goals = [
            make_goal(created_days_ago=10, completed_days_ago=2),
            make_goal(created_days_ago=3),
        ]
        points = completion_timeline(goals, TimeWindow.weeks(2), NOW)
        assert [p.started for p in points] == [1, 1]
        assert [p.completed for p in points] == [0, 1]

    def test_top_performers(self) -> None:
        goals = [
            make_goal("c1", created_days_ago=20, completed_days_ago=1),
            make_goal("c2", created_days_ago=20, completed_days_ago=1),
            make_goal("c2", created_days_ago=20, completed_days_ago=2),
            make_goal("c3"),
        ]
        performers = top_performers(goals, names={"c2": "Ben Okafor"})
        assert [p.client_id for p in performers] == ["c2", "c1"]
        assert performers[0].full_name == "Ben Okafor"
        assert performers[0].completed == 2
        assert performers[0].total == 2


class TestAnalyzeGoals:
    """Tests for the goal metrics snapshot."""

    def test_no_goals(self) -> None:
        metrics = analyze_goals([make_snapshot("c1", [])], NOW)
        assert metrics.total_goals == 0
        assert metrics.success_rate == 0.0
        assert metrics.avg_days_to_complete == 0.0
        assert metrics.top_performers == []

    def test_metrics(self) -> None:
        snapshots = [
            make_snapshot(
                "c1",
                [
                    make_goal("c1", created_days_ago=30, completed_days_ago=10),
                    make_goal("c1", created_days_ago=40, completed_days_ago=10),
                ],
                full_name="Ana Silva",
            ),
            make_snapshot("c2", [make_goal("c2", created_days_ago=10, current=5)]),
        ]
        metrics = analyze_goals(snapshots, NOW)
        assert metrics.total_goals == 3
        assert metrics.completed_goals == 2
        assert metrics.active_goals == 1
        assert metrics.success_rate == pytest.approx(200 / 3)
        assert metrics.avg_days_to_complete == pytest.approx(25.0)
        assert metrics.on_track_goals == 1
        assert metrics.top_performers[0].full_name == "Ana Silva"
        assert len(metrics.completion_timeline) == 13

    def test_lookback_excludes_old_goals(self) -> None:
        snapshots = [make_snapshot("c1", [make_goal(created_days_ago=120), make_goal(created_days_ago=5)])]
        assert analyze_goals(snapshots, NOW, lookback_days=90).total_goals == 1
        assert analyze_goals(snapshots, NOW, lookback_days=None).total_goals == 2

    def test_goal_type_filter(self) -> None:
        snapshots = [
            make_snapshot(
                "c1",
                [make_goal(goal_type="muscle_gain"), make_goal(goal_type="performance")],
            )
        ]
        metrics = analyze_goals(snapshots, NOW, goal_type="performance")
        assert metrics.total_goals == 1

    def test_undated_goals_left_out_of_period_metrics(self) -> None:
        undated = GoalRecord(
            client_id="c1",
            goal_type="weight_loss",
            target_value=10,
            current_value=6,
            status=GoalStatus.ACTIVE,
        )
        snapshots = [make_snapshot("c1", [undated, make_goal(created_days_ago=5)])]
        assert analyze_goals(snapshots, NOW).total_goals == 1
        assert analyze_goals(snapshots, NOW, lookback_days=None).total_goals == 1
        assert is_on_track(undated, NOW)
        assert expected_progress(undated, NOW) is None

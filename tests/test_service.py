"""
Tests for the concurrent refresh service.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.data.schemas import RiskTier
from src.engine import EngineConfig, run_engine
from src.exceptions import DataSourceError, InvalidRecordError
from src.service import EngagementService, InMemoryRecordSource, assemble_snapshots


NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# FIXTURES
# =============================================================================


def make_rows() -> tuple[list[dict[str, Any]], list[dict[str, Any]], list[dict[str, Any]]]:
    """Two clients: one logging daily, one silent."""
    joined = (NOW - timedelta(days=120)).isoformat()
    clients = [
        {"id": "c1", "full_name": "Ana Silva", "tier": "Premium", "created_at": joined},
        {"id": "c2", "full_name": "Ben Okafor", "tier": "pro", "created_at": joined},
    ]
    events = [
        {"client_id": "c1", "kind": "meal", "occurred_at": (NOW - timedelta(days=d)).isoformat()}
        for d in range(1, 30)
    ]
    events.append({"client_id": "ghost", "kind": "meal", "occurred_at": NOW.isoformat()})
    goals = [
        {
            "client_id": "c1",
            "goal_type": "weight_loss",
            "target_value": 10,
            "current_value": 8,
            "status": "active",
            "created_at": (NOW - timedelta(days=20)).isoformat(),
        }
    ]
    return clients, events, goals


def make_service(**source_kwargs: Any) -> EngagementService:
    clients, events, goals = make_rows()
    source = InMemoryRecordSource(clients, events, goals, **source_kwargs)
    return EngagementService(source, EngineConfig(reference_date=NOW))


# =============================================================================
# ASSEMBLY TESTS
# =============================================================================


class TestAssembleSnapshots:
    """Tests for building snapshots from fetched rows."""

    def test_rows_grouped_by_client(self) -> None:
        clients, events, goals = make_rows()
        snapshots, warnings = assemble_snapshots(clients, events, goals)
        by_id = {s.client_id: s for s in snapshots}
        assert set(by_id) == {"c1", "c2"}
        assert len(by_id["c1"].events) == 29
        assert len(by_id["c1"].goals) == 1
        assert by_id["c2"].events == []
        assert warnings == []

    def test_failed_fetch_degrades(self) -> None:
        clients, _, goals = make_rows()
        snapshots, warnings = assemble_snapshots(clients, ConnectionError("timeout"), goals)
        assert all(not s.events_available for s in snapshots)
        assert all(s.goals_available for s in snapshots)
        assert warnings == ["Activity fetch failed: timeout"]

    def test_goal_rows_without_date_or_status(self) -> None:
        clients, events, _ = make_rows()
        goals = [
            {"client_id": "c1", "goal_type": "weight_loss", "target_value": 10, "current_value": 6,
             "status": "active"},
            {"client_id": "c2", "goal_type": "muscle_gain", "target_value": 5, "current_value": 1,
             "status": None},
        ]
        snapshots, _ = assemble_snapshots(clients, events, goals)
        by_id = {s.client_id: s for s in snapshots}
        assert by_id["c1"].goals[0].created_at is None
        assert by_id["c2"].goals == []
        assert by_id["c2"].skipped_rows == 1

        result = run_engine(snapshots, EngineConfig(reference_date=NOW))
        scored = {a.client_id: a for a in result.assessments}
        assert set(scored) == {"c1", "c2"}
        assert scored["c1"].has_active_goal
        assert scored["c1"].factors.goal_progress == 0
        assert scored["c2"].factors.goal_progress == 10
        assert "Skipped 1 unreadable rows for client c2" in result.warnings

    def test_bad_event_row_leaves_other_clients_scored(self) -> None:
        clients, events, goals = make_rows()
        events = [
            {"client_id": "c2", "kind": "meal", "created_at": None},
            {"client_id": "c2", "kind": "nap", "created_at": NOW.isoformat()},
            *events,
        ]
        snapshots, _ = assemble_snapshots(clients, events, goals)
        result = run_engine(snapshots, EngineConfig(reference_date=NOW))
        tiers = {a.client_id: a.tier for a in result.assessments}
        assert tiers == {"c1": RiskTier.NONE, "c2": RiskTier.HIGH}
        assert "Skipped 2 unreadable rows for client c2" in result.warnings
        assert not result.degraded

    def test_invalid_client_row_raises(self) -> None:
        clients = [{"id": "c1", "tier": "gold", "created_at": NOW.isoformat()}]
        with pytest.raises(InvalidRecordError):
            assemble_snapshots(clients, [], [])


# =============================================================================
# REFRESH TESTS
# =============================================================================


class TestEngagementService:
    """Tests for EngagementService.refresh."""

    def test_refresh(self) -> None:
        service = make_service()
        result = asyncio.run(service.refresh())
        assert result is not None
        assert service.latest is result
        assert service.generation == 1
        assert result.reference_date == NOW
        assert not result.degraded

        tiers = {a.client_id: a.tier for a in result.assessments}
        assert tiers["c1"] == RiskTier.NONE
        assert tiers["c2"] == RiskTier.HIGH
        assert list(result.recommendations) == ["c2"]

    def test_explicit_now_overrides_config(self) -> None:
        service = make_service()
        later = NOW + timedelta(days=1)
        result = asyncio.run(service.refresh(now=later))
        assert result is not None
        assert result.reference_date == later
        assert service.config.reference_date == NOW

    def test_events_failure_degrades(self) -> None:
        service = make_service(fail_on={"events"})
        result = asyncio.run(service.refresh())
        assert result is not None
        assert result.degraded
        assert any(w.startswith("Activity fetch failed") for w in result.warnings)
        c1 = next(a for a in result.assessments if a.client_id == "c1")
        assert c1.factors.recency == 0
        assert "recency" in c1.unavailable_factors

    def test_goals_failure_degrades(self) -> None:
        service = make_service(fail_on={"goals"})
        result = asyncio.run(service.refresh())
        assert result is not None
        assert result.degraded
        assert all(a.factors.goal_progress == 0 for a in result.assessments)

    def test_clients_failure_is_fatal(self) -> None:
        service = make_service(fail_on={"clients"})
        with pytest.raises(DataSourceError) as exc_info:
            asyncio.run(service.refresh())
        assert exc_info.value.source == "clients"
        assert service.latest is None

    def test_stale_refresh_discarded(self) -> None:
        service = make_service(delay=0.01)

        async def overlapping() -> list[Any]:
            return await asyncio.gather(service.refresh(), service.refresh())

        first, second = asyncio.run(overlapping())
        assert first is None
        assert second is not None
        assert service.latest is second
        assert service.generation == 2

    def test_refresh_is_repeatable(self) -> None:
        service = make_service()
        first = asyncio.run(service.refresh())
        second = asyncio.run(service.refresh())
        assert first is not None and second is not None
        assert [a.score for a in first.assessments] == [a.score for a in second.assessments]
        assert service.latest is second

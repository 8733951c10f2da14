"""
Module: service

Purpose: Fetch a coach's client records concurrently and run the engine on them.

Key Functions:
- RecordSource: Protocol for the persistent store
- InMemoryRecordSource: Source backed by plain row lists (tests, demos)
- EngagementService: Fan-out fetch with latest-request-wins refresh

Architecture Notes:
- Events and goals are fetched in parallel once client IDs are known
- A failed events or goals fetch degrades affected factors; a failed
  clients fetch is fatal (DataSourceError)
- Each refresh takes a generation number; a result that finishes after a
  newer refresh started is discarded and never becomes ``latest``
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from src.data.normalization import RawRecord, normalize_client, normalize_snapshot, record_owner
from src.data.schemas import ClientSnapshot
from src.engine import EngineConfig, EngineResult, run_engine
from src.exceptions import DataSourceError

logger = logging.getLogger(__name__)


# =============================================================================
# PROTOCOLS
# =============================================================================


class RecordSource(Protocol):
    """Protocol for the store holding clients, activity logs and goals."""

    async def fetch_clients(self) -> list[RawRecord]:
        """All clients of the coach."""
        ...

    async def fetch_events(self, client_ids: list[str]) -> list[RawRecord]:
        """Activity rows (carrying ``client_id`` and ``kind``) for the given clients."""
        ...

    async def fetch_goals(self, client_ids: list[str]) -> list[RawRecord]:
        """Goal rows for the given clients."""
        ...


# =============================================================================
# IN-MEMORY SOURCE
# =============================================================================


class InMemoryRecordSource:
    """
    Record source serving fixed row lists.

    Any of ``fail_on`` ("clients", "events", "goals") makes that fetch raise,
    which lets callers exercise degraded refreshes.
    """

    def __init__(
        self,
        clients: list[RawRecord],
        events: list[RawRecord] | None = None,
        goals: list[RawRecord] | None = None,
        *,
        fail_on: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.clients = clients
        self.events = events or []
        self.goals = goals or []
        self.fail_on = fail_on or set()
        self.delay = delay

    async def _serve(self, name: str, rows: list[RawRecord]) -> list[RawRecord]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.fail_on:
            raise ConnectionError(f"{name} source unavailable")
        return list(rows)

    async def fetch_clients(self) -> list[RawRecord]:
        return await self._serve("clients", self.clients)

    async def fetch_events(self, client_ids: list[str]) -> list[RawRecord]:
        wanted = set(client_ids)
        return await self._serve(
            "events", [r for r in self.events if record_owner(r) in wanted]
        )

    async def fetch_goals(self, client_ids: list[str]) -> list[RawRecord]:
        wanted = set(client_ids)
        return await self._serve(
            "goals", [r for r in self.goals if record_owner(r) in wanted]
        )


# =============================================================================
# SNAPSHOT ASSEMBLY
# =============================================================================


def _group_by_client(rows: list[RawRecord], client_ids: set[str]) -> dict[str, list[RawRecord]]:
    grouped: dict[str, list[RawRecord]] = defaultdict(list)
    skipped = 0
    for row in rows:
        client_id = record_owner(row)
        if client_id is not None and client_id in client_ids:
            grouped[client_id].append(row)
        else:
            skipped += 1
    if skipped:
        logger.warning(f"Skipped {skipped} rows for unknown clients")
    return grouped


def assemble_snapshots(
    clients: list[RawRecord],
    events: list[RawRecord] | BaseException,
    goals: list[RawRecord] | BaseException,
) -> tuple[list[ClientSnapshot], list[str]]:
    """
    Build snapshots from fetched rows, degrading where a fetch failed.

    Args:
        clients: Raw client rows
        events: Raw activity rows, or the exception the fetch raised
        goals: Raw goal rows, or the exception the fetch raised

    Returns:
        Tuple of (snapshots, warnings)

    Raises:
        InvalidRecordError: If a row is malformed beyond defaulting
    """
    warnings: list[str] = []
    events_available = not isinstance(events, BaseException)
    goals_available = not isinstance(goals, BaseException)
    if isinstance(events, BaseException):
        warnings.append(f"Activity fetch failed: {events}")
        events = []
    if isinstance(goals, BaseException):
        warnings.append(f"Goal fetch failed: {goals}")
        goals = []

    records = [normalize_client(client) for client in clients]
    ids = {r.client_id for r in records}
    events_by_client = _group_by_client(events, ids)
    goals_by_client = _group_by_client(goals, ids)

    snapshots = [
        normalize_snapshot(
            record,
            events=events_by_client.get(record.client_id),
            goals=goals_by_client.get(record.client_id),
            events_available=events_available,
            goals_available=goals_available,
        )
        for record in records
    ]
    return snapshots, warnings


# =============================================================================
# SERVICE
# =============================================================================


class EngagementService:
    """
    Refreshes engagement views from a record source.

    Example:
        >>> service = EngagementService(source)
        >>> result = asyncio.run(service.refresh())
    """

    def __init__(self, source: RecordSource, config: EngineConfig | None = None) -> None:
        self.source = source
        self.config = config or EngineConfig()
        self._generation = 0
        self._latest: EngineResult | None = None

    @property
    def latest(self) -> EngineResult | None:
        """Result of the newest refresh that completed without being superseded."""
        return self._latest

    @property
    def generation(self) -> int:
        return self._generation

    async def load_snapshots(self) -> tuple[list[ClientSnapshot], list[str]]:
        """
        Fetch clients, then events and goals in parallel.

        Raises:
            DataSourceError: If the clients fetch fails
        """
        try:
            clients = await self.source.fetch_clients()
        except Exception as e:
            raise DataSourceError(f"Failed to fetch clients: {e}", source="clients") from e

        client_ids = [cid for cid in (record_owner(c) for c in clients) if cid is not None]
        events, goals = await asyncio.gather(
            self.source.fetch_events(client_ids),
            self.source.fetch_goals(client_ids),
            return_exceptions=True,
        )
        return assemble_snapshots(clients, events, goals)

    async def refresh(self, now: datetime | None = None) -> EngineResult | None:
        """
        Fetch a fresh snapshot and recompute every view.

        Args:
            now: Reference time; captured at the start of the refresh when None

        Returns:
            EngineResult, or None when a newer refresh started meanwhile

        Raises:
            DataSourceError: If the clients fetch fails
            InvalidRecordError: If a record is malformed
        """
        self._generation += 1
        generation = self._generation
        reference_date = now or self.config.reference_date or datetime.now(timezone.utc)

        snapshots, warnings = await self.load_snapshots()
        if generation != self._generation:
            logger.info(f"Discarding stale refresh {generation} (latest is {self._generation})")
            return None

        config = replace(self.config, reference_date=reference_date)
        result = run_engine(snapshots, config, warnings=warnings)
        self._latest = result
        return result

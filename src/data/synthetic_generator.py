"""
Module: synthetic_generator

Purpose: Generate synthetic coach-client snapshots for demos and tests.

Generates realistic synthetic data with:
- Deterministic generation with seed for reproducibility
- Engagement archetypes (consistent, fading, dormant, new, never active)
- Meal, workout and hydration logs with per-archetype daily rates
- Goals with progress, target dates and completions
"""

from collections import Counter
from datetime import datetime, timedelta, timezone

import numpy as np

from src.data.schemas import (
    ActivityEvent,
    ActivityKind,
    ClientRecord,
    ClientSnapshot,
    GoalRecord,
    GoalStatus,
    SubscriptionTier,
)


# =============================================================================
# CONSTANTS
# =============================================================================

FIRST_NAMES = ["Ana", "Ben", "Chloe", "Dev", "Elif", "Femi", "Grace", "Hiro", "Ines", "Jonas"]
LAST_NAMES = ["Silva", "Okafor", "Novak", "Patel", "Kim", "Larsen", "Moreau", "Reyes"]

GOAL_TYPES = ["weight_loss", "muscle_gain", "maintenance", "performance"]

TIER_WEIGHTS = {
    SubscriptionTier.BASE: 0.40,
    SubscriptionTier.PREMIUM: 0.30,
    SubscriptionTier.PRO: 0.20,
    SubscriptionTier.ELITE: 0.10,
}

# Mean events per day for each activity kind
KIND_RATES = {
    ActivityKind.MEAL: 2.0,
    ActivityKind.WORKOUT: 0.5,
    ActivityKind.HYDRATION: 1.0,
}


# =============================================================================
# CLIENT ENGAGEMENT PROFILES
# =============================================================================


class EngagementArchetype:
    """Define different client engagement archetypes."""

    # Logs most days right up to now
    CONSISTENT = "consistent"
    # Active earlier, tapering off over the last weeks
    FADING = "fading"
    # Stopped logging weeks ago
    DORMANT = "dormant"
    # Joined recently and still ramping up
    NEW = "new"
    # Signed up but never logged anything (edge case)
    NEVER_ACTIVE = "never_active"


ARCHETYPE_WEIGHTS = {
    EngagementArchetype.CONSISTENT: 0.35,
    EngagementArchetype.FADING: 0.25,
    EngagementArchetype.DORMANT: 0.20,
    EngagementArchetype.NEW: 0.15,
    EngagementArchetype.NEVER_ACTIVE: 0.05,
}

# Fraction of each kind's daily rate actually logged
ARCHETYPE_INTENSITY = {
    EngagementArchetype.CONSISTENT: 0.9,
    EngagementArchetype.FADING: 0.6,
    EngagementArchetype.DORMANT: 0.5,
    EngagementArchetype.NEW: 0.8,
    EngagementArchetype.NEVER_ACTIVE: 0.0,
}


# =============================================================================
# SYNTHETIC DATA GENERATOR
# =============================================================================


class SyntheticSnapshotGenerator:
    """
    Generate synthetic client snapshots for testing.

    Uses numpy random generator with seed for reproducibility.
    """

    def __init__(self, *, seed: int = 42) -> None:
        """
        Initialize generator with seed.

        Args:
            seed: Random seed for reproducibility
        """
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self._client_counter = 0

    def _generate_client_id(self) -> str:
        """Generate a unique client ID."""
        self._client_counter += 1
        return f"client_{self._client_counter:06d}"

    def _random_timestamp(
        self,
        *,
        start: datetime,
        end: datetime,
    ) -> datetime:
        """Generate random timestamp between start and end."""
        delta = (end - start).total_seconds()
        random_seconds = self.rng.random() * delta
        return start + timedelta(seconds=random_seconds)

    def _select_archetype(self) -> str:
        """Select an engagement archetype based on weights."""
        archetypes = list(ARCHETYPE_WEIGHTS.keys())
        weights = list(ARCHETYPE_WEIGHTS.values())
        return str(self.rng.choice(archetypes, p=weights))

    def _select_tier(self) -> SubscriptionTier:
        tiers = list(TIER_WEIGHTS.keys())
        weights = list(TIER_WEIGHTS.values())
        return tiers[int(self.rng.choice(len(tiers), p=weights))]

    def generate_client(self, *, archetype: str, now: datetime) -> ClientRecord:
        """Generate a client whose join date fits the archetype."""
        client_id = self._generate_client_id()
        if archetype == EngagementArchetype.NEW:
            joined = self._random_timestamp(start=now - timedelta(days=21), end=now - timedelta(days=1))
        else:
            joined = self._random_timestamp(start=now - timedelta(days=240), end=now - timedelta(days=45))

        first = str(self.rng.choice(FIRST_NAMES))
        last = str(self.rng.choice(LAST_NAMES))
        return ClientRecord(
            client_id=client_id,
            full_name=f"{first} {last}",
            email=f"{first.lower()}.{last.lower()}.{self._client_counter}@example.com",
            tier=self._select_tier(),
            created_at=joined,
        )

    def _activity_span(self, archetype: str, joined: datetime, now: datetime) -> tuple[datetime, datetime]:
        """Period during which the client logs activity."""
        if archetype == EngagementArchetype.DORMANT:
            stop = now - timedelta(days=int(self.rng.integers(15, 60)))
            return joined, max(joined, stop)
        if archetype == EngagementArchetype.FADING:
            stop = now - timedelta(days=int(self.rng.integers(2, 10)))
            return joined, max(joined, stop)
        return joined, now

    def generate_events(
        self,
        *,
        client: ClientRecord,
        archetype: str,
        now: datetime,
    ) -> list[ActivityEvent]:
        """
        Generate activity logs for one client.

        Fading clients log at full intensity until four weeks before their
        last activity and at a reduced rate afterwards.
        """
        intensity = ARCHETYPE_INTENSITY[archetype]
        if intensity == 0.0:
            return []

        start, end = self._activity_span(archetype, client.created_at, now)
        events: list[ActivityEvent] = []
        for kind, rate in KIND_RATES.items():
            if archetype == EngagementArchetype.FADING:
                taper = max(start, end - timedelta(days=28))
                segments = [(start, taper, rate * intensity), (taper, end, rate * intensity * 0.3)]
            else:
                segments = [(start, end, rate * intensity)]

            for seg_start, seg_end, seg_rate in segments:
                days = (seg_end - seg_start).total_seconds() / 86400
                if days <= 0:
                    continue
                n_events = int(self.rng.poisson(seg_rate * days))
                for _ in range(n_events):
                    events.append(
                        ActivityEvent(
                            client_id=client.client_id,
                            occurred_at=self._random_timestamp(start=seg_start, end=seg_end),
                            kind=kind,
                        )
                    )

        events.sort(key=lambda e: (e.occurred_at, e.kind.value))
        return events

    def generate_goals(self, *, client: ClientRecord, archetype: str, now: datetime) -> list[GoalRecord]:
        """Generate zero to three goals for one client."""
        if archetype == EngagementArchetype.NEVER_ACTIVE:
            return []

        goals: list[GoalRecord] = []
        for _ in range(int(self.rng.integers(0, 4))):
            created = self._random_timestamp(start=client.created_at, end=now)
            target_date = created + timedelta(days=int(self.rng.integers(30, 120)))
            target_value = float(self.rng.integers(2, 20))

            completes = archetype == EngagementArchetype.CONSISTENT and self.rng.random() < 0.5
            completed_at = None
            if completes and (now - created).days >= 7:
                completed_at = self._random_timestamp(start=created + timedelta(days=7), end=now)

            if completed_at is not None:
                status = GoalStatus.COMPLETED
                current_value = target_value
            else:
                status = GoalStatus.ACTIVE
                current_value = round(float(self.rng.uniform(0, 1.1)) * target_value, 1)

            goals.append(
                GoalRecord(
                    client_id=client.client_id,
                    goal_type=str(self.rng.choice(GOAL_TYPES)),
                    target_value=target_value,
                    current_value=current_value,
                    status=status,
                    created_at=created,
                    target_date=target_date,
                    completed_at=completed_at,
                )
            )
        return goals

    def generate_snapshots(
        self,
        *,
        n_clients: int,
        now: datetime,
    ) -> list[ClientSnapshot]:
        """
        Generate snapshots for a coach's client list.

        Args:
            n_clients: Number of clients to generate
            now: Reference time; no record is dated after it

        Returns:
            List of ClientSnapshot
        """
        # Reset counters for reproducibility
        self._client_counter = 0

        snapshots: list[ClientSnapshot] = []
        for _ in range(n_clients):
            archetype = self._select_archetype()
            client = self.generate_client(archetype=archetype, now=now)
            snapshots.append(
                ClientSnapshot(
                    client=client,
                    events=self.generate_events(client=client, archetype=archetype, now=now),
                    goals=self.generate_goals(client=client, archetype=archetype, now=now),
                )
            )
        return snapshots


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def generate_sample_snapshots(
    *,
    seed: int = 42,
    n_clients: int = 50,
    now: datetime | None = None,
) -> list[ClientSnapshot]:
    """Generate a small client list for demos and integration tests."""
    generator = SyntheticSnapshotGenerator(seed=seed)
    return generator.generate_snapshots(
        n_clients=n_clients,
        now=now or datetime(2024, 6, 30, tzinfo=timezone.utc),
    )


def snapshot_statistics(snapshots: list[ClientSnapshot]) -> dict[str, int | float | dict[str, int]]:
    """Get summary statistics for a list of snapshots."""
    n_events = sum(len(s.events) for s in snapshots)
    kind_counts: Counter[str] = Counter(e.kind.value for s in snapshots for e in s.events)
    tier_counts: Counter[str] = Counter(s.client.tier.value for s in snapshots)

    return {
        "n_clients": len(snapshots),
        "n_events": n_events,
        "n_goals": sum(len(s.goals) for s in snapshots),
        "avg_events_per_client": n_events / len(snapshots) if snapshots else 0,
        "event_distribution": dict(kind_counts),
        "tier_distribution": dict(tier_counts),
    }

"""
Module: normalization

Purpose: Convert raw store rows (dicts) into validated engine records.

Missing or null numeric fields become zero and missing collections become
empty lists. A client row the engine cannot reason about (unknown tier,
missing join date) raises InvalidRecordError; unreadable activity and goal
rows are dropped with a warning and counted on the snapshot.
"""

import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping

from src.data.schemas import (
    ActivityEvent,
    ActivityKind,
    ClientRecord,
    ClientSnapshot,
    GoalRecord,
    GoalStatus,
    SubscriptionTier,
)
from src.exceptions import InvalidRecordError

logger = logging.getLogger(__name__)

RawRecord = Mapping[str, Any]

# Field-name alternatives seen across the store tables
CLIENT_ID_FIELDS = ("client_id", "user_id", "id")
EVENT_TIME_FIELDS = ("occurred_at", "created_at", "logged_at")


# =============================================================================
# SCALAR COERCION
# =============================================================================


def coerce_number(value: Any) -> float:
    """Coerce a raw numeric field to float, treating missing values as zero."""
    if value is None or value == "":
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric value {value!r} treated as 0")
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_timestamp(
    value: Any,
    *,
    field: str,
    client_id: str | None = None,
    required: bool = True,
) -> datetime | None:
    """
    Parse a raw timestamp into a UTC-aware datetime.

    Accepts datetimes, dates, ISO-8601 strings (including a trailing ``Z``) and
    pandas Timestamps.

    Raises:
        InvalidRecordError: If the value is missing while required, or unparseable
    """
    if value is None or value == "" or (isinstance(value, float) and math.isnan(value)):
        if required:
            raise InvalidRecordError(
                f"Missing required timestamp '{field}'",
                field=field,
                client_id=client_id,
            )
        return None

    if hasattr(value, "to_pydatetime"):
        value = value.to_pydatetime()

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidRecordError(
                f"Unparseable timestamp for '{field}': {value!r}",
                field=field,
                value=value,
                client_id=client_id,
            ) from e
    else:
        raise InvalidRecordError(
            f"Unsupported timestamp type for '{field}': {type(value).__name__}",
            field=field,
            value=value,
            client_id=client_id,
        )

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_tier(value: Any, *, client_id: str | None = None) -> SubscriptionTier:
    """
    Map a raw tier value onto a SubscriptionTier.

    Matching is case-insensitive ("Premium" and "premium" are the same tier).

    Raises:
        InvalidRecordError: If the tier is missing or not a known tier
    """
    if isinstance(value, SubscriptionTier):
        return value
    if value is None or not str(value).strip():
        raise InvalidRecordError(
            "Client record has no subscription tier",
            field="tier",
            client_id=client_id,
        )
    try:
        return SubscriptionTier(str(value).strip().lower())
    except ValueError as e:
        raise InvalidRecordError(
            f"Unknown subscription tier {value!r}",
            field="tier",
            value=value,
            client_id=client_id,
        ) from e


def _first_present(raw: RawRecord, fields: Iterable[str]) -> Any:
    for name in fields:
        value = raw.get(name)
        if value is not None and value != "":
            return value
    return None


def record_owner(raw: RawRecord) -> str | None:
    """Client ID a raw row belongs to, under any of the store's id field names."""
    value = _first_present(raw, CLIENT_ID_FIELDS)
    return None if value is None else str(value)


# =============================================================================
# RECORD NORMALIZATION
# =============================================================================


def normalize_client(raw: RawRecord) -> ClientRecord:
    """
    Build a ClientRecord from a raw client row.

    Raises:
        InvalidRecordError: If the id, tier or created_at is missing or malformed
    """
    if isinstance(raw, ClientRecord):
        return raw

    client_id = record_owner(raw)
    if client_id is None:
        raise InvalidRecordError("Client record has no id", field="client_id")

    created_at = parse_timestamp(raw.get("created_at"), field="created_at", client_id=client_id)

    return ClientRecord(
        client_id=client_id,
        full_name=str(raw.get("full_name") or ""),
        email=raw.get("email") or None,
        tier=normalize_tier(raw.get("tier"), client_id=client_id),
        created_at=created_at,
    )


def normalize_event(
    raw: RawRecord,
    *,
    client_id: str,
    kind: ActivityKind | str | None = None,
) -> ActivityEvent:
    """
    Build one ActivityEvent from a raw log row.

    Raises:
        InvalidRecordError: If the row has no usable kind or timestamp
    """
    if isinstance(raw, ActivityEvent):
        return raw

    raw_kind = raw.get("kind") or kind
    if raw_kind is None:
        raise InvalidRecordError(
            "Activity row has no kind and none is implied by its source",
            field="kind",
            client_id=client_id,
        )
    try:
        event_kind = ActivityKind(str(getattr(raw_kind, "value", raw_kind)).lower())
    except ValueError as e:
        raise InvalidRecordError(
            f"Unknown activity kind {raw_kind!r}",
            field="kind",
            value=raw_kind,
            client_id=client_id,
        ) from e

    occurred_at = parse_timestamp(
        _first_present(raw, EVENT_TIME_FIELDS),
        field="occurred_at",
        client_id=client_id,
    )
    return ActivityEvent(client_id=client_id, occurred_at=occurred_at, kind=event_kind)


def normalize_events(
    raw_events: Iterable[RawRecord] | None,
    *,
    client_id: str,
    kind: ActivityKind | str | None = None,
    skipped: list[InvalidRecordError] | None = None,
) -> list[ActivityEvent]:
    """
    Build ActivityEvents from raw log rows for one client.

    A row without a usable kind or timestamp is left out and logged; it never
    aborts the batch.

    Args:
        raw_events: Rows from one log table (or a mixed list carrying ``kind``)
        client_id: Owner of the rows
        kind: Kind implied by the source table; rows may override it with a ``kind`` field
        skipped: Collects the error for every row left out

    Returns:
        List of ActivityEvent (empty for a missing collection)
    """
    events: list[ActivityEvent] = []
    for raw in raw_events or []:
        try:
            events.append(normalize_event(raw, client_id=client_id, kind=kind))
        except InvalidRecordError as e:
            logger.warning(f"Skipping activity row for client {client_id}: {e.message}")
            if skipped is not None:
                skipped.append(e)
    return events


def normalize_goal(raw: RawRecord, *, client_id: str) -> GoalRecord:
    """
    Build a GoalRecord from a raw goal row.

    Numeric fields default to zero and a missing created_at is kept as None.

    Raises:
        InvalidRecordError: If the status is missing or unknown, or a date is unparseable
    """
    if isinstance(raw, GoalRecord):
        return raw

    raw_status = str(raw.get("status") or "").strip().lower()
    try:
        status = GoalStatus(raw_status)
    except ValueError as e:
        raise InvalidRecordError(
            f"Unknown goal status {raw.get('status')!r}",
            field="status",
            value=raw.get("status"),
            client_id=client_id,
        ) from e

    return GoalRecord(
        client_id=client_id,
        goal_type=str(raw.get("goal_type") or "other"),
        target_value=coerce_number(raw.get("target_value")),
        current_value=coerce_number(raw.get("current_value")),
        status=status,
        created_at=parse_timestamp(
            raw.get("created_at"), field="created_at", client_id=client_id, required=False
        ),
        target_date=parse_timestamp(
            raw.get("target_date"), field="target_date", client_id=client_id, required=False
        ),
        completed_at=parse_timestamp(
            raw.get("completed_at"), field="completed_at", client_id=client_id, required=False
        ),
    )


def normalize_goals(
    raw_goals: Iterable[RawRecord] | None,
    *,
    client_id: str,
    skipped: list[InvalidRecordError] | None = None,
) -> list[GoalRecord]:
    """Build GoalRecords for one client, leaving out (and logging) unreadable rows."""
    goals: list[GoalRecord] = []
    for raw in raw_goals or []:
        try:
            goals.append(normalize_goal(raw, client_id=client_id))
        except InvalidRecordError as e:
            logger.warning(f"Skipping goal row for client {client_id}: {e.message}")
            if skipped is not None:
                skipped.append(e)
    return goals


def normalize_snapshot(
    client: RawRecord | ClientRecord,
    *,
    events: Iterable[RawRecord] | None = None,
    meals: Iterable[RawRecord] | None = None,
    workouts: Iterable[RawRecord] | None = None,
    hydration: Iterable[RawRecord] | None = None,
    goals: Iterable[RawRecord] | None = None,
    events_available: bool = True,
    goals_available: bool = True,
) -> ClientSnapshot:
    """
    Assemble a ClientSnapshot from raw rows.

    ``events`` is a mixed list whose rows carry a ``kind``; ``meals``,
    ``workouts`` and ``hydration`` are per-table lists whose kind is implied.
    Unreadable activity and goal rows are dropped and counted in ``skipped_rows``.

    Raises:
        InvalidRecordError: If the client row itself has no usable id, tier or join date
    """
    record = normalize_client(client)
    client_id = record.client_id
    skipped: list[InvalidRecordError] = []

    all_events = normalize_events(events, client_id=client_id, skipped=skipped)
    for rows, kind in (
        (meals, ActivityKind.MEAL),
        (workouts, ActivityKind.WORKOUT),
        (hydration, ActivityKind.HYDRATION),
    ):
        all_events += normalize_events(rows, client_id=client_id, kind=kind, skipped=skipped)

    goal_records = normalize_goals(goals, client_id=client_id, skipped=skipped)

    return ClientSnapshot(
        client=record,
        events=all_events,
        goals=goal_records,
        events_available=events_available,
        goals_available=goals_available,
        skipped_rows=len(skipped),
    )

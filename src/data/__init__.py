"""
Data module for the engagement engine.

Contains record schemas, raw-row normalization, local table loading and
synthetic snapshot generation.
"""

from src.data.local_loader import (
    LocalDataLoader,
    LoadResult,
    load_local_data,
    load_snapshots,
)
from src.data.normalization import (
    coerce_number,
    normalize_client,
    normalize_event,
    normalize_events,
    normalize_goal,
    normalize_goals,
    normalize_snapshot,
    parse_timestamp,
)

__all__ = [
    # Data loading
    "LocalDataLoader",
    "LoadResult",
    "load_local_data",
    "load_snapshots",
    # Normalization
    "coerce_number",
    "parse_timestamp",
    "normalize_client",
    "normalize_event",
    "normalize_events",
    "normalize_goal",
    "normalize_goals",
    "normalize_snapshot",
]

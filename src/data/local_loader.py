"""
Local data loader for exported store tables.

Reads the clients, activity log and goal tables from CSV or parquet files
and assembles one ClientSnapshot per client for the engine.

Expected files (either extension, parquet preferred when both exist):
    clients        - one row per client (client_id/id, tier, created_at, ...)
    events         - mixed activity rows carrying a ``kind`` column
    meals          - meal logs
    workouts       - workout logs
    hydration      - hydration logs
    goals          - goal rows
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.data.normalization import RawRecord, normalize_client, normalize_snapshot, record_owner
from src.data.schemas import ClientSnapshot
from src.exceptions import DataSourceError, InsufficientDataError

logger = logging.getLogger(__name__)


# =============================================================================
# TABLES
# =============================================================================

CLIENTS_TABLE = "clients"
GOALS_TABLE = "goals"

# "events" rows carry their own kind; the others imply it
ACTIVITY_TABLES = ("events", "meals", "workouts", "hydration")

SUPPORTED_SUFFIXES = (".parquet", ".csv")


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class LoadResult:
    """Result of loading local store tables."""

    snapshots: list[ClientSnapshot] = field(default_factory=list)

    # Statistics
    tables_loaded: list[str] = field(default_factory=list)
    rows_by_table: dict[str, int] = field(default_factory=dict)
    total_rows: int = 0
    load_duration_ms: float = 0.0

    # Degradation
    events_available: bool = True
    goals_available: bool = True
    errors: list[str] = field(default_factory=list)

    @property
    def n_clients(self) -> int:
        return len(self.snapshots)


# =============================================================================
# LOCAL DATA LOADER
# =============================================================================


class LocalDataLoader:
    """
    Load client snapshots from local CSV or parquet files.

    A table that fails to read is recorded in ``errors``; activity or goal
    failures mark the matching source unavailable so the engine degrades
    instead of reading missing data as inactivity.

    Usage:
        loader = LocalDataLoader("data/samples")
        result = loader.load()

        from src.engine import run_engine
        engine_result = run_engine(result.snapshots)
    """

    def __init__(self, data_dir: str | Path):
        """
        Initialize loader.

        Args:
            data_dir: Directory containing the table files
        """
        self.data_dir = Path(data_dir)
        self._pandas_module: Any = None

    def _get_pandas(self) -> Any:
        """Lazy import of pandas."""
        if self._pandas_module is None:
            try:
                import pandas as pd
                self._pandas_module = pd
            except ImportError:
                raise ImportError(
                    "pandas is required: pip install pandas pyarrow"
                )
        return self._pandas_module

    def find_table(self, name: str) -> Path | None:
        """Path of a table file, or None when the table is absent."""
        for suffix in SUPPORTED_SUFFIXES:
            path = self.data_dir / f"{name}{suffix}"
            if path.exists():
                return path
        return None

    def list_tables(self) -> list[str]:
        """List available tables in data directory."""
        return sorted({
            p.stem for p in self.data_dir.iterdir()
            if p.suffix in SUPPORTED_SUFFIXES
        })

    def read_table(self, name: str) -> list[RawRecord] | None:
        """
        Read one table as a list of row dicts with nulls as None.

        Returns:
            Rows, or None when the table file does not exist
        """
        path = self.find_table(name)
        if path is None:
            return None

        pd = self._get_pandas()
        df = pd.read_parquet(path) if path.suffix == ".parquet" else pd.read_csv(path)
        df = df.astype(object).where(pd.notna(df), None)
        return df.to_dict("records")

    def load(self) -> LoadResult:
        """
        Load all tables and assemble snapshots.

        Returns:
            LoadResult with snapshots and statistics

        Raises:
            DataSourceError: If the data directory or clients table cannot be read
            InsufficientDataError: If the clients table has no rows
            InvalidRecordError: If a row is malformed beyond defaulting
        """
        start_time = time.perf_counter()
        result = LoadResult()

        if not self.data_dir.exists():
            raise DataSourceError(
                f"Data directory not found: {self.data_dir}", source=str(self.data_dir)
            )

        try:
            clients = self.read_table(CLIENTS_TABLE)
        except Exception as e:
            raise DataSourceError(f"Error loading {CLIENTS_TABLE}: {e}", source=CLIENTS_TABLE) from e
        if not clients:
            raise InsufficientDataError(
                f"No clients found in {self.data_dir}",
                required=1,
                actual=0,
                data_type=CLIENTS_TABLE,
            )
        self._record(result, CLIENTS_TABLE, clients)

        activity: dict[str, list[RawRecord]] = {}
        for table in ACTIVITY_TABLES:
            rows = self._read_optional(result, table)
            if rows is None:
                continue
            activity[table] = rows

        goals = self._read_optional(result, GOALS_TABLE)
        if goals is None:
            goals = []

        result.snapshots = self._assemble(clients, activity, goals, result)
        result.load_duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            f"Loaded {result.n_clients} clients from {len(result.tables_loaded)} tables "
            f"({result.total_rows} rows) in {result.load_duration_ms:.1f}ms"
        )
        return result

    def _record(self, result: LoadResult, table: str, rows: list[RawRecord]) -> None:
        result.tables_loaded.append(table)
        result.rows_by_table[table] = len(rows)
        result.total_rows += len(rows)
        logger.info(f"Loaded {len(rows)} rows from {table}")

    def _read_optional(self, result: LoadResult, table: str) -> list[RawRecord] | None:
        """Read a non-client table, degrading its source when the read fails."""
        try:
            rows = self.read_table(table)
        except Exception as e:
            error_msg = f"Error loading {table}: {str(e)}"
            logger.error(error_msg)
            result.errors.append(error_msg)
            if table == GOALS_TABLE:
                result.goals_available = False
            else:
                result.events_available = False
            return None

        if rows is not None:
            self._record(result, table, rows)
        return rows

    def _assemble(
        self,
        clients: list[RawRecord],
        activity: dict[str, list[RawRecord]],
        goals: list[RawRecord],
        result: LoadResult,
    ) -> list[ClientSnapshot]:
        records = [normalize_client(row) for row in clients]

        by_table: dict[str, dict[str, list[RawRecord]]] = {}
        for table, rows in [*activity.items(), (GOALS_TABLE, goals)]:
            grouped: dict[str, list[RawRecord]] = defaultdict(list)
            for row in rows:
                owner = record_owner(row)
                if owner is not None:
                    grouped[owner].append(row)
            by_table[table] = grouped

        def rows_for(table: str, client_id: str) -> list[RawRecord]:
            return by_table.get(table, {}).get(client_id, [])

        return [
            normalize_snapshot(
                record,
                events=rows_for("events", record.client_id),
                meals=rows_for("meals", record.client_id),
                workouts=rows_for("workouts", record.client_id),
                hydration=rows_for("hydration", record.client_id),
                goals=rows_for(GOALS_TABLE, record.client_id),
                events_available=result.events_available,
                goals_available=result.goals_available,
            )
            for record in records
        ]


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def load_local_data(data_dir: str | Path = "data/samples") -> LoadResult:
    """
    Load client snapshots from local table files.

    Args:
        data_dir: Directory containing the table files

    Returns:
        LoadResult with snapshots and statistics

    Example:
        result = load_local_data("data/samples")
        print(f"Loaded {result.n_clients} clients")
    """
    return LocalDataLoader(data_dir).load()


def load_snapshots(data_dir: str | Path = "data/samples") -> list[ClientSnapshot]:
    """Load just the snapshots for engine use."""
    return load_local_data(data_dir).snapshots

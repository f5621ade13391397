"""Profiling value records.

Records are designed to be:
- Immutable once created; every "update" returns a new instance.
- Cheap to build on the hot path (helpers use `model_copy`, no re-validation).
- Self-describing when dumped: derived fields (total time, type, duration...)
  are emitted alongside the stored ones so renderers never recompute them.

Timestamps are wall-clock epoch seconds; every duration is in milliseconds.
"""

from __future__ import annotations

import time
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

TaskId: TypeAlias = int

QueryType = Literal["SELECT", "INSERT", "UPDATE", "DELETE", "BEGIN", "COMMIT", "ROLLBACK", "OTHER"]
TransactionStatus = Literal["active", "committed", "rolled_back"]
FINISHED_STATUSES: tuple[TransactionStatus, ...] = ("committed", "rolled_back")

DEFAULT_SLOW_QUERY_THRESHOLD_MS = 100.0
DEFAULT_LONG_TRANSACTION_THRESHOLD_MS = 1000.0

# Order matters: first matching prefix wins.
_TYPE_PREFIXES: tuple[tuple[str, QueryType], ...] = (
    ("SELECT", "SELECT"),
    ("INSERT", "INSERT"),
    ("UPDATE", "UPDATE"),
    ("DELETE", "DELETE"),
    ("BEGIN", "BEGIN"),
    ("START TRANSACTION", "BEGIN"),
    ("COMMIT", "COMMIT"),
    ("ROLLBACK", "ROLLBACK"),
)


def now() -> float:
    """Return the current wall-clock time in epoch seconds."""
    return time.time()


def _elapsed_ms(start: float, end: float | None) -> float | None:
    if end is None:
        return None
    return (end - start) * 1000.0


def classify_sql(sql: str) -> QueryType:
    """Classify a statement by its leading keyword (case/whitespace tolerant)."""
    normalized = sql.strip().upper()
    for prefix, query_type in _TYPE_PREFIXES:
        if normalized.startswith(prefix):
            return query_type
    return "OTHER"


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class QueryEvent(_Record):
    """Outcome of a single statement execution."""

    sql: str
    bindings: tuple[Any, ...] = ()

    # Execution time and time spent waiting for a pooled connection (ms).
    duration: float = Field(ge=0)
    pool_wait_time: float = Field(default=0.0, ge=0)

    task_id: TaskId
    timestamp: float = Field(default_factory=now)

    success: bool = True
    error: str | None = None
    affected_rows: int | None = None
    connection_name: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_time(self) -> float:
        """Execution time plus pool wait time."""
        return self.duration + self.pool_wait_time

    @computed_field  # type: ignore[prop-decorator]
    @property
    def type(self) -> QueryType:
        return classify_sql(self.sql)

    def is_slow(self, threshold_ms: float = DEFAULT_SLOW_QUERY_THRESHOLD_MS) -> bool:
        """Return True when the execution time meets or exceeds `threshold_ms`."""
        return self.duration >= threshold_ms


class TransactionEvent(_Record):
    """Lifecycle of one transaction scope at a given nesting level."""

    start_time: float
    end_time: float | None = None
    task_id: TaskId
    level: int = Field(default=1, ge=1)
    status: TransactionStatus = "active"
    query_count: int = Field(default=0, ge=0)
    connection_name: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration(self) -> float | None:
        """Elapsed time in ms, or None while the transaction is still open."""
        return _elapsed_ms(self.start_time, self.end_time)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_committed(self) -> bool:
        return self.status == "committed"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_rolled_back(self) -> bool:
        return self.status == "rolled_back"

    def is_long_running(self, threshold_ms: float = DEFAULT_LONG_TRANSACTION_THRESHOLD_MS) -> bool:
        duration = self.duration
        return duration is not None and duration >= threshold_ms

    def with_end(self, end_time: float, status: TransactionStatus) -> TransactionEvent:
        """Return a finalized copy with the given end time and terminal status."""
        if status not in FINISHED_STATUSES:
            raise ValueError(f"transaction cannot end with status {status!r}; expected one of {FINISHED_STATUSES}")
        return self.model_copy(update={"end_time": end_time, "status": status})

    def with_incremented_query_count(self) -> TransactionEvent:
        return self.model_copy(update={"query_count": self.query_count + 1})


class PoolSnapshot(_Record):
    """Connection pool utilization at a point in time."""

    size: int = Field(ge=0)
    active: int = Field(ge=0)
    idle: int = Field(ge=0)
    waiting: int = Field(ge=0)
    timestamp: float = Field(default_factory=now)
    connection_name: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def utilization(self) -> float:
        """Percentage of the pool in use (0.0 for an empty pool)."""
        if self.size == 0:
            return 0.0
        return self.active / self.size * 100.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_exhausted(self) -> bool:
        return self.idle == 0 and self.active == self.size

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_waiting(self) -> bool:
        return self.waiting > 0

    def is_underutilized(self, threshold: float = 0.3) -> bool:
        """Return True when the active ratio is below `threshold` (a fraction, not a percentage)."""
        if self.size == 0:
            return False
        return self.active / self.size < threshold


class TaskAggregate(_Record):
    """Accumulated profile of one task (typically one request)."""

    task_id: TaskId
    start_time: float
    end_time: float | None = None
    queries: tuple[QueryEvent, ...] = ()
    request_path: str | None = None
    request_method: str | None = None

    @model_validator(mode="after")
    def _check_end_after_start(self) -> TaskAggregate:
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not be earlier than start_time")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration(self) -> float | None:
        """Elapsed time in ms, or None while the task is still in flight."""
        return _elapsed_ms(self.start_time, self.end_time)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def query_count(self) -> int:
        return len(self.queries)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def query_count_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for query in self.queries:
            counts[query.type] = counts.get(query.type, 0) + 1
        return counts

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_query_count(self) -> int:
        return sum(1 for query in self.queries if not query.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_query_time(self) -> float:
        return sum(query.duration for query in self.queries)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pool_wait_time(self) -> float:
        return sum(query.pool_wait_time for query in self.queries)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def slowest_query(self) -> QueryEvent | None:
        """The first query with the largest duration, if any."""
        if not self.queries:
            return None
        return max(self.queries, key=lambda query: query.duration)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def slow_queries(self) -> list[QueryEvent]:
        """Queries at or over the default slow threshold."""
        return self.get_slow_queries()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_active(self) -> bool:
        return self.end_time is None

    def get_slow_queries(self, threshold_ms: float = DEFAULT_SLOW_QUERY_THRESHOLD_MS) -> list[QueryEvent]:
        return [query for query in self.queries if query.is_slow(threshold_ms)]

    def with_query(self, query: QueryEvent) -> TaskAggregate:
        """Return a copy with `query` appended."""
        return self.model_copy(update={"queries": (*self.queries, query)})

    def with_end(self, end_time: float) -> TaskAggregate:
        # Clamp so a clock step backwards can't violate end >= start.
        return self.model_copy(update={"end_time": max(end_time, self.start_time)})

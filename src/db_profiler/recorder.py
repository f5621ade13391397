"""Recorder facade: the single entry point for instrumentation and readers."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from .aggregator import MetricsAggregator, MetricsView
from .models import (
    DEFAULT_SLOW_QUERY_THRESHOLD_MS,
    PoolSnapshot,
    QueryEvent,
    TaskAggregate,
    TaskId,
    TransactionEvent,
    TransactionStatus,
)
from .store import TaskContextStore
from .tasks import TaskIdProvider, current_task_id

if TYPE_CHECKING:
    from .config import ProfilerConfig

logger = logging.getLogger(__name__)


class RequestScope:
    """Holder yielded by `ProfilerRecorder.request_scope`.

    `profile` is None while the scope is open and holds the finalized
    aggregate after exit (still None if the recorder was disabled).
    """

    def __init__(self, task_id: TaskId) -> None:
        self.task_id = task_id
        self.profile: TaskAggregate | None = None


class ProfilerRecorder:
    """Gates recording, stamps events, and delegates to the store.

    Recording operations are silently skipped while the recorder is disabled.
    Read operations always reflect whatever was recorded while enabled.

    Every recording/reading operation that is task-scoped accepts an explicit
    `task_id`; when omitted, the recorder asks its `task_id_provider` (by
    default the running asyncio task, see `db_profiler.tasks`).
    """

    def __init__(
        self,
        store: TaskContextStore | None = None,
        aggregator: MetricsAggregator | None = None,
        *,
        enabled: bool = True,
        slow_query_threshold: float = DEFAULT_SLOW_QUERY_THRESHOLD_MS,
        task_id_provider: TaskIdProvider = current_task_id,
    ) -> None:
        self._store = store if store is not None else TaskContextStore()
        self._aggregator = aggregator if aggregator is not None else MetricsAggregator(self._store.ledger)
        self._enabled = enabled
        self._slow_query_threshold = float(slow_query_threshold)
        self._task_id_provider = task_id_provider

    @classmethod
    def from_config(cls, config: ProfilerConfig, **kwargs: Any) -> ProfilerRecorder:
        """Build a recorder (and its store) from a loaded `ProfilerConfig`."""
        store = TaskContextStore(auto_start_requests=config.auto_start_requests)
        return cls(
            store,
            enabled=config.enabled,
            slow_query_threshold=config.slow_query_threshold,
            **kwargs,
        )

    @property
    def store(self) -> TaskContextStore:
        """The store holding in-flight and archived data."""
        return self._store

    @property
    def aggregator(self) -> MetricsAggregator:
        return self._aggregator

    def _resolve(self, task_id: TaskId | None) -> TaskId:
        return self._task_id_provider() if task_id is None else task_id

    # -- policy -------------------------------------------------------------

    def enable(self) -> None:
        """Resume recording."""
        self._enabled = True

    def disable(self) -> None:
        """Stop recording; already collected data stays readable."""
        self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled

    def set_slow_query_threshold(self, threshold_ms: float) -> None:
        """Set the default slow-query threshold (ms)."""
        self._slow_query_threshold = float(threshold_ms)

    def get_slow_query_threshold(self) -> float:
        return self._slow_query_threshold

    # -- recording ----------------------------------------------------------

    def start_request(
        self, path: str | None = None, method: str | None = None, *, task_id: TaskId | None = None
    ) -> None:
        """Open a request for the calling task, replacing any open one."""
        if not self._enabled:
            return
        self._store.start_request(self._resolve(task_id), path, method)

    def end_request(self, *, task_id: TaskId | None = None) -> TaskAggregate | None:
        """Finalize the calling task's request; None when disabled or nothing is open."""
        if not self._enabled:
            return None
        return self._store.end_request(self._resolve(task_id))

    def record_query(
        self,
        sql: str,
        bindings: Sequence[Any],
        duration: float,
        pool_wait_time: float = 0.0,
        success: bool = True,
        error: str | None = None,
        affected_rows: int | None = None,
        connection_name: str | None = None,
        *,
        task_id: TaskId | None = None,
    ) -> None:
        """Record one query attempt (durations in milliseconds)."""
        if not self._enabled:
            return
        resolved = self._resolve(task_id)
        query = QueryEvent(
            sql=sql,
            bindings=tuple(bindings),
            duration=duration,
            pool_wait_time=pool_wait_time,
            task_id=resolved,
            timestamp=self._store.now(),
            success=success,
            error=error,
            affected_rows=affected_rows,
            connection_name=connection_name,
        )
        self._store.record_query(resolved, query)

    def start_transaction(
        self, level: int = 1, connection_name: str | None = None, *, task_id: TaskId | None = None
    ) -> None:
        """Record the start of a transaction at `level` (1 for the outermost)."""
        if not self._enabled:
            return
        self._store.start_transaction(self._resolve(task_id), level, connection_name)

    def end_transaction(
        self, level: int = 1, status: TransactionStatus = "committed", *, task_id: TaskId | None = None
    ) -> TransactionEvent | None:
        """Finalize the transaction at `level`; None when disabled or nothing is open."""
        if not self._enabled:
            return None
        return self._store.end_transaction(self._resolve(task_id), level, status)

    def increment_transaction_query_count(self, level: int = 1, *, task_id: TaskId | None = None) -> None:
        """Count one query against the open transaction at `level`."""
        if not self._enabled:
            return
        self._store.increment_transaction_query_count(self._resolve(task_id), level)

    def record_pool_metrics(
        self, size: int, active: int, idle: int, waiting: int, connection_name: str | None = None
    ) -> None:
        """Record one pool utilization snapshot."""
        if not self._enabled:
            return
        self._store.record_pool_metrics(
            PoolSnapshot(
                size=size,
                active=active,
                idle=idle,
                waiting=waiting,
                timestamp=self._store.now(),
                connection_name=connection_name,
            )
        )

    @contextmanager
    def request_scope(
        self, path: str | None = None, method: str | None = None, *, task_id: TaskId | None = None
    ) -> Iterator[RequestScope]:
        """Profile the enclosed block as one request.

        The request is ended on every exit path, including cancellation, so
        its aggregate is archived rather than left behind in the store.
        """
        scope = RequestScope(self._resolve(task_id))
        self.start_request(path, method, task_id=scope.task_id)
        try:
            yield scope
        finally:
            scope.profile = self.end_request(task_id=scope.task_id)

    # -- reading ------------------------------------------------------------

    def get_current_request(self, *, task_id: TaskId | None = None) -> TaskAggregate | None:
        """The calling task's in-flight aggregate, if any."""
        return self._store.get_request(self._resolve(task_id))

    def get_queries(self) -> Sequence[QueryEvent]:
        """All completed queries in recording order (a snapshot)."""
        return self._store.ledger.queries()

    def get_slow_queries(self, threshold: float | None = None) -> list[QueryEvent]:
        """Queries at or over `threshold` ms (default: the current slow threshold)."""
        limit = self._slow_query_threshold if threshold is None else threshold
        return [query for query in self._store.ledger.queries() if query.is_slow(limit)]

    def get_metrics(self) -> MetricsView:
        """Derive the metrics view from everything recorded so far."""
        return self._aggregator.get_metrics()

    def clear(self) -> None:
        """Drop all recorded and in-flight data."""
        self._store.clear()
        logger.debug("profiler data cleared")

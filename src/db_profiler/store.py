"""Task-scoped storage for in-flight profiling state.

Each task's request aggregate and open transactions live under that task's
id. Nothing here awaits, so under asyncio a task finishes every mutation
before another task can run; the locks only matter when tasks are spread
across OS threads.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .ledger import Ledger
from .models import (
    FINISHED_STATUSES,
    PoolSnapshot,
    QueryEvent,
    TaskAggregate,
    TaskId,
    TransactionEvent,
    TransactionStatus,
    now,
)

logger = logging.getLogger(__name__)


class TaskContextStore:
    """Per-task request aggregates and active transactions, backed by a `Ledger`."""

    def __init__(
        self,
        *,
        ledger: Ledger | None = None,
        clock: Callable[[], float] = now,
        auto_start_requests: bool = True,
    ) -> None:
        """Create a store.

        Args:
            ledger: Destination for finalized records; a fresh one by default.
            clock: Wall-clock source in epoch seconds (injectable for tests).
            auto_start_requests: When true, a query recorded for a task with no
                open request implicitly starts one (without path/method labels).
        """
        self.ledger = ledger if ledger is not None else Ledger()
        self._clock = clock
        self._auto_start_requests = auto_start_requests

        self._lock = threading.Lock()
        self._requests: dict[TaskId, TaskAggregate] = {}
        self._transactions: dict[tuple[TaskId, int], TransactionEvent] = {}

    @property
    def auto_start_requests(self) -> bool:
        """Whether a query with no open request starts one implicitly."""
        return self._auto_start_requests

    def now(self) -> float:
        """Current time from the store's clock (epoch seconds)."""
        return self._clock()

    # -- requests -----------------------------------------------------------

    def start_request(self, task_id: TaskId, path: str | None = None, method: str | None = None) -> TaskAggregate:
        """Open a fresh aggregate for `task_id`, replacing any existing one."""
        aggregate = TaskAggregate(
            task_id=task_id,
            start_time=self._clock(),
            request_path=path,
            request_method=method,
        )
        with self._lock:
            replaced = self._requests.get(task_id)
            self._requests[task_id] = aggregate
        if replaced is not None:
            logger.debug("task %s restarted a request; dropping %d in-flight queries", task_id, replaced.query_count)
        return aggregate

    def end_request(self, task_id: TaskId) -> TaskAggregate | None:
        """Finalize and archive the task's aggregate; None if it has none."""
        with self._lock:
            aggregate = self._requests.pop(task_id, None)
            if aggregate is None:
                return None
            finalized = aggregate.with_end(self._clock())
            # Archive under the store lock so pop+archive is atomic for readers.
            self.ledger.archive_request(finalized)
        logger.debug(
            "archived request task=%s path=%s queries=%d duration_ms=%.3f",
            task_id,
            finalized.request_path,
            finalized.query_count,
            finalized.duration or 0.0,
        )
        return finalized

    def get_request(self, task_id: TaskId) -> TaskAggregate | None:
        """Return the in-flight aggregate of `task_id`, if any."""
        with self._lock:
            return self._requests.get(task_id)

    def active_task_ids(self) -> list[TaskId]:
        """Ids of tasks that currently hold an unfinished aggregate."""
        with self._lock:
            return list(self._requests)

    # -- queries ------------------------------------------------------------

    def record_query(self, task_id: TaskId, query: QueryEvent) -> None:
        """Append `query` to the task's aggregate and to the ledger."""
        implicit = False
        with self._lock:
            aggregate = self._requests.get(task_id)
            if aggregate is None and self._auto_start_requests:
                aggregate = TaskAggregate(task_id=task_id, start_time=self._clock())
                implicit = True
            if aggregate is not None:
                self._requests[task_id] = aggregate.with_query(query)
            self.ledger.append_query(query)
        if implicit:
            logger.debug("task %s recorded a query without a request; started one implicitly", task_id)

    # -- transactions -------------------------------------------------------

    def start_transaction(
        self, task_id: TaskId, level: int = 1, connection_name: str | None = None
    ) -> TransactionEvent:
        """Open a transaction at (task, level), replacing one already open there."""
        transaction = TransactionEvent(
            start_time=self._clock(),
            task_id=task_id,
            level=level,
            status="active",
            connection_name=connection_name,
        )
        with self._lock:
            self._transactions[(task_id, level)] = transaction
        return transaction

    def end_transaction(
        self, task_id: TaskId, level: int = 1, status: TransactionStatus = "committed"
    ) -> TransactionEvent | None:
        """Finalize the transaction at (task, level); None if there is none.

        Raises:
            ValueError: If `status` is not committed or rolled_back. The
                transaction is left open in that case.
        """
        if status not in FINISHED_STATUSES:
            raise ValueError(f"transaction cannot end with status {status!r}; expected one of {FINISHED_STATUSES}")
        with self._lock:
            transaction = self._transactions.pop((task_id, level), None)
            if transaction is None:
                return None
            finalized = transaction.with_end(self._clock(), status)
            self.ledger.append_transaction(finalized)
        logger.debug(
            "archived transaction task=%s level=%d status=%s queries=%d",
            task_id,
            level,
            status,
            finalized.query_count,
        )
        return finalized

    def increment_transaction_query_count(self, task_id: TaskId, level: int = 1) -> None:
        """Count one more query against the open transaction; no-op if there is none."""
        key = (task_id, level)
        with self._lock:
            transaction = self._transactions.get(key)
            if transaction is not None:
                self._transactions[key] = transaction.with_incremented_query_count()

    def get_transaction(self, task_id: TaskId, level: int = 1) -> TransactionEvent | None:
        """Return the open transaction at (task, level), if any."""
        with self._lock:
            return self._transactions.get((task_id, level))

    # -- pool ---------------------------------------------------------------

    def record_pool_metrics(self, snapshot: PoolSnapshot) -> None:
        """Append a pool snapshot to the ledger."""
        self.ledger.append_pool_snapshot(snapshot)

    # -- housekeeping -------------------------------------------------------

    def clear(self) -> None:
        """Drop all live state and everything in the ledger."""
        with self._lock:
            self._requests.clear()
            self._transactions.clear()
            self.ledger.clear()

    def clear_current(self, task_id: TaskId) -> None:
        """Drop only the in-flight aggregate of `task_id`."""
        with self._lock:
            self._requests.pop(task_id, None)

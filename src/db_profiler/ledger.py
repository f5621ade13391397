"""Shared ledger of completed profiling records."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from .models import PoolSnapshot, QueryEvent, TaskAggregate, TransactionEvent


class Ledger:
    """Process-wide, append-only store of everything finalized.

    Holds four independent collections. Each has its own lock so appends to
    one never contend with another; readers always get a point-in-time copy,
    so callers can sort or slice freely without touching the ledger.

    Growth is unbounded until `clear()` is called.
    """

    def __init__(self) -> None:
        """Create an empty ledger."""
        self._queries_lock = threading.Lock()
        self._transactions_lock = threading.Lock()
        self._pool_lock = threading.Lock()
        self._requests_lock = threading.Lock()

        self._queries: list[QueryEvent] = []
        self._transactions: list[TransactionEvent] = []
        self._pool_snapshots: list[PoolSnapshot] = []
        self._requests: list[TaskAggregate] = []

    def append_query(self, query: QueryEvent) -> None:
        """Append a completed query (thread-safe)."""
        with self._queries_lock:
            self._queries.append(query)

    def append_transaction(self, transaction: TransactionEvent) -> None:
        """Append a finished transaction (thread-safe)."""
        with self._transactions_lock:
            self._transactions.append(transaction)

    def append_pool_snapshot(self, snapshot: PoolSnapshot) -> None:
        """Append a pool snapshot (thread-safe)."""
        with self._pool_lock:
            self._pool_snapshots.append(snapshot)

    def archive_request(self, aggregate: TaskAggregate) -> None:
        """Append a finalized task aggregate (thread-safe)."""
        with self._requests_lock:
            self._requests.append(aggregate)

    def queries(self) -> Sequence[QueryEvent]:
        """Return all completed queries in recording order."""
        with self._queries_lock:
            return list(self._queries)

    def transactions(self) -> Sequence[TransactionEvent]:
        """Return finished transactions in the order they ended."""
        with self._transactions_lock:
            return list(self._transactions)

    def pool_snapshots(self) -> Sequence[PoolSnapshot]:
        """Return pool snapshots in recording order."""
        with self._pool_lock:
            return list(self._pool_snapshots)

    def archived_requests(self) -> Sequence[TaskAggregate]:
        """Return finalized task aggregates in `end_request` order."""
        with self._requests_lock:
            return list(self._requests)

    @property
    def query_count(self) -> int:
        """Number of completed queries."""
        with self._queries_lock:
            return len(self._queries)

    @property
    def request_count(self) -> int:
        """Number of archived requests."""
        with self._requests_lock:
            return len(self._requests)

    def clear(self) -> None:
        """Drop every recorded item."""
        with self._queries_lock:
            self._queries.clear()
        with self._transactions_lock:
            self._transactions.clear()
        with self._pool_lock:
            self._pool_snapshots.clear()
        with self._requests_lock:
            self._requests.clear()

"""Aggregate statistics derived from the ledger.

The aggregator keeps no state of its own: every call re-reads ledger
snapshots and recomputes the whole view. The resulting `MetricsView` is the
fixed schema every renderer consumes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .ledger import Ledger
from .models import PoolSnapshot, QueryEvent, TaskAggregate, TransactionEvent

SLOWEST_LIMIT = 10

_T = TypeVar("_T")


class _View(BaseModel):
    model_config = ConfigDict(frozen=True)


class SummaryMetrics(_View):
    total_queries: int = 0
    successful_queries: int = 0
    failed_queries: int = 0
    total_requests: int = 0
    total_query_time: float = 0.0
    total_pool_wait_time: float = 0.0


class QueryTypeMetrics(_View):
    count: int = 0
    total_duration: float = 0.0
    avg_duration: float = 0.0


class QueryMetrics(_View):
    total: int = 0
    avg_duration: float = 0.0
    min_duration: float = 0.0
    max_duration: float = 0.0
    slowest_queries: list[QueryEvent] = Field(default_factory=list)
    queries_by_type: dict[str, QueryTypeMetrics] = Field(default_factory=dict)


class RequestMetrics(_View):
    total: int = 0
    avg_duration: float = 0.0
    avg_queries_per_request: float = 0.0
    slowest_requests: list[TaskAggregate] = Field(default_factory=list)


class TransactionMetrics(_View):
    total: int = 0
    committed: int = 0
    rolled_back: int = 0
    avg_duration: float = 0.0
    avg_queries_per_transaction: float = 0.0


class PoolMetrics(_View):
    total_snapshots: int = 0
    avg_utilization: float = 0.0
    max_utilization: float = 0.0
    exhaustion_count: int = 0


class MetricsView(_View):
    """Complete aggregate view of everything in the ledger."""

    summary: SummaryMetrics = Field(default_factory=SummaryMetrics)
    queries: QueryMetrics = Field(default_factory=QueryMetrics)
    requests: RequestMetrics = Field(default_factory=RequestMetrics)
    transactions: TransactionMetrics = Field(default_factory=TransactionMetrics)
    pool: PoolMetrics = Field(default_factory=PoolMetrics)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _slowest(items: Sequence[_T], key: Callable[[_T], float], limit: int = SLOWEST_LIMIT) -> list[_T]:
    # `sorted` is stable with reverse=True, so ties keep recording order.
    return sorted(items, key=key, reverse=True)[:limit]


class MetricsAggregator:
    """Builds a `MetricsView` from a `Ledger` on demand."""

    def __init__(self, ledger: Ledger) -> None:
        self._ledger = ledger

    def get_metrics(self) -> MetricsView:
        queries = self._ledger.queries()
        requests = self._ledger.archived_requests()
        return MetricsView(
            summary=self.summary(queries, requests),
            queries=self.query_metrics(queries),
            requests=self.request_metrics(requests),
            transactions=self.transaction_metrics(self._ledger.transactions()),
            pool=self.pool_metrics(self._ledger.pool_snapshots()),
        )

    @staticmethod
    def summary(queries: Sequence[QueryEvent], requests: Sequence[TaskAggregate]) -> SummaryMetrics:
        successful = sum(1 for query in queries if query.success)
        return SummaryMetrics(
            total_queries=len(queries),
            successful_queries=successful,
            failed_queries=len(queries) - successful,
            total_requests=len(requests),
            total_query_time=sum(query.duration for query in queries),
            total_pool_wait_time=sum(query.pool_wait_time for query in queries),
        )

    @staticmethod
    def query_metrics(queries: Sequence[QueryEvent]) -> QueryMetrics:
        if not queries:
            return QueryMetrics()

        durations = [query.duration for query in queries]

        totals: dict[str, tuple[int, float]] = {}
        for query in queries:
            count, total = totals.get(query.type, (0, 0.0))
            totals[query.type] = (count + 1, total + query.duration)

        return QueryMetrics(
            total=len(queries),
            avg_duration=_mean(durations),
            min_duration=min(durations),
            max_duration=max(durations),
            slowest_queries=_slowest(queries, key=lambda query: query.duration),
            queries_by_type={
                query_type: QueryTypeMetrics(count=count, total_duration=total, avg_duration=total / count)
                for query_type, (count, total) in totals.items()
            },
        )

    @staticmethod
    def request_metrics(requests: Sequence[TaskAggregate]) -> RequestMetrics:
        if not requests:
            return RequestMetrics()

        # Unterminated aggregates have no duration and don't count toward the mean.
        durations = [r.duration for r in requests if r.duration is not None]
        return RequestMetrics(
            total=len(requests),
            avg_duration=_mean(durations),
            avg_queries_per_request=_mean([r.query_count for r in requests]),
            slowest_requests=_slowest(requests, key=lambda r: r.duration or 0.0),
        )

    @staticmethod
    def transaction_metrics(transactions: Sequence[TransactionEvent]) -> TransactionMetrics:
        if not transactions:
            return TransactionMetrics()

        durations = [t.duration for t in transactions if t.duration is not None]
        return TransactionMetrics(
            total=len(transactions),
            committed=sum(1 for t in transactions if t.is_committed),
            rolled_back=sum(1 for t in transactions if t.is_rolled_back),
            avg_duration=_mean(durations),
            avg_queries_per_transaction=_mean([t.query_count for t in transactions]),
        )

    @staticmethod
    def pool_metrics(snapshots: Sequence[PoolSnapshot]) -> PoolMetrics:
        if not snapshots:
            return PoolMetrics()

        utilizations = [s.utilization for s in snapshots]
        return PoolMetrics(
            total_snapshots=len(snapshots),
            avg_utilization=_mean(utilizations),
            max_utilization=max(utilizations),
            exhaustion_count=sum(1 for s in snapshots if s.is_exhausted),
        )

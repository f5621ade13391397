"""Task-scoped database profiling for asyncio services.

This package provides:
- Immutable records for query executions, transactions and pool snapshots.
- A task-scoped store that isolates in-flight request profiles per task and
  archives completed ones into a shared ledger.
- An aggregator producing a fixed, typed metrics view for renderers.
- Wrappers that instrument a connection and a pool against small protocols.

Nothing is global: construct a `ProfilerRecorder` and pass it where needed.
"""

from .aggregator import MetricsAggregator, MetricsView
from .config import ProfilerConfig, load_config
from .ledger import Ledger
from .models import PoolSnapshot, QueryEvent, TaskAggregate, TransactionEvent, classify_sql
from .recorder import ProfilerRecorder, RequestScope
from .store import TaskContextStore
from .tasks import current_task_id

__all__ = [
    "Ledger",
    "MetricsAggregator",
    "MetricsView",
    "PoolSnapshot",
    "ProfilerConfig",
    "ProfilerRecorder",
    "QueryEvent",
    "RequestScope",
    "TaskAggregate",
    "TaskContextStore",
    "TransactionEvent",
    "classify_sql",
    "current_task_id",
    "load_config",
]

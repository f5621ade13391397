from __future__ import annotations

import pytest
from pydantic import ValidationError

from db_profiler.models import PoolSnapshot, QueryEvent, TaskAggregate, TransactionEvent, classify_sql


def _query(sql: str = "SELECT 1", duration: float = 10.0, **kwargs) -> QueryEvent:
    kwargs.setdefault("task_id", 1)
    kwargs.setdefault("timestamp", 1_000.0)
    return QueryEvent(sql=sql, duration=duration, **kwargs)


@pytest.mark.parametrize(
    ("sql", "expected"),
    [
        ("SELECT * FROM users", "SELECT"),
        ("  select 1", "SELECT"),
        ("\n\tinsert into t values (1)", "INSERT"),
        ("Update t set a = 1", "UPDATE"),
        ("delete from t", "DELETE"),
        ("BEGIN", "BEGIN"),
        ("START TRANSACTION", "BEGIN"),
        ("start transaction read only", "BEGIN"),
        ("commit", "COMMIT"),
        ("ROLLBACK TO SAVEPOINT sp1", "ROLLBACK"),
        ("SHOW TABLES", "OTHER"),
        ("", "OTHER"),
    ],
)
def test_classify_sql(sql: str, expected: str) -> None:
    assert classify_sql(sql) == expected
    assert _query(sql).type == expected


def test_query_total_time_is_duration_plus_wait() -> None:
    assert _query(duration=15.5, pool_wait_time=2.0).total_time == 17.5
    assert _query(duration=0.0, pool_wait_time=0.0).total_time == 0.0


@pytest.mark.parametrize(("duration", "slow"), [(99.99, False), (100.0, True), (250.0, True)])
def test_query_is_slow_boundary_is_inclusive(duration: float, slow: bool) -> None:
    assert _query(duration=duration).is_slow(100.0) is slow


def test_query_rejects_negative_durations() -> None:
    with pytest.raises(ValidationError):
        _query(duration=-1.0)
    with pytest.raises(ValidationError):
        _query(pool_wait_time=-0.5)


def test_query_dump_includes_derived_fields() -> None:
    dumped = _query("  select id from t", duration=5.0, pool_wait_time=1.5, bindings=[7]).model_dump()
    assert dumped["total_time"] == 6.5
    assert dumped["type"] == "SELECT"
    assert dumped["bindings"] == (7,)


def test_query_is_immutable() -> None:
    query = _query()
    with pytest.raises(ValidationError):
        query.duration = 5.0  # type: ignore[misc]


def test_transaction_lifecycle_helpers_return_new_values() -> None:
    active = TransactionEvent(start_time=1_000.0, task_id=1, level=1)
    counted = active.with_incremented_query_count().with_incremented_query_count()
    committed = counted.with_end(1_000.25, "committed")

    assert active.query_count == 0
    assert active.is_active and active.duration is None
    assert counted.query_count == 2 and counted.is_active

    assert committed.query_count == 2
    assert committed.is_committed and not committed.is_rolled_back
    assert not committed.is_active
    assert committed.duration == pytest.approx(250.0)


def test_transaction_long_running() -> None:
    tx = TransactionEvent(start_time=1_000.0, task_id=1)
    assert tx.is_long_running() is False
    assert tx.with_end(1_001.0, "rolled_back").is_long_running(1000.0) is True
    assert tx.with_end(1_000.5, "committed").is_long_running(1000.0) is False


def test_transaction_with_end_requires_finished_status() -> None:
    tx = TransactionEvent(start_time=1_000.0, task_id=1)
    with pytest.raises(ValueError, match="cannot end with status"):
        tx.with_end(1_001.0, "active")


def test_transaction_level_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        TransactionEvent(start_time=1.0, task_id=1, level=0)


def test_pool_snapshot_exhausted() -> None:
    snapshot = PoolSnapshot(size=10, active=10, idle=0, waiting=3, timestamp=1.0)
    assert snapshot.is_exhausted is True
    assert snapshot.utilization == 100.0
    assert snapshot.has_waiting is True


def test_pool_snapshot_empty_pool_is_defined() -> None:
    snapshot = PoolSnapshot(size=0, active=0, idle=0, waiting=0, timestamp=1.0)
    assert snapshot.utilization == 0.0
    assert snapshot.is_underutilized() is False
    assert snapshot.has_waiting is False


def test_pool_snapshot_underutilized() -> None:
    snapshot = PoolSnapshot(size=10, active=2, idle=8, waiting=0, timestamp=1.0)
    assert snapshot.utilization == pytest.approx(20.0)
    assert snapshot.is_underutilized() is True
    assert snapshot.is_underutilized(0.2) is False
    assert snapshot.is_exhausted is False


def test_task_aggregate_derived_values() -> None:
    queries = (
        _query("SELECT 1", 10.0, pool_wait_time=1.0),
        _query("UPDATE t SET a = 1", 15.5, pool_wait_time=0.5),
        _query("select 2", 8.3, success=False, error="boom"),
    )
    aggregate = TaskAggregate(task_id=1, start_time=1_000.0, end_time=1_025.5, queries=queries)

    assert aggregate.duration == pytest.approx(25_500.0)
    assert aggregate.query_count == 3
    assert aggregate.total_query_time == pytest.approx(33.8)
    assert aggregate.total_pool_wait_time == 1.5
    assert aggregate.failed_query_count == 1
    assert aggregate.query_count_by_type == {"SELECT": 2, "UPDATE": 1}
    assert aggregate.slowest_query == queries[1]
    assert aggregate.get_slow_queries(10.0) == [queries[0], queries[1]]
    assert aggregate.slow_queries == []
    assert aggregate.is_active is False


def test_task_aggregate_slowest_query_prefers_first_on_ties() -> None:
    first, second = _query("SELECT 1", 5.0), _query("SELECT 2", 5.0)
    aggregate = TaskAggregate(task_id=1, start_time=1.0, queries=(first, second))
    assert aggregate.slowest_query == first


def test_task_aggregate_active_and_empty() -> None:
    aggregate = TaskAggregate(task_id=1, start_time=1.0)
    assert aggregate.is_active is True
    assert aggregate.duration is None
    assert aggregate.slowest_query is None
    assert aggregate.total_query_time == 0


def test_task_aggregate_rejects_end_before_start() -> None:
    with pytest.raises(ValidationError):
        TaskAggregate(task_id=1, start_time=10.0, end_time=9.0)


def test_task_aggregate_with_query_leaves_original_untouched() -> None:
    original = TaskAggregate(task_id=1, start_time=1.0)
    updated = original.with_query(_query())
    assert original.queries == ()
    assert updated.query_count == 1


def test_task_aggregate_with_end_clamps_to_start() -> None:
    aggregate = TaskAggregate(task_id=1, start_time=10.0).with_end(9.0)
    assert aggregate.end_time == 10.0
    assert aggregate.duration == 0.0


def test_task_aggregate_dump_includes_derived_fields() -> None:
    slow = _query("DELETE FROM t", 150.0)
    dumped = TaskAggregate(task_id=7, start_time=1.0, end_time=2.0, queries=(slow,)).model_dump()
    for key in (
        "duration",
        "query_count",
        "query_count_by_type",
        "failed_query_count",
        "slowest_query",
        "slow_queries",
        "is_active",
    ):
        assert key in dumped
    assert dumped["slowest_query"]["type"] == "DELETE"
    assert [q["sql"] for q in dumped["slow_queries"]] == ["DELETE FROM t"]

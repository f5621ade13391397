from __future__ import annotations

import asyncio
import threading

import pytest

from db_profiler import ProfilerRecorder, current_task_id


@pytest.mark.asyncio
async def test_current_task_id_is_stable_within_a_task_and_distinct_across_tasks() -> None:
    async def ids() -> tuple[int, int]:
        first = current_task_id()
        await asyncio.sleep(0)
        return first, current_task_id()

    results = await asyncio.gather(*(ids() for _ in range(5)))

    assert all(a == b for a, b in results)
    assert len({a for a, _ in results}) == 5
    assert current_task_id() not in {a for a, _ in results}


def test_current_task_id_outside_event_loop_is_per_thread() -> None:
    main_id = current_task_id()
    assert current_task_id() == main_id

    seen: list[int] = []
    worker = threading.Thread(target=lambda: seen.append(current_task_id()))
    worker.start()
    worker.join()

    assert seen and seen[0] != main_id


@pytest.mark.asyncio
async def test_interleaved_tasks_never_see_each_others_queries() -> None:
    recorder = ProfilerRecorder()
    observed: dict[str, list[str]] = {}

    async def handler(name: str) -> None:
        recorder.start_request(f"/{name}", "GET")
        for i in range(3):
            recorder.record_query(f"SELECT '{name}', {i}", [], 1.0)
            # Yield so the other handlers run between our queries.
            await asyncio.sleep(0)
            current = recorder.get_current_request()
            assert current is not None
            assert all(f"'{name}'" in q.sql for q in current.queries)
        finalized = recorder.end_request()
        observed[name] = [q.sql for q in finalized.queries]

    await asyncio.gather(*(handler(name) for name in ("a", "b", "c", "d")))

    for name, sqls in observed.items():
        assert sqls == [f"SELECT '{name}', {i}" for i in range(3)]

    metrics = recorder.get_metrics()
    assert metrics.summary.total_queries == 12
    assert metrics.summary.total_requests == 4
    assert recorder.store.active_task_ids() == []


def test_threads_recording_concurrently_lose_no_updates() -> None:
    recorder = ProfilerRecorder()
    per_thread = 200
    thread_count = 8
    barrier = threading.Barrier(thread_count)

    def worker(n: int) -> None:
        barrier.wait()
        recorder.start_request(f"/t{n}")
        for i in range(per_thread):
            recorder.record_query("SELECT 1", [n, i], 0.1)
        finalized = recorder.end_request()
        assert finalized is not None and finalized.query_count == per_thread

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(thread_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    metrics = recorder.get_metrics()
    assert metrics.summary.total_queries == per_thread * thread_count
    assert metrics.summary.total_requests == thread_count

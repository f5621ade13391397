"""Demo entrypoint wiring the profiler to a simulated database.

This module intentionally contains a small, end-to-end "smoke test" that:

- Loads profiler configuration from environment.
- Builds a simulated connection pool whose statements just sleep.
- Runs a batch of concurrent "requests", each in its own asyncio task.
- Prints the aggregated metrics view as JSON.

It is **not** a driver integration; it is a convenient manual harness for
seeing per-task isolation and pool pressure in the collected data.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
from collections.abc import Sequence
from typing import Any

from db_profiler import ProfilerRecorder, load_config
from db_profiler.instrumentation import PoolStats, ProfiledPool

logger = logging.getLogger("db_profiler.demo")


class SimulatedConnection:
    """A connection whose statements take a random amount of time."""

    def __init__(self, *, failure_rate: float) -> None:
        self._failure_rate = failure_rate

    async def execute(self, sql: str, bindings: Sequence[Any] = ()) -> Any:
        await asyncio.sleep(random.uniform(0.001, 0.15))
        if random.random() < self._failure_rate:
            raise RuntimeError(f"simulated failure for {sql.split()[0]}")
        if sql.lstrip().upper().startswith(("UPDATE", "DELETE", "INSERT")):
            return random.randint(0, 5)
        return [{"id": b} for b in bindings]

    async def begin(self) -> None:
        await asyncio.sleep(0)

    async def commit(self) -> None:
        await asyncio.sleep(0)

    async def rollback(self) -> None:
        await asyncio.sleep(0)


class SimulatedPool:
    """Fixed-size pool backed by an asyncio.Queue."""

    def __init__(self, size: int, *, failure_rate: float = 0.05) -> None:
        self._size = size
        self._idle: asyncio.Queue[SimulatedConnection] = asyncio.Queue()
        for _ in range(size):
            self._idle.put_nowait(SimulatedConnection(failure_rate=failure_rate))
        self._waiting = 0

    async def acquire(self, timeout: float | None = None) -> SimulatedConnection:
        self._waiting += 1
        try:
            return await asyncio.wait_for(self._idle.get(), timeout=timeout)
        finally:
            self._waiting -= 1

    async def release(self, connection: SimulatedConnection) -> None:
        self._idle.put_nowait(connection)

    def stats(self) -> PoolStats:
        idle = self._idle.qsize()
        return PoolStats(size=self._size, active=self._size - idle, idle=idle, waiting=self._waiting)


async def _handle_request(recorder: ProfilerRecorder, pool: ProfiledPool, request_no: int) -> None:
    """Simulate one request: a couple of reads and a transactional write."""
    with recorder.request_scope(f"/orders/{request_no}", "POST"):
        try:
            async with pool.connection(timeout=5.0) as conn:
                await conn.execute("SELECT * FROM orders WHERE id = ?", [request_no])
                await conn.execute("select count(*) from order_items where order_id = ?", [request_no])
                async with conn.transaction():
                    await conn.execute("UPDATE orders SET status = ? WHERE id = ?", ["paid", request_no])
                    await conn.execute("INSERT INTO audit_log (order_id) VALUES (?)", [request_no])
        except RuntimeError as exc:
            logger.info("request %d failed: %s", request_no, exc)


async def run_demo() -> None:
    """Run a batch of concurrent simulated requests and print the metrics view."""
    cfg = load_config()
    recorder = ProfilerRecorder.from_config(cfg)

    pool_size = int(os.getenv("DEMO_POOL_SIZE", "4"))
    request_count = int(os.getenv("DEMO_REQUESTS", "20"))
    pool = ProfiledPool(SimulatedPool(pool_size), recorder, name="demo")

    await asyncio.gather(*(_handle_request(recorder, pool, i) for i in range(request_count)))

    slow = recorder.get_slow_queries()
    logger.info("%d queries at or over %.0f ms", len(slow), recorder.get_slow_query_threshold())
    print(recorder.get_metrics().model_dump_json(indent=2))


def main() -> None:
    """CLI entrypoint for running the demo with `python src/main.py`."""
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format="%(levelname)s %(name)s %(message)s")
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()

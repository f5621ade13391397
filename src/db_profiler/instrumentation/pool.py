"""Profiling wrapper around an async connection pool."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from ..recorder import ProfilerRecorder
from .base import AsyncConnection, AsyncConnectionPool, PoolStats
from .connection import ProfiledConnection

logger = logging.getLogger(__name__)


class ProfiledPool:
    """Snapshots pool utilization after every acquire and release."""

    def __init__(self, pool: AsyncConnectionPool, recorder: ProfilerRecorder, *, name: str | None = None) -> None:
        self._pool = pool
        self._recorder = recorder
        self._name = name
        self.last_wait_time: float = 0.0

    @property
    def base_pool(self) -> AsyncConnectionPool:
        return self._pool

    def stats(self) -> PoolStats:
        return self._pool.stats()

    async def acquire(self, timeout: float | None = None) -> AsyncConnection:
        """Check out a raw connection; the wait (ms) is kept in `last_wait_time`.

        A snapshot is taken whether or not the acquisition succeeds. When it
        fails, the pool's own error is what reaches the caller, even if taking
        the snapshot fails too.
        """
        started = time.perf_counter()
        try:
            connection = await self._pool.acquire(timeout)
        except BaseException:
            self.last_wait_time = (time.perf_counter() - started) * 1000.0
            try:
                self._snapshot()
            except Exception:  # noqa: BLE001 - the acquire failure takes precedence
                logger.warning("pool snapshot after failed acquire raised", exc_info=True)
            raise
        self.last_wait_time = (time.perf_counter() - started) * 1000.0
        self._snapshot()
        return connection

    async def release(self, connection: AsyncConnection) -> None:
        """Return a raw connection to the pool, then snapshot it."""
        await self._pool.release(connection)
        self._snapshot()

    @asynccontextmanager
    async def connection(self, timeout: float | None = None) -> AsyncIterator[ProfiledConnection]:
        """Acquire a connection wrapped for profiling and always release it."""
        raw = await self.acquire(timeout)
        try:
            yield ProfiledConnection(raw, self._recorder, name=self._name, pool_wait_time=self.last_wait_time)
        finally:
            await self.release(raw)

    def _snapshot(self) -> None:
        if not self._recorder.is_enabled():
            return
        stats = self._pool.stats()
        self._recorder.record_pool_metrics(
            size=stats.size,
            active=stats.active,
            idle=stats.idle,
            waiting=stats.waiting,
            connection_name=self._name,
        )

"""Profiling wrapper around an async database connection."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from ..models import TransactionStatus
from ..recorder import ProfilerRecorder
from .base import AsyncConnection

logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ProfiledConnection:
    """Times every statement and transaction boundary on a wrapped connection.

    Failures are recorded as data and then re-raised untouched; the wrapper
    never swallows or replaces a driver error.
    """

    def __init__(
        self,
        connection: AsyncConnection,
        recorder: ProfilerRecorder,
        *,
        name: str | None = None,
        pool_wait_time: float = 0.0,
    ) -> None:
        """Wrap `connection`.

        Args:
            connection: The driver connection to delegate to.
            recorder: Where query/transaction facts are reported.
            name: Connection label copied onto every recorded event.
            pool_wait_time: Time (ms) spent acquiring this connection from a
                pool; charged to the first query executed through it.
        """
        self._connection = connection
        self._recorder = recorder
        self._name = name
        self._pending_wait = pool_wait_time
        self._transaction_level = 0
        # Set when a failed commit already closed its level; the caller's
        # follow-up rollback must not close the enclosing one as well.
        self._commit_failed = False

    @property
    def base_connection(self) -> AsyncConnection:
        """The wrapped driver connection."""
        return self._connection

    @property
    def name(self) -> str | None:
        """Label copied onto recorded events."""
        return self._name

    @property
    def transaction_level(self) -> int:
        """Number of transactions currently open through this wrapper."""
        return self._transaction_level

    async def execute(self, sql: str, bindings: Sequence[Any] = ()) -> Any:
        """Execute a statement, recording exactly one query event for the attempt."""
        wait, self._pending_wait = self._pending_wait, 0.0
        self._commit_failed = False
        success = True
        error: str | None = None
        affected_rows: int | None = None

        started = time.perf_counter()
        try:
            result = await self._connection.execute(sql, bindings)
            # bool is an int subclass but never a row count.
            if isinstance(result, int) and not isinstance(result, bool):
                affected_rows = result
            return result
        except BaseException as exc:
            success = False
            error = _describe(exc)
            logger.debug("query failed on %s: %s", self._name or "connection", error)
            raise
        finally:
            duration_ms = (time.perf_counter() - started) * 1000.0
            self._recorder.record_query(
                sql,
                bindings,
                duration_ms,
                pool_wait_time=wait,
                success=success,
                error=error,
                affected_rows=affected_rows,
                connection_name=self._name,
            )
            if self._transaction_level > 0:
                self._recorder.increment_transaction_query_count(self._transaction_level)

    async def begin(self) -> None:
        """Open a (possibly nested) transaction and record it at the new level."""
        self._commit_failed = False
        await self._connection.begin()
        self._transaction_level += 1
        self._recorder.start_transaction(self._transaction_level, self._name)

    async def commit(self) -> None:
        """Commit the innermost transaction.

        A failed commit ends that level as rolled back before the driver error
        propagates. A rollback issued right after it is passed to the driver
        but records nothing.
        """
        self._commit_failed = False
        try:
            await self._connection.commit()
        except BaseException:
            # The driver couldn't commit, so the scope did not persist.
            if self._transaction_level > 0:
                self._end_transaction("rolled_back")
                self._commit_failed = True
            raise
        self._end_transaction("committed")

    async def rollback(self) -> None:
        """Roll back the innermost transaction still open."""
        already_ended, self._commit_failed = self._commit_failed, False
        try:
            await self._connection.rollback()
        finally:
            if not already_ended:
                self._end_transaction("rolled_back")

    def _end_transaction(self, status: TransactionStatus) -> None:
        if self._transaction_level == 0:
            return
        self._recorder.end_transaction(self._transaction_level, status)
        self._transaction_level -= 1

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ProfiledConnection]:
        """Run the enclosed block in a transaction: commit on success, roll back on error."""
        await self.begin()
        try:
            yield self
        except BaseException:
            await self.rollback()
            raise
        await self.commit()

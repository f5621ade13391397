"""Interfaces the instrumentation wrappers depend on.

Only an enumerated set of operations is profiled: statement execution,
transaction boundaries, and pool acquire/release. Drivers are adapted to
these small protocols rather than intercepted wholesale.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class PoolStats:
    """Counts reported by a pool about itself."""

    size: int
    active: int
    idle: int
    waiting: int = 0


class AsyncConnection(Protocol):
    async def execute(self, sql: str, bindings: Sequence[Any] = ()) -> Any:
        """Run a statement and return the driver's result (an int is read as affected rows)."""

    async def begin(self) -> None:
        """Open a (possibly nested) transaction."""

    async def commit(self) -> None:
        """Commit the innermost open transaction."""

    async def rollback(self) -> None:
        """Roll back the innermost open transaction."""


class AsyncConnectionPool(Protocol):
    async def acquire(self, timeout: float | None = None) -> AsyncConnection:
        """Check a connection out of the pool."""

    async def release(self, connection: AsyncConnection) -> None:
        """Return a connection to the pool."""

    def stats(self) -> PoolStats:
        """Report current size/active/idle/waiting counts."""

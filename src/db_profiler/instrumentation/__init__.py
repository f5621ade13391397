"""Wrappers that report driver activity to a `ProfilerRecorder`."""

from .base import AsyncConnection, AsyncConnectionPool, PoolStats
from .connection import ProfiledConnection
from .pool import ProfiledPool

__all__ = [
    "AsyncConnection",
    "AsyncConnectionPool",
    "PoolStats",
    "ProfiledConnection",
    "ProfiledPool",
]

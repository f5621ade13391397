"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting `PROFILER_*` environment variables into a typed Pydantic model.
- Validating values and providing actionable error messages.
"""

from __future__ import annotations

import os
from typing import TypeVar

import dotenv
from pydantic import BaseModel, Field

_T = TypeVar("_T", int, float)


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


class ProfilerConfig(BaseModel):
    """Settings for a `ProfilerRecorder`."""

    enabled: bool = Field(default=True, description="Collect profiling data")
    slow_query_threshold: float = Field(default=100.0, ge=0, description="Slow query threshold (ms)")
    auto_start_requests: bool = Field(
        default=True,
        description="Implicitly open a request when a query is recorded outside one",
    )


def load_config() -> ProfilerConfig:
    """Load profiler configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages for malformed values.
    """
    dotenv.load_dotenv()

    return ProfilerConfig(
        enabled=_get_env_bool("PROFILER_ENABLED", True),
        slow_query_threshold=_get_env_number("PROFILER_SLOW_QUERY_THRESHOLD", 100.0, float),
        auto_start_requests=_get_env_bool("PROFILER_AUTO_START_REQUESTS", True),
    )

"""Identity of the currently running execution unit.

The store never guesses which task it is serving; callers hand it an id. This
module provides the default way to obtain one: the running `asyncio.Task`, or
the current thread when no event loop task is active.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
import weakref
from collections.abc import Callable

from .models import TaskId

TaskIdProvider = Callable[[], TaskId]

_lock = threading.Lock()
_counter = itertools.count(1)

# Weakly keyed so finished tasks drop out; ids come from a counter and are never reused.
_task_ids: weakref.WeakKeyDictionary[asyncio.Task[object], TaskId] = weakref.WeakKeyDictionary()
_thread_state = threading.local()


def _next_id() -> TaskId:
    with _lock:
        return next(_counter)


def current_task_id() -> TaskId:
    """Return a stable id for the running asyncio task (or thread, outside a task)."""
    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None

    if task is not None:
        with _lock:
            task_id = _task_ids.get(task)
            if task_id is None:
                task_id = next(_counter)
                _task_ids[task] = task_id
        return task_id

    task_id = getattr(_thread_state, "task_id", None)
    if task_id is None:
        task_id = _next_id()
        _thread_state.task_id = task_id
    return task_id

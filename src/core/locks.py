"""Per-entity mutual exclusion for workflow transitions.

Each task and checklist gets its own ``asyncio.Lock`` keyed by entity kind and
id. A transition holds the lock for its whole load, validate, mutate, persist
sequence, so transitions on the same entity are serialized while transitions
on different entities run concurrently.

Callers that need several locks must take them in the same order everywhere:
the task first, then its checklist.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


logger = logging.getLogger(__name__)

# (loop id, entity key) -> [lock, number of holders and waiters]
_ENTITY_LOCKS: dict[tuple[int, str], list] = {}
_REGISTRY_GUARD = threading.Lock()


def task_key(task_id: str) -> str:
    return f"task:{task_id}"


def worker_key(worker_id: str) -> str:
    return f"worker:{worker_id}"


def checklist_key(checklist_id: str) -> str:
    return f"checklist:{checklist_id}"


def _checkout(key: str) -> asyncio.Lock:
    registry_key = (id(asyncio.get_running_loop()), key)
    with _REGISTRY_GUARD:
        entry = _ENTITY_LOCKS.get(registry_key)
        if entry is None:
            entry = [asyncio.Lock(), 0]
            _ENTITY_LOCKS[registry_key] = entry
        entry[1] += 1
        return entry[0]


def _checkin(key: str) -> None:
    registry_key = (id(asyncio.get_running_loop()), key)
    with _REGISTRY_GUARD:
        entry = _ENTITY_LOCKS.get(registry_key)
        if entry is None:
            return
        entry[1] -= 1
        if entry[1] <= 0:
            del _ENTITY_LOCKS[registry_key]


@asynccontextmanager
async def entity_guard(*keys: str) -> AsyncIterator[None]:
    """Hold the locks for ``keys`` (acquired left to right) for the block."""
    ordered = list(dict.fromkeys(keys))
    acquired: list[tuple[str, asyncio.Lock]] = []
    try:
        for key in ordered:
            lock = _checkout(key)
            try:
                await lock.acquire()
            except BaseException:
                _checkin(key)
                raise
            acquired.append((key, lock))
        yield
    finally:
        for key, lock in reversed(acquired):
            lock.release()
            _checkin(key)


def active_lock_count() -> int:
    """Number of entity locks currently held or awaited."""
    with _REGISTRY_GUARD:
        return len(_ENTITY_LOCKS)

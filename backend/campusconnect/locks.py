"""Per-item serialization for workflow mutations."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator
from uuid import UUID

from .errors import Unavailable
from .settings import ITEM_LOCK_TIMEOUT_SECONDS

# purpose: serialize mutating workflow calls per (kind, id) inside one process; the
#   conditional UPDATE/DELETE statements in the services guard across processes
# status: active

_REGISTRY: dict[tuple[str, str], list] = {}
_REGISTRY_LOCK = Lock()


def _checkout(key: tuple[str, str]) -> Lock:
    with _REGISTRY_LOCK:
        entry = _REGISTRY.get(key)
        if entry is None:
            entry = [Lock(), 0]
            _REGISTRY[key] = entry
        entry[1] += 1
        return entry[0]


def _checkin(key: tuple[str, str]) -> None:
    with _REGISTRY_LOCK:
        entry = _REGISTRY.get(key)
        if entry is None:
            return
        entry[1] -= 1
        if entry[1] <= 0:
            del _REGISTRY[key]


@contextmanager
def hold(kind: str, item_id: UUID | str, timeout: float | None = None) -> Iterator[None]:
    """Hold the lock for one item until the block exits."""

    key = (kind, str(item_id))
    lock = _checkout(key)
    try:
        wait = ITEM_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        if not lock.acquire(timeout=wait):
            raise Unavailable(f"timed out waiting for {kind} {item_id}")
        try:
            yield
        finally:
            lock.release()
    finally:
        _checkin(key)


def held_count() -> int:
    """Return how many item locks are currently registered."""

    with _REGISTRY_LOCK:
        return len(_REGISTRY)

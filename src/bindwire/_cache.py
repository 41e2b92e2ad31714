from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from ._errors import CircularDependencyError


if TYPE_CHECKING:
    from collections.abc import Iterator


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Returned by InstanceCache.get on a miss; None is a legitimate cached value.
MISSING: Any = _Missing()


class InstanceCache:
    """Shared instances keyed by abstract key.

    `guard(key)` serializes the first build of a shared key across threads.
    Each key being built records its owning thread and each blocked thread
    records the key it waits for; a wait that would close a loop between
    threads raises CircularDependencyError instead of blocking.
    """

    def __init__(self) -> None:
        self._instances: dict[Any, Any] = {}
        self._owners: dict[Any, int] = {}
        self._waiting: dict[int, Any] = {}
        self._lock = threading.RLock()
        self._released = threading.Condition(self._lock)

    def get(self, key: Any) -> Any:
        with self._lock:
            return self._instances.get(key, MISSING)

    def put(self, key: Any, value: Any) -> None:
        with self._lock:
            self._instances[key] = value

    def evict(self, key: Any) -> bool:
        with self._lock:
            return self._instances.pop(key, MISSING) is not MISSING

    def clear(self) -> None:
        with self._lock:
            self._instances.clear()

    @contextmanager
    def guard(self, key: Any) -> Iterator[None]:
        me = threading.get_ident()
        with self._released:
            while key in self._owners and self._owners[key] != me:
                chain = self._wait_chain(key, me)
                if chain is not None:
                    raise CircularDependencyError(chain)
                self._waiting[me] = key
                try:
                    self._released.wait()
                finally:
                    del self._waiting[me]
            reentered = key in self._owners
            self._owners[key] = me

        try:
            yield
        finally:
            if not reentered:
                with self._released:
                    del self._owners[key]
                    self._released.notify_all()

    def _wait_chain(self, key: Any, me: int) -> list[Any] | None:
        # follow owner -> awaited key until the path returns to this thread
        chain = [key]
        owner = self._owners[key]
        while owner in self._waiting:
            awaited = self._waiting[owner]
            chain.append(awaited)
            owner = self._owners.get(awaited)
            if owner is None:
                return None
            if owner == me:
                return [*chain, key]
        return None

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._instances

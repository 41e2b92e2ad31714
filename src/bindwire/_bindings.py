from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any


class BindingKind(Enum):
    CONCRETE = "concrete"
    FACTORY = "factory"
    INSTANCE = "instance"


@dataclass(frozen=True)
class Binding:
    """How to produce the value for one key.

    `producer` is a class or dotted class path (CONCRETE), a callable taking
    the container (FACTORY) or the value itself (INSTANCE).
    """

    kind: BindingKind
    producer: Any
    shared: bool = False

    def __post_init__(self) -> None:
        if self.kind is BindingKind.INSTANCE and not self.shared:
            # instances are reused as-is, never rebuilt
            object.__setattr__(self, "shared", True)


class BindingRegistry:
    """At most one binding per key; the last write wins."""

    def __init__(self) -> None:
        self._bindings: dict[Any, Binding] = {}
        self._lock = threading.RLock()

    def set(self, key: Any, binding: Binding) -> Binding | None:
        """Store `binding` for `key`, returning the binding it replaced."""
        with self._lock:
            previous = self._bindings.get(key)
            self._bindings[key] = binding
            return previous

    def get(self, key: Any) -> Binding | None:
        with self._lock:
            return self._bindings.get(key)

    def clear(self) -> None:
        with self._lock:
            self._bindings.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._bindings


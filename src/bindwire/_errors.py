from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Sequence


def describe_key(key: Any) -> str:
    """Human readable name of a key for error and log messages."""
    if inspect.isclass(key):
        return key.__qualname__
    return repr(key)


class ResolutionError(RuntimeError):
    pass


class NotInstantiableError(ResolutionError):
    """The target type cannot be introspected or constructed."""

    def __init__(self, target: Any, reason: str) -> None:
        self.target = target
        super().__init__(f"{describe_key(target)} is not instantiable: {reason}")


class UnresolvableError(ResolutionError):
    """No source exists for a key, or for one constructor parameter of it."""

    def __init__(
        self,
        key: Any,
        reason: str,
        *,
        parameter: str | None = None,
        owner: Any = None,
    ) -> None:
        self.key = key
        self.parameter = parameter
        self.owner = owner
        if parameter is not None:
            msg = f"Cannot satisfy constructor parameter '{parameter}' for {describe_key(owner)}: {reason}"
        else:
            msg = f"Cannot resolve {describe_key(key)}: {reason}"
        super().__init__(msg)


class CircularDependencyError(ResolutionError):
    def __init__(self, chain: Sequence[Any]) -> None:
        self.chain = list(chain)
        path = " -> ".join(describe_key(k) for k in self.chain)
        super().__init__(f"Circular dependency detected: {path}")

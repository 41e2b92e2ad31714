from __future__ import annotations

import importlib
import inspect
import logging
import typing
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, get_type_hints

from ._errors import NotInstantiableError, describe_key


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger(__name__)

_EMPTY = inspect.Parameter.empty


@dataclass(frozen=True)
class ParameterSpec:
    """One constructor (or callable) parameter.

    `declared_type` is None when the parameter carries no annotation.
    """

    name: str
    declared_type: Any = None
    has_default: bool = False
    default: Any = None
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD

    @property
    def is_variadic(self) -> bool:
        return self.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


@dataclass(frozen=True)
class DependencyDescriptor:
    owner: Any
    parameters: tuple[ParameterSpec, ...]

    def __iter__(self):
        return iter(self.parameters)

    @property
    def accepts_var_keyword(self) -> bool:
        return any(p.kind is inspect.Parameter.VAR_KEYWORD for p in self.parameters)


class TypeIntrospector(Protocol):
    def describe_constructor(self, cls: type) -> DependencyDescriptor: ...

    def describe_callable(self, func: Callable[..., Any]) -> DependencyDescriptor: ...


class SignatureIntrospector:
    """Type introspector backed by `inspect.signature` and `typing.get_type_hints`."""

    def describe_constructor(self, cls: type) -> DependencyDescriptor:
        if not inspect.isclass(cls):
            raise NotInstantiableError(cls, "not a class")
        if is_protocol(cls):
            raise NotInstantiableError(cls, "protocols cannot be constructed")
        if inspect.isabstract(cls):
            missing = ", ".join(sorted(getattr(cls, "__abstractmethods__", ())))
            raise NotInstantiableError(cls, f"abstract class (unimplemented: {missing})")

        try:
            sig = inspect.signature(cls)
        except (TypeError, ValueError) as exc:
            raise NotInstantiableError(cls, f"no usable constructor signature ({exc})") from exc

        return _describe(cls, sig, _init_type_hints(cls))

    def describe_callable(self, func: Callable[..., Any]) -> DependencyDescriptor:
        if inspect.isclass(func):
            return self.describe_constructor(func)
        if not callable(func):
            msg = f"{func!r} is not callable"
            raise TypeError(msg)

        sig = inspect.signature(func)
        target = func if inspect.isfunction(func) or inspect.ismethod(func) else type(func).__call__
        return _describe(func, sig, _type_hints(target, getattr(func, "__qualname__", repr(func))))


def _describe(owner: Any, sig: inspect.Signature, hints: dict[str, Any]) -> DependencyDescriptor:
    params = []
    for p in sig.parameters.values():
        annotation = hints.get(p.name, p.annotation)
        # unevaluated string annotations are useless as keys
        if annotation is _EMPTY or isinstance(annotation, str):
            annotation = None
        params.append(
            ParameterSpec(
                name=p.name,
                declared_type=annotation,
                has_default=p.default is not _EMPTY,
                default=None if p.default is _EMPTY else p.default,
                kind=p.kind,
            )
        )
    return DependencyDescriptor(owner=owner, parameters=tuple(params))


def _init_type_hints(cls: type) -> dict[str, Any]:
    try:
        init = inspect.getattr_static(cls, "__init__")
    except AttributeError:
        return {}
    return _type_hints(init, cls.__qualname__)


def _type_hints(obj: Any, name: str) -> dict[str, Any]:
    try:
        hints = get_type_hints(obj)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s type hints", exc.name, name)
        hints = {}

    hints.pop("return", None)
    return hints


if hasattr(typing, "is_protocol"):

    def is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and bool(getattr(tp, "_is_protocol", False)) and tp is not Protocol


def is_instantiable(tp: Any) -> bool:
    return inspect.isclass(tp) and not is_protocol(tp) and not inspect.isabstract(tp)


def load_class(path: str) -> type:
    """Import and return a class from a dotted `module.ClassName` path."""
    module_path, _, class_name = path.rpartition(".")
    if not module_path:
        raise NotInstantiableError(path, "expected a dotted 'module.ClassName' path")
    try:
        module = importlib.import_module(module_path)
        cls = getattr(module, class_name)
    except (ImportError, AttributeError) as exc:
        raise NotInstantiableError(path, f"cannot import ({exc})") from exc
    if not inspect.isclass(cls):
        raise NotInstantiableError(path, f"{module_path}.{class_name} is not a class")
    return cls


def protocol_members(proto: type) -> set[str]:
    if hasattr(typing, "get_protocol_members"):
        return set(typing.get_protocol_members(proto))

    members: set[str] = set()
    for base in proto.__mro__:
        if base is Protocol or base is object or not is_protocol(base):
            continue
        members.update(n for n in base.__dict__ if not n.startswith("_"))
        members.update(n for n in getattr(base, "__annotations__", {}) if not n.startswith("_"))
    return members


def check_implements(key: type, impl: type) -> None:
    """Raise TypeError unless `impl` can stand in for the class key `key`.

    Plain classes and ABCs require subclassing. Protocols accept nominal
    subclasses, otherwise every protocol member must be present on `impl`
    and methods must not require fewer positional arguments.
    """
    if not is_protocol(key):
        if not issubclass(impl, key):
            msg = f"Implementation {impl.__name__} must be a subclass of {describe_key(key)}"
            raise TypeError(msg)
        return

    if key in getattr(impl, "__mro__", ()):
        return

    problems = []
    for name in sorted(protocol_members(key)):
        if not hasattr(impl, name):
            problems.append(f"missing '{name}'")
            continue
        proto_attr = inspect.getattr_static(key, name, None)
        if not inspect.isfunction(proto_attr):
            continue
        impl_attr = getattr(impl, name)
        if not callable(impl_attr):
            problems.append(f"'{name}' is not callable")
            continue
        try:
            expected = _required_positional(inspect.signature(proto_attr))
            actual = _required_positional(inspect.signature(impl_attr))
        except (TypeError, ValueError):
            continue
        if actual < expected:
            problems.append(f"'{name}' takes {actual} required positional arguments, protocol requires {expected}")

    if problems:
        msg = f"{impl.__name__} does not conform to protocol {describe_key(key)}: {'; '.join(problems)}"
        raise TypeError(msg)


def _required_positional(sig: inspect.Signature) -> int:
    return sum(
        1
        for p in sig.parameters.values()
        if p.name != "self"
        and p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is _EMPTY
    )

from __future__ import annotations

import functools
import inspect
import logging
import threading
from typing import TYPE_CHECKING, Any, TypeVar, overload

from ._bindings import Binding, BindingKind, BindingRegistry
from ._cache import MISSING, InstanceCache
from ._errors import CircularDependencyError, NotInstantiableError, UnresolvableError, describe_key
from ._introspection import (
    DependencyDescriptor,
    ParameterSpec,
    SignatureIntrospector,
    TypeIntrospector,
    check_implements,
    is_instantiable,
    is_protocol,
    load_class,
)


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    T = TypeVar("T")

    Key = type[T] | str
    ResolvingCallback = Callable[[Any, "Container"], None]


class _Call:
    """Overrides in effect for one public `make`/`call` invocation.

    String keys are parameter names of the top-level target; any other key is
    an abstract key replaced wherever it is needed in the graph.
    """

    __slots__ = ("named", "typed")

    def __init__(self, overrides: Mapping[Any, Any] | None) -> None:
        overrides = overrides or {}
        self.named = {k: v for k, v in overrides.items() if isinstance(k, str)}
        self.typed = {k: v for k, v in overrides.items() if not isinstance(k, str)}

    def __bool__(self) -> bool:
        return bool(self.named or self.typed)


class Container:
    """Inversion of control container.

    - bind keys (types or names) to classes, factories or instances
    - shared (singleton) or transient lifetimes
    - constructor auto-wiring from type hints, with cycle detection
    - method injection through `call`.

    Create one per application during bootstrap and pass it to the code that
    needs it.
    """

    def __init__(
        self,
        *,
        shared_by_default: bool = False,
        introspector: TypeIntrospector | None = None,
    ) -> None:
        self._bindings = BindingRegistry()
        self._instances = InstanceCache()
        self._introspector: TypeIntrospector = introspector or SignatureIntrospector()
        self._shared_by_default = shared_by_default
        self._callbacks: dict[Any, list[ResolvingCallback]] = {}
        self._global_callbacks: list[ResolvingCallback] = []
        self._resolved: set[Any] = set()
        self._lock = threading.RLock()
        self._local = threading.local()

    # -- registration --------------------------------------------------------

    def bind(self, key: Key[T], producer: Any = None, shared: bool = False) -> None:  # noqa: FBT001, FBT002
        """Register how to produce `key`.

        `producer` may be a class, a dotted class path, a factory taking the
        container, or None to construct `key` itself. Rebinding replaces the
        previous binding and drops any instance cached for `key`.

        Example:
          container.bind(NotifyUser, TextMessageNotification)
          container.bind("template", "acme.template.Template")
          container.bind("mailer", lambda c: Mailer(sender="foo@bar.com"))

        """
        self._register(key, self._make_binding(key, producer, shared=shared))

    def singleton(self, key: Key[T], producer: Any = None) -> None:
        """Same as `bind(key, producer, shared=True)`."""
        self.bind(key, producer, shared=True)

    def instance(self, key: Key[T], value: object) -> None:
        """Register an already built value; it is returned as-is on every `make`."""
        if inspect.isclass(key):
            if is_protocol(key):
                if getattr(key, "_is_runtime_protocol", False) and not isinstance(value, key):
                    msg = f"{type(value).__name__} instance does not implement protocol {describe_key(key)}"
                    raise TypeError(msg)
            elif not isinstance(value, key):
                msg = f"Instance of {type(value).__name__} registered for {describe_key(key)} is not an instance of it"
                raise TypeError(msg)

        self._register(key, Binding(BindingKind.INSTANCE, value, shared=True))

    def _make_binding(self, key: Any, producer: Any, *, shared: bool) -> Binding:
        if producer is None:
            if not inspect.isclass(key):
                msg = f"A producer is required when binding the non-class key {key!r}"
                raise TypeError(msg)
            producer = key

        if inspect.isclass(producer):
            if inspect.isclass(key) and producer is not key:
                check_implements(key, producer)
            return Binding(BindingKind.CONCRETE, producer, shared=shared)

        if isinstance(producer, str):
            # dotted class path, imported on first construction
            return Binding(BindingKind.CONCRETE, producer, shared=shared)

        if callable(producer):
            return Binding(BindingKind.FACTORY, producer, shared=shared)

        msg = (
            f"Cannot bind {describe_key(key)} to {producer!r}: expected a class, a dotted class path "
            "or a factory. Use instance() for prebuilt values."
        )
        raise TypeError(msg)

    def _register(self, key: Any, binding: Binding) -> None:
        with self._lock:
            previous = self._bindings.set(key, binding)
            evicted = self._instances.evict(key)

        logger.debug(
            "%s %s (%s, shared=%s)",
            "Rebound" if previous else "Bound",
            describe_key(key),
            binding.kind.value,
            binding.shared,
        )
        if evicted:
            logger.debug("Evicted cached instance of %s", describe_key(key))

    def resolving(self, key: Any, callback: ResolvingCallback | None = None) -> None:
        """Register a callback fired with (object, container) after each fresh build.

        A class key also matches objects that are instances of it. Called with a
        single callable, the callback fires for every key.
        """
        with self._lock:
            if callback is None:
                if not callable(key):
                    msg = "resolving() expects a callback"
                    raise TypeError(msg)
                self._global_callbacks.append(key)
            else:
                self._callbacks.setdefault(key, []).append(callback)

    # -- inspection ----------------------------------------------------------

    def has_binding(self, key: Any) -> bool:
        return key in self._bindings

    def is_shared(self, key: Any) -> bool:
        binding = self._bindings.get(key)
        if binding is None:
            return key in self._instances
        return binding.shared

    def resolved(self, key: Any) -> bool:
        """Whether `key` has been built (or served from a binding) at least once."""
        with self._lock:
            return key in self._resolved or key in self._instances

    def __contains__(self, key: object) -> bool:
        return key in self._bindings or key in self._instances

    # -- lifecycle -----------------------------------------------------------

    def forget_instance(self, key: Any) -> None:
        """Drop the cached instance of `key`; the binding stays."""
        if self._instances.evict(key):
            logger.debug("Evicted cached instance of %s", describe_key(key))

    def forget_instances(self) -> None:
        self._instances.clear()

    def flush(self) -> None:
        """Drop every binding, cached instance and callback."""
        with self._lock:
            self._bindings.clear()
            self._instances.clear()
            self._callbacks.clear()
            self._global_callbacks.clear()
            self._resolved.clear()

    # -- resolution ----------------------------------------------------------

    @overload
    def make(self, key: type[T], overrides: Mapping[Any, Any] | None = ...) -> T: ...

    @overload
    def make(self, key: str, overrides: Mapping[Any, Any] | None = ...) -> Any: ...

    def make(self, key: Key[T], overrides: Mapping[Any, Any] | None = None) -> Any:
        """Resolve `key` to a value.

        Precedence: caller override > cached shared instance > binding
        (instance, factory, class) > auto-wiring of a concrete class.

        Raises NotInstantiableError, UnresolvableError or CircularDependencyError.
        """
        call = _Call(overrides)
        supplied = call.named if isinstance(key, str) else call.typed
        if key in supplied:
            return supplied[key]
        return self._resolve(key, call, top=True)

    def factory(self, key: Key[T]) -> Callable[[], Any]:
        """Return a callable that resolves `key` each time it is invoked."""
        return functools.partial(self.make, key)

    def call(self, func: Callable[..., T], overrides: Mapping[Any, Any] | None = None) -> T:
        """Invoke `func`, resolving its parameters like constructor parameters."""
        call = _Call(overrides)
        descriptor = self._introspector.describe_callable(func)
        args, kwargs = self._arguments(descriptor, call, call.named)
        return func(*args, **kwargs)

    def _resolve(self, key: Any, call: _Call, *, top: bool) -> Any:
        # a top-level call with overrides is contextual and never touches the cache
        contextual = top and bool(call)
        if not contextual:
            cached = self._instances.get(key)
            if cached is not MISSING:
                return cached

        building = self._building()
        if key in building:
            raise CircularDependencyError([*building[building.index(key) :], key])

        binding = self._bindings.get(key)
        shared = binding.shared if binding is not None else self._shared_by_default
        # name overrides only reach the top-level target; type overrides may
        # reach any nested key, so nothing built under them is stored
        store = shared and not contextual and not call.typed

        building.append(key)
        try:
            if not store:
                return self._produce(key, binding, call, top=top)

            with self._instances.guard(key):
                cached = self._instances.get(key)
                if cached is not MISSING:
                    return cached
                value = self._produce(key, binding, call, top=top)
                self._instances.put(key, value)
                logger.debug("Cached shared instance of %s", describe_key(key))
                return value
        finally:
            building.pop()

    def _produce(self, key: Any, binding: Binding | None, call: _Call, *, top: bool) -> Any:
        named = call.named if top else {}

        if binding is None:
            value = self._build(self._autowire_target(key), call, named)
        elif binding.kind is BindingKind.INSTANCE:
            return binding.producer
        elif binding.kind is BindingKind.FACTORY:
            logger.debug("Calling factory for %s", describe_key(key))
            value = binding.producer(self, **named)
        else:
            target = binding.producer
            if isinstance(target, str):
                target = load_class(target)
            value = self._build(target, call, named)

        with self._lock:
            self._resolved.add(key)
        self._fire_callbacks(key, value)
        return value

    def _autowire_target(self, key: Any) -> type:
        if isinstance(key, str):
            if "." not in key:
                raise UnresolvableError(key, "no binding registered")
            return load_class(key)

        if not inspect.isclass(key):
            raise UnresolvableError(key, "no binding registered and the key is not a class")

        if not is_instantiable(key):
            kind = "protocol" if is_protocol(key) else "abstract class"
            raise UnresolvableError(key, f"cannot auto-wire {kind} without a binding")

        return key

    def _build(self, target: type, call: _Call, named: Mapping[str, Any]) -> Any:
        descriptor = self._introspector.describe_constructor(target)
        args, kwargs = self._arguments(descriptor, call, named)
        logger.debug("Building %s", describe_key(target))
        return target(*args, **kwargs)

    def _arguments(
        self,
        descriptor: DependencyDescriptor,
        call: _Call,
        named: Mapping[str, Any],
    ) -> tuple[list[Any], dict[str, Any]]:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}

        # parameters are resolved strictly in declaration order
        for p in descriptor:
            if p.is_variadic:
                continue
            value = self._resolve_parameter(descriptor.owner, p, call, named)
            if p.kind is inspect.Parameter.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[p.name] = value

        leftover = {name: v for name, v in named.items() if name not in _names(descriptor)}
        if leftover:
            if not descriptor.accepts_var_keyword:
                msg = f"Overrides {sorted(leftover)} don't match {describe_key(descriptor.owner)} signature"
                raise TypeError(msg)
            kwargs.update(leftover)

        return args, kwargs

    def _resolve_parameter(
        self,
        owner: Any,
        p: ParameterSpec,
        call: _Call,
        named: Mapping[str, Any],
    ) -> Any:
        """Resolve one parameter.

        Resolution precedence:
        1. override by parameter name
        2. override by declared type
        3. declared type that is bound or a concrete class (the default is
           used instead when it cannot be built)
        4. default
        5. binding registered under the parameter name
        6. error.
        """
        if p.name in named:
            return named[p.name]

        ann = p.declared_type
        if ann is not None:
            if _hashable(ann) and ann in call.typed:
                return call.typed[ann]
            if self._can_resolve(ann):
                try:
                    return self._resolve(ann, call, top=False)
                except (NotInstantiableError, UnresolvableError) as exc:
                    if not p.has_default:
                        raise
                    logger.debug("Using default for '%s' of %s: %s", p.name, describe_key(owner), exc)
                    return p.default

        if p.has_default:
            return p.default

        if p.name in self._bindings:
            return self._resolve(p.name, call, top=False)

        if ann is None:
            reason = "no annotation, default or binding named after it"
        else:
            reason = f"{_type_name(ann)} cannot be auto-wired and there is no default or binding named after it"
        raise UnresolvableError(ann, reason, parameter=p.name, owner=owner)

    def _can_resolve(self, ann: Any) -> bool:
        if not _hashable(ann):
            return False
        if ann in self._bindings or ann in self._instances:
            return True
        return is_instantiable(ann) and getattr(ann, "__module__", "") != "builtins"

    def _building(self) -> list[Any]:
        building = getattr(self._local, "building", None)
        if building is None:
            building = self._local.building = []
        return building

    def _fire_callbacks(self, key: Any, value: Any) -> None:
        with self._lock:
            matched = list(self._global_callbacks)
            for cb_key, callbacks in self._callbacks.items():
                if cb_key == key or (inspect.isclass(cb_key) and isinstance(value, cb_key)):
                    matched.extend(callbacks)

        for callback in matched:
            callback(value, self)


def _names(descriptor: DependencyDescriptor) -> set[str]:
    return {p.name for p in descriptor if not p.is_variadic}


def _hashable(obj: Any) -> bool:
    try:
        hash(obj)
    except TypeError:
        return False
    return True


def _type_name(ann: Any) -> str:
    return getattr(ann, "__qualname__", None) or repr(ann)

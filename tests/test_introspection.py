import inspect
import logging
from abc import ABC, abstractmethod
from typing import Protocol

import pytest

from bindwire import DependencyDescriptor, NotInstantiableError, ParameterSpec, SignatureIntrospector
from bindwire._introspection import is_instantiable, is_protocol, load_class


class Database:
    def __init__(self, username: str, password: str, host: str = "localhost", port: int = 5432):
        self.username = username


class Mailer:
    def __init__(self, database: Database, *args, retries: int = 3, **kwargs):
        self.database = database


class Unresolved:
    def __init__(self, dep: "DoesNotExist"):  # noqa: F821
        self.dep = dep


class Store(ABC):
    @abstractmethod
    def save(self) -> None: ...


class Renderer(Protocol):
    def render(self, name: str) -> str: ...


class Plain: ...


@pytest.fixture
def introspector():
    return SignatureIntrospector()


def test_describe_constructor_orders_parameters(introspector):
    descriptor = introspector.describe_constructor(Database)

    assert descriptor.owner is Database
    assert [p.name for p in descriptor] == ["username", "password", "host", "port"]
    assert descriptor.parameters[0] == ParameterSpec(name="username", declared_type=str)
    assert descriptor.parameters[2].has_default
    assert descriptor.parameters[2].default == "localhost"
    assert descriptor.parameters[3].declared_type is int


def test_describe_constructor_reports_parameter_kinds(introspector):
    descriptor = introspector.describe_constructor(Mailer)
    kinds = {p.name: p.kind for p in descriptor}

    assert kinds["database"] is inspect.Parameter.POSITIONAL_OR_KEYWORD
    assert kinds["args"] is inspect.Parameter.VAR_POSITIONAL
    assert kinds["retries"] is inspect.Parameter.KEYWORD_ONLY
    assert descriptor.accepts_var_keyword
    assert descriptor.parameters[0].declared_type is Database


def test_describe_constructor_without_init(introspector):
    assert introspector.describe_constructor(Plain) == DependencyDescriptor(owner=Plain, parameters=())


def test_unresolvable_forward_reference_logs_warning(introspector, caplog):
    with caplog.at_level(logging.WARNING, logger="bindwire._introspection"):
        descriptor = introspector.describe_constructor(Unresolved)

    assert descriptor.parameters[0].declared_type is None
    assert "DoesNotExist" in caplog.text


@pytest.mark.parametrize("target", [Store, Renderer, "Plain", 42])
def test_describe_constructor_rejects_non_instantiable(introspector, target):
    with pytest.raises(NotInstantiableError):
        introspector.describe_constructor(target)


def test_describe_callable_for_function_and_callable_object(introspector):
    def handler(db: Database, page: int = 1): ...

    class Handler:
        def __call__(self, db: Database) -> None: ...

    assert [p.declared_type for p in introspector.describe_callable(handler)] == [Database, int]
    assert [p.name for p in introspector.describe_callable(Handler())] == ["db"]


def test_describe_callable_rejects_non_callable(introspector):
    with pytest.raises(TypeError):
        introspector.describe_callable(42)


def test_type_predicates():
    assert is_protocol(Renderer)
    assert not is_protocol(Plain)
    assert not is_instantiable(Store)
    assert not is_instantiable(Renderer)
    assert not is_instantiable("Plain")
    assert is_instantiable(Plain)


def test_load_class():
    assert load_class("collections.OrderedDict").__name__ == "OrderedDict"
    with pytest.raises(NotInstantiableError):
        load_class("Plain")
    with pytest.raises(NotInstantiableError):
        load_class("collections.no_such_thing")
    with pytest.raises(NotInstantiableError):
        load_class("os.path.join")


class RegisteredIntrospector:
    """Serves descriptors registered up front instead of inspecting signatures."""

    def __init__(self, descriptors):
        self._descriptors = descriptors

    def describe_constructor(self, cls):
        try:
            return self._descriptors[cls]
        except KeyError:
            raise NotInstantiableError(cls, "no registered descriptor") from None

    def describe_callable(self, func):
        return self.describe_constructor(func)


def test_container_uses_pluggable_introspector():
    from bindwire import Container

    class Connection: ...

    class Repository:
        def __init__(self, connection, table):
            self.connection = connection
            self.table = table

    introspector = RegisteredIntrospector(
        {
            Connection: DependencyDescriptor(owner=Connection, parameters=()),
            Repository: DependencyDescriptor(
                owner=Repository,
                parameters=(
                    ParameterSpec(name="connection", declared_type=Connection),
                    ParameterSpec(name="table", has_default=True, default="events"),
                ),
            ),
        }
    )
    c = Container(introspector=introspector)

    repo = c.make(Repository)
    assert isinstance(repo.connection, Connection)
    assert repo.table == "events"

    with pytest.raises(NotInstantiableError):
        c.make(Plain)

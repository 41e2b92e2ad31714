"""Inversion of control container.

This package provides a small IoC container for Python: bind abstract keys
(types or plain names) to classes, factories or prebuilt instances, and let
the container construct object graphs by auto-wiring constructor type hints.

Exports:
- `Container`: binding registry, shared instance cache and resolution engine.
- `Binding`, `BindingKind`: the registered rule for a key.
- `ParameterSpec`, `DependencyDescriptor`, `TypeIntrospector`,
  `SignatureIntrospector`: constructor introspection used for auto-wiring.
- `ResolutionError` and its subclasses `NotInstantiableError`,
  `UnresolvableError`, `CircularDependencyError`: raised by `Container.make`.
"""

from ._bindings import Binding, BindingKind
from ._container import Container
from ._errors import CircularDependencyError, NotInstantiableError, ResolutionError, UnresolvableError
from ._introspection import DependencyDescriptor, ParameterSpec, SignatureIntrospector, TypeIntrospector


__all__ = [
    "Binding",
    "BindingKind",
    "CircularDependencyError",
    "Container",
    "DependencyDescriptor",
    "NotInstantiableError",
    "ParameterSpec",
    "ResolutionError",
    "SignatureIntrospector",
    "TypeIntrospector",
    "UnresolvableError",
]

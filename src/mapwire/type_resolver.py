"""Resolve collector specializations from static declarations.

Every function in this module works from declaration metadata only
(``__orig_bases__``, return annotations). No instance is ever created.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, get_args, get_origin, get_type_hints

from mapwire._internal.type_checks import is_runtime_class, unwrap_annotated, unwrap_optional

logger = logging.getLogger(__name__)

_KEY_INDEX = 0
_VALUE_INDEX = 1
_SPECIALIZATION_ARGUMENT_COUNT = 2
_MISSING_ANNOTATION: Any = object()


@dataclass(frozen=True, slots=True)
class CollectorSpecialization:
    """Key and value types a collector declaration is specialized with."""

    key_type: Any
    """Resolved key type, or ``None`` when the key parameter stays open."""
    value_type: Any
    """Resolved concrete value type."""


def resolve_specialization(
    declaration: Any,
    *,
    base: type[Any] | None = None,
) -> CollectorSpecialization | None:
    """Resolve the ``(key, value)`` arguments a declaration binds on ``base``.

    Generic bases are walked through ``__orig_bases__`` and type variables are
    substituted through intermediate generic classes, so both of these resolve
    to ``Handler``:

    .. code-block:: python

        class HandlerCollector(MapCollector[int, Handler]): ...


        class ByCode(MarkerMapCollector[K, V]): ...


        class HandlerByCode(ByCode[int, Handler]): ...

    Args:
        declaration: A class, or a parameterized alias such as
            ``MapCollector[int, Handler]``. ``Annotated`` wrappers are ignored.
        base: Two-parameter generic abstraction to resolve against. Defaults to
            ``MapCollector``.

    Returns:
        The resolved specialization, or ``None`` when the declaration does not
        specialize ``base`` or its value argument is still a type variable.

    """
    if base is None:
        from mapwire.collector import MapCollector  # noqa: PLC0415

        base = MapCollector

    declaration = unwrap_annotated(declaration)
    origin = get_origin(declaration)
    if origin is not None:
        mapping = _bind_parameters(origin, get_args(declaration))
        arguments = _resolve_base_arguments(origin, mapping=mapping, base=base)
    elif is_runtime_class(declaration):
        arguments = _resolve_base_arguments(declaration, mapping={}, base=base)
    else:
        arguments = None

    if arguments is None or len(arguments) != _SPECIALIZATION_ARGUMENT_COUNT:
        return None

    key_type = arguments[_KEY_INDEX]
    value_type = arguments[_VALUE_INDEX]
    if _contains_typevar(value_type):
        logger.debug("Value type of %r is still open: %r", declaration, value_type)
        return None
    return CollectorSpecialization(
        key_type=None if _contains_typevar(key_type) else key_type,
        value_type=value_type,
    )


def resolve_value_type(declaration: Any, *, base: type[Any] | None = None) -> Any | None:
    """Return the concrete value type a declaration collects, or ``None``."""
    specialization = resolve_specialization(declaration, base=base)
    if specialization is None:
        return None
    return specialization.value_type


def resolve_key_type(declaration: Any, *, base: type[Any] | None = None) -> Any | None:
    """Return the key type a declaration collects under, or ``None``."""
    specialization = resolve_specialization(declaration, base=base)
    if specialization is None:
        return None
    return specialization.key_type


def resolve_factory_return_type(factory: Callable[..., Any]) -> Any | None:
    """Return the declared return type of a factory, or ``None`` when it has none.

    String annotations are evaluated with ``typing.get_type_hints``. When that
    fails the raw signature annotation is used, and unresolved forward
    references count as missing. ``T | None`` is read as ``T``.
    """
    try:
        return_annotation = get_type_hints(factory, include_extras=True).get(
            "return",
            _MISSING_ANNOTATION,
        )
    except (AttributeError, NameError, TypeError):
        return_annotation = _MISSING_ANNOTATION

    if return_annotation is _MISSING_ANNOTATION:
        try:
            return_annotation = inspect.signature(factory).return_annotation
        except (TypeError, ValueError):
            return None
        if return_annotation is inspect.Signature.empty or isinstance(return_annotation, str):
            return None

    if return_annotation is None or return_annotation is type(None):
        return None
    return unwrap_optional(unwrap_annotated(return_annotation))


def _resolve_base_arguments(
    cls: type[Any],
    *,
    mapping: Mapping[TypeVar, Any],
    base: type[Any],
) -> tuple[Any, ...] | None:
    if cls is base:
        parameters = getattr(base, "__parameters__", ())
        return tuple(mapping.get(parameter, parameter) for parameter in parameters)

    # Only the class' own generic bases: ``__orig_bases__`` is inherited otherwise.
    orig_bases = cls.__dict__.get("__orig_bases__", cls.__bases__)
    for orig_base in orig_bases:
        base_origin = get_origin(orig_base)
        if base_origin is None:
            if is_runtime_class(orig_base) and _is_subclass(orig_base, base):
                arguments = _resolve_base_arguments(orig_base, mapping={}, base=base)
                if arguments is not None:
                    return arguments
            continue
        if base_origin in (Generic, Protocol) or not _is_subclass(base_origin, base):
            continue

        base_arguments = tuple(
            _substitute_typevars(argument, mapping=mapping) for argument in get_args(orig_base)
        )
        arguments = _resolve_base_arguments(
            base_origin,
            mapping=_bind_parameters(base_origin, base_arguments),
            base=base,
        )
        if arguments is not None:
            return arguments
    return None


def _bind_parameters(generic_class: Any, arguments: tuple[Any, ...]) -> dict[TypeVar, Any]:
    parameters = getattr(generic_class, "__parameters__", ())
    if len(parameters) != len(arguments):
        return {}
    return dict(zip(parameters, arguments, strict=True))


def _substitute_typevars(value: Any, *, mapping: Mapping[TypeVar, Any]) -> Any:
    if isinstance(value, TypeVar):
        return mapping.get(value, value)

    origin = get_origin(value)
    if origin is None:
        return value

    arguments = get_args(value)
    if not arguments:
        return value

    substituted_arguments = tuple(
        _substitute_typevars(argument, mapping=mapping) for argument in arguments
    )
    try:
        return value.copy_with(substituted_arguments)
    except AttributeError:
        try:
            return origin[substituted_arguments]
        except TypeError:
            return value


def _contains_typevar(value: Any) -> bool:
    if isinstance(value, TypeVar):
        return True

    return any(_contains_typevar(argument) for argument in get_args(value))


def _is_subclass(candidate: Any, base: type[Any]) -> bool:
    try:
        return is_runtime_class(candidate) and issubclass(candidate, base)
    except TypeError:
        return False


__all__ = [
    "CollectorSpecialization",
    "resolve_factory_return_type",
    "resolve_key_type",
    "resolve_specialization",
    "resolve_value_type",
]

from __future__ import annotations

import types
from typing import Annotated, Any, TypeGuard, Union, get_args, get_origin


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a runtime class safe for class-only operations.

    Args:
        candidate: Value being checked for eligibility or runtime type constraints.

    """
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


def unwrap_annotated(annotation: Any) -> Any:
    """Recursively unwrap Annotated[T, ...] into T."""
    if get_origin(annotation) is not Annotated:
        return annotation
    return unwrap_annotated(get_args(annotation)[0])


def unwrap_optional(annotation: Any) -> Any:
    """Return ``T`` for ``T | None`` and ``Optional[T]``. Other annotations are unchanged."""
    if get_origin(annotation) not in (Union, types.UnionType):
        return annotation
    arguments = [argument for argument in get_args(annotation) if argument is not type(None)]
    if len(arguments) != 1:
        return annotation
    return arguments[0]


def origin_or_self(value: Any) -> Any:
    return get_origin(value) or value


def is_type_match(declared: Any, target: Any) -> bool:
    """Return whether a component declared as ``declared`` satisfies ``target``.

    Plain classes match by subclassing. A parameterized target such as
    ``Box[int]`` only matches an equal declaration.

    Args:
        declared: Type a component was registered with.
        target: Type being looked up.

    """
    declared = unwrap_optional(unwrap_annotated(declared))
    target = unwrap_annotated(target)
    if declared == target or target is Any:
        return True
    if get_args(target):
        return False

    declared_class = origin_or_self(declared)
    target_class = origin_or_self(target)
    if is_runtime_class(declared_class) and is_runtime_class(target_class):
        try:
            return issubclass(declared_class, target_class)
        except TypeError:
            return False
    return False


def is_instance_of(value: object, target: Any) -> bool:
    """Return whether a live object is an instance of a possibly parameterized type."""
    target = unwrap_annotated(target)
    if target is Any:
        return True
    target_class = origin_or_self(target)
    if not is_runtime_class(target_class):
        return False
    try:
        return isinstance(value, target_class)
    except TypeError:
        return False


__all__ = [
    "is_instance_of",
    "is_runtime_class",
    "is_type_match",
    "origin_or_self",
    "unwrap_annotated",
    "unwrap_optional",
]

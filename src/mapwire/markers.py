from __future__ import annotations

from collections.abc import Iterable
from typing import Any, TypeVar

from mapwire.exceptions import MapWireInvalidRegistrationError

M = TypeVar("M", bound="Marker")


class Marker:
    """Tag a component so collectors can select it.

    The marker *type* identifies the selection, and marker *instances* carry
    per-component metadata such as the keys a component is collected under.
    Subclass it, usually as a frozen dataclass, and pass instances to the
    registry with ``markers=...``.

    Examples:
        .. code-block:: python

            @dataclass(frozen=True)
            class Handles(Marker):
                keys: tuple[int, ...]


            registry.add_factory(build_echo_handler, markers=(Handles(keys=(1, 2)),))

    """


def find_marker(markers: Iterable[Marker], marker_type: type[M]) -> M | None:
    """Return the first marker of ``marker_type`` or ``None``.

    Args:
        markers: Markers attached to a single component.
        marker_type: Marker class to look for. Subclasses match.

    """
    for marker in markers:
        if isinstance(marker, marker_type):
            return marker
    return None


def marker_types(markers: Iterable[Marker]) -> frozenset[type[Any]]:
    """Return the marker classes present in ``markers``."""
    return frozenset(type(marker) for marker in markers)


def validate_markers(markers: Iterable[object]) -> tuple[Marker, ...]:
    """Return ``markers`` as a tuple after checking every item is a marker instance.

    Raises:
        MapWireInvalidRegistrationError: If an item is not a ``Marker``
            instance. Passing the marker class instead of an instance is the
            usual mistake.

    """
    validated: list[Marker] = []
    for marker in markers:
        if not isinstance(marker, Marker):
            msg = f"Expected a Marker instance, got {marker!r}."
            raise MapWireInvalidRegistrationError(msg)
        validated.append(marker)
    return tuple(validated)


__all__ = ["Marker", "find_marker", "marker_types", "validate_markers"]

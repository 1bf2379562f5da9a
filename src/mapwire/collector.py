from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Protocol, TypeVar, runtime_checkable

from typing_extensions import override

from mapwire._internal.type_checks import is_instance_of
from mapwire.exceptions import (
    MapWireCollectorStateError,
    MapWireInsertResolutionFailedError,
    MapWireUnresolvedSpecializationError,
)
from mapwire.markers import Marker
from mapwire.type_resolver import resolve_specialization

if TYPE_CHECKING:
    from mapwire.registry import ComponentRegistry

K = TypeVar("K")
V = TypeVar("V")

logger = logging.getLogger(__name__)

_EMPTY_MAP: Mapping[Any, Any] = MappingProxyType({})


@runtime_checkable
class RegistryAware(Protocol):
    """Component that needs the registry once its dependencies are built.

    The container calls ``attach`` exactly once, right after constructing the
    component and before any dependent component is built.
    """

    def attach(self, registry: ComponentRegistry) -> None:
        """Receive the registry after the component is built."""
        ...


class MapCollector(Generic[K, V], ABC):
    """Collect other components into a read-only keyed map.

    Subclass it with concrete type arguments so the value type can be read from
    the class declaration:

    .. code-block:: python

        class HandlerCollector(MapCollector[int, Handler]):
            def select_candidates(self, registry):
                return registry.components_with_marker(Handles, of_type=self.value_type)

            def insert(self, name, instance, registry):
                for key in registry.find_marker(name, Handles).keys:
                    self.put(key, instance)

    Register the collector with a factory whose return annotation names the
    subclass, so ``CollectorLinker`` can force every selected component to be
    built before ``attach`` runs.
    """

    def __init__(self, *, value_type: Any = None) -> None:
        """Initialize an empty collector.

        Args:
            value_type: Explicit value type witness. Overrides the type argument
                read from the class declaration.

        """
        self._value_type_witness = value_type
        self._pending: dict[K, V] | None = None
        self._map: Mapping[K, V] = _EMPTY_MAP
        self._attached = False

    def attach(self, registry: ComponentRegistry) -> None:
        """Select candidates, insert them and freeze the collected map.

        Raises:
            MapWireCollectorStateError: If the collector was already attached.
            MapWireInsertResolutionFailedError: If keys cannot be derived for a
                selected component. The collected map stays empty.

        """
        if self._attached:
            msg = f"{type(self).__qualname__} is already attached."
            raise MapWireCollectorStateError(msg)
        self._attached = True

        self._pending = {}
        try:
            candidates = self.select_candidates(registry)
            for name, instance in candidates.items():
                if not self.is_value(instance):
                    logger.debug(
                        "%s skipped component %s: %r is not a %r",
                        type(self).__qualname__,
                        name,
                        type(instance),
                        self.value_type,
                    )
                    continue
                self.insert(name, instance, registry)
            collected = self._pending
        finally:
            self._pending = None

        self._map = MappingProxyType(dict(collected))
        logger.info(
            "%s collected %d entries from %d components",
            type(self).__qualname__,
            len(self._map),
            len(candidates),
        )

    def get_map(self) -> Mapping[K, V]:
        """Return a read-only view of the collected map.

        The view is empty until ``attach`` completes and never changes after.
        """
        return self._map

    def put(self, key: K, value: V) -> None:
        """Write an entry while ``attach`` is running. A repeated key is overwritten."""
        if self._pending is None:
            msg = (
                f"{type(self).__qualname__}.put() can only be called from insert() "
                "while the collector is being attached."
            )
            raise MapWireCollectorStateError(msg)
        self._pending[key] = value

    def use_value_type(self, value_type: Any) -> None:
        """Replace the value type witness before the collector is attached.

        The container calls it with the ``collects=`` type given at registration,
        so the collector selects exactly the components it was linked to.

        Raises:
            MapWireCollectorStateError: If the collector was already attached.

        """
        if self._attached:
            msg = f"Cannot change the value type of {type(self).__qualname__} after attach()."
            raise MapWireCollectorStateError(msg)
        self._value_type_witness = value_type

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def value_type(self) -> Any:
        """Concrete value type this collector collects.

        Raises:
            MapWireUnresolvedSpecializationError: If neither a witness nor the
                class declaration provide a concrete value type.

        """
        if self._value_type_witness is not None:
            return self._value_type_witness
        specialization = resolve_specialization(type(self), base=MapCollector)
        if specialization is None:
            msg = (
                f"Unable to resolve the value type of {type(self).__qualname__}. "
                "Specialize MapCollector with concrete type arguments or pass value_type=."
            )
            raise MapWireUnresolvedSpecializationError(msg)
        return specialization.value_type

    @property
    def key_type(self) -> Any:
        """Key type from the class declaration, or ``Any`` when it is left open."""
        specialization = resolve_specialization(type(self), base=MapCollector)
        if specialization is None or specialization.key_type is None:
            return Any
        return specialization.key_type

    def is_value(self, candidate: object) -> bool:
        """Return whether ``candidate`` is an instance of the collected value type."""
        return is_instance_of(candidate, self.value_type)

    @abstractmethod
    def select_candidates(self, registry: ComponentRegistry) -> Mapping[str, Any]:
        """Return the components to collect, keyed by component name."""

    @abstractmethod
    def insert(self, name: str, instance: Any, registry: ComponentRegistry) -> None:
        """Derive keys for one component and ``put`` its entries.

        Raises:
            MapWireInsertResolutionFailedError: If no key can be derived.

        """


class MarkerMapCollector(MapCollector[K, V]):
    """Collect components carrying ``marker_type`` under keys read from the marker.

    Subclasses set ``marker_type`` and implement ``keys_for``:

    .. code-block:: python

        class HandlerCollector(MarkerMapCollector[int, Handler]):
            marker_type = Handles

            def keys_for(self, marker, name, instance):
                return marker.keys

    """

    marker_type: ClassVar[type[Marker] | None] = None

    def __init__(
        self,
        *,
        marker_type: type[Marker] | None = None,
        value_type: Any = None,
    ) -> None:
        super().__init__(value_type=value_type)
        self._marker_type = marker_type or type(self).marker_type

    @property
    def selection_marker(self) -> type[Marker]:
        if self._marker_type is None:
            msg = f"{type(self).__qualname__} does not define marker_type."
            raise MapWireCollectorStateError(msg)
        return self._marker_type

    @override
    def select_candidates(self, registry: ComponentRegistry) -> Mapping[str, Any]:
        return registry.components_with_marker(self.selection_marker, of_type=self.value_type)

    @override
    def insert(self, name: str, instance: Any, registry: ComponentRegistry) -> None:
        marker = registry.find_marker(name, self.selection_marker)
        if marker is None:
            raise MapWireInsertResolutionFailedError(
                name,
                f"Marker {self.selection_marker.__qualname__} is not attached to it.",
            )
        for key in self.keys_for(marker, name, instance):
            self.put(key, instance)

    @abstractmethod
    def keys_for(self, marker: Any, name: str, instance: V) -> Iterable[K]:
        """Return the keys ``instance`` is collected under."""


__all__ = ["MapCollector", "MarkerMapCollector", "RegistryAware"]

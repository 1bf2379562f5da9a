from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from mapwire._internal.type_checks import is_runtime_class
from mapwire.collector import MapCollector
from mapwire.exceptions import (
    MapWireError,
    MapWireInvalidRegistrationError,
    MapWireLinkingErrors,
    MapWireLinkingPhaseError,
    MapWireNoAnnotatedComponentsFoundError,
    MapWireNoCollectorsFoundError,
    MapWireNoFactoryMethodFoundError,
)
from mapwire.markers import Marker
from mapwire.registry import ComponentDescriptor, ComponentRegistry, DependencyEdge, RegistryPhase
from mapwire.type_resolver import resolve_factory_return_type, resolve_value_type

logger = logging.getLogger(__name__)


class LinkErrorPolicy(str, Enum):
    """Select how per-collector configuration errors are reported."""

    FAIL_FAST = "fail_fast"
    """Raise the first error, leaving remaining collectors uninspected."""

    COLLECT = "collect"
    """Inspect every collector, then raise one ``MapWireLinkingErrors``."""


@dataclass(frozen=True, slots=True)
class CollectorLink:
    """Dependencies computed for one collector component."""

    collector_name: str
    value_type: Any
    dependencies: tuple[str, ...]
    """Components of the value type carrying the marker, in registration order."""
    unmarked: tuple[str, ...]
    """Components of the value type without the marker. Diagnostic only."""


@dataclass(frozen=True, slots=True)
class LinkPlan:
    """Result of linking: every collector and the edges it requires."""

    marker_type: type[Marker]
    links: tuple[CollectorLink, ...]

    @property
    def edges(self) -> tuple[DependencyEdge, ...]:
        return tuple(
            DependencyEdge(dependent=link.collector_name, dependency=dependency)
            for link in self.links
            for dependency in link.dependencies
        )

    def dependencies_of(self, collector_name: str) -> tuple[str, ...]:
        """Return dependencies computed for ``collector_name``.

        Raises:
            KeyError: If the plan has no collector with that name.

        """
        for link in self.links:
            if link.collector_name == collector_name:
                return link.dependencies
        msg = f"No collector with name {collector_name} in this plan."
        raise KeyError(msg)


class CollectorLinker:
    """Force marked components to be built before the collectors that gather them.

    For each ``MapCollector`` component the linker reads the collected value type
    from the return annotation of its factory method, selects components that are
    of that type and carry ``marker_type``, and registers each of them as a
    dependency of the collector. It runs once, before any component is built.

    Pass the linker to ``Container(post_processors=...)`` or call ``link`` on a
    registry directly.

    Examples:
        .. code-block:: python

            registry = ComponentRegistry()
            registry.add_factory(build_handler_collector)
            registry.add_factory(build_echo_handler, markers=(Handles(keys=(1,)),))

            plan = CollectorLinker(Handles).link(registry)

    """

    def __init__(
        self,
        marker_type: type[Marker],
        *,
        error_policy: LinkErrorPolicy = LinkErrorPolicy.FAIL_FAST,
    ) -> None:
        """Initialize a linker for one selection marker.

        Args:
            marker_type: Marker class selecting the components to collect.
            error_policy: Whether to stop at the first collector configuration
                error or report all of them together.

        Raises:
            MapWireInvalidRegistrationError: If ``marker_type`` is not a
                ``Marker`` subclass.

        """
        if not (is_runtime_class(marker_type) and issubclass(marker_type, Marker)):
            msg = (
                "CollectorLinker() parameter 'marker_type' must be a Marker subclass, "
                f"got {marker_type!r}."
            )
            raise MapWireInvalidRegistrationError(msg)
        self._marker_type = marker_type
        self._error_policy = LinkErrorPolicy(error_policy)
        self._linked = False

    @property
    def marker_type(self) -> type[Marker]:
        return self._marker_type

    def link(self, registry: ComponentRegistry) -> LinkPlan:
        """Compute the plan and register every edge in ``registry``.

        Nothing is registered when any configuration error is raised.

        Raises:
            MapWireNoCollectorsFoundError: If the registry has no collectors.
            MapWireNoFactoryMethodFoundError: If a collector value type cannot
                be resolved (``FAIL_FAST`` policy).
            MapWireLinkingErrors: If any collector value type cannot be
                resolved (``COLLECT`` policy).
            MapWireNoAnnotatedComponentsFoundError: If no component carries the
                marker.
            MapWireLinkingPhaseError: If this linker already ran, or the
                registry is already instantiating components.

        """
        if self._linked:
            msg = f"CollectorLinker for marker {self._marker_type.__qualname__} has already run."
            raise MapWireLinkingPhaseError(msg)
        if registry.phase >= RegistryPhase.INSTANTIATING:
            msg = "Collectors must be linked before component instantiation starts."
            raise MapWireLinkingPhaseError(msg)

        plan = self.plan(registry)
        for collector_link in plan.links:
            for dependency in collector_link.dependencies:
                registry.add_dependency_edge(collector_link.collector_name, dependency)
            logger.info(
                "Following dependencies (count: %d) were set for component with name %s: %s",
                len(collector_link.dependencies),
                collector_link.collector_name,
                ", ".join(collector_link.dependencies),
            )
        self._linked = True
        return plan

    def plan(self, registry: ComponentRegistry) -> LinkPlan:
        """Compute dependencies of every collector without mutating ``registry``.

        Raises the same configuration errors as ``link``.
        """
        collector_names = registry.names_for_type(MapCollector)
        if not collector_names:
            raise MapWireNoCollectorsFoundError
        logger.debug("%d components of MapCollector type found", len(collector_names))

        links: list[CollectorLink] = []
        errors: list[MapWireError] = []
        marked_names: frozenset[str] | None = None
        for collector_name in collector_names:
            logger.debug("Resolving dependencies for component with name %s", collector_name)
            try:
                value_type = self._resolve_value_type(registry.get_descriptor(collector_name))
            except MapWireNoFactoryMethodFoundError as error:
                if self._error_policy is LinkErrorPolicy.FAIL_FAST:
                    raise
                errors.append(error)
                continue

            if marked_names is None:
                marked_names = frozenset(registry.names_for_marker(self._marker_type))
                if not marked_names:
                    raise MapWireNoAnnotatedComponentsFoundError(self._marker_type)

            links.append(
                self._link_collector(
                    registry,
                    collector_name=collector_name,
                    value_type=value_type,
                    marked_names=marked_names,
                ),
            )

        if errors:
            raise MapWireLinkingErrors(errors)
        return LinkPlan(marker_type=self._marker_type, links=tuple(links))

    def _resolve_value_type(self, descriptor: ComponentDescriptor) -> Any:
        if descriptor.collects is not None:
            logger.debug(
                "Using explicit value type for component with name %s: %r",
                descriptor.name,
                descriptor.collects,
            )
            return descriptor.collects

        factory_method = self._find_factory_method(descriptor)
        if factory_method is None:
            raise MapWireNoFactoryMethodFoundError(descriptor.name)
        logger.debug(
            "Found factory method for component with name %s: %s",
            descriptor.name,
            descriptor.factory_method_name,
        )

        return_type = resolve_factory_return_type(factory_method)
        value_type = (
            None if return_type is None else resolve_value_type(return_type, base=MapCollector)
        )
        if value_type is None:
            raise MapWireNoFactoryMethodFoundError(descriptor.name)
        logger.debug(
            "Resolved value type of factory method for component with name %s: %r",
            descriptor.name,
            value_type,
        )
        return value_type

    def _find_factory_method(self, descriptor: ComponentDescriptor) -> Callable[..., Any] | None:
        method_name = descriptor.factory_method_name
        if method_name is None:
            return None
        if descriptor.factory_owner is None:
            return descriptor.factory

        factory_method = getattr(descriptor.factory_owner, method_name, None)
        if not callable(factory_method):
            return None
        return factory_method

    def _link_collector(
        self,
        registry: ComponentRegistry,
        *,
        collector_name: str,
        value_type: Any,
        marked_names: frozenset[str],
    ) -> CollectorLink:
        typed_names = [
            name for name in registry.names_for_type(value_type) if name != collector_name
        ]
        dependencies = tuple(name for name in typed_names if name in marked_names)
        unmarked = tuple(name for name in typed_names if name not in marked_names)

        if unmarked:
            logger.warning(
                "Number of dependencies for component with name %s (count: %d) is less than "
                "number of components with type to collect (count: %d). Component names with "
                "proper type, but without marker %s: %s",
                collector_name,
                len(dependencies),
                len(typed_names),
                self._marker_type.__qualname__,
                ", ".join(unmarked),
            )
        return CollectorLink(
            collector_name=collector_name,
            value_type=value_type,
            dependencies=dependencies,
            unmarked=unmarked,
        )


__all__ = ["CollectorLink", "CollectorLinker", "LinkErrorPolicy", "LinkPlan"]

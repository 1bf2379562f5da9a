from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class MapWireError(Exception):
    """Represent a base class for all mapwire-specific failures.

    Catch this type when you want to handle any mapwire error path without
    matching each concrete exception class individually.
    """


class MapWireNoCollectorsFoundError(MapWireError):
    """Signal that a linker ran against a registry without collectors.

    Raised by ``CollectorLinker.link`` and ``CollectorLinker.plan`` before any
    other registry lookup when no component declares a ``MapCollector`` type.

    Typical fixes include registering the collector factory before starting the
    container, or removing the unused linker from ``post_processors``.
    """

    def __init__(self) -> None:
        super().__init__(
            "No components of type MapCollector found, but CollectorLinker is still used.",
        )


class MapWireNoFactoryMethodFoundError(MapWireError):
    """Signal that the value type of a collector cannot be determined.

    Raised while linking when the collector component was not produced by a
    named factory method, or when the return annotation of that factory does
    not specialize ``MapCollector`` with a concrete value type.

    Typical fixes include registering the collector with ``add_factory`` and a
    return annotation such as ``-> HandlerCollector``, or passing an explicit
    ``collects=`` witness at registration.
    """

    def __init__(self, component_name: str) -> None:
        self.component_name = component_name
        super().__init__(f"No factory method for component with name {component_name} found.")


class MapWireNoAnnotatedComponentsFoundError(MapWireError):
    """Signal that the selection marker has no users anywhere in the registry.

    A marker with zero users is a misconfiguration of the whole registry, so this
    error is raised regardless of how many collectors exist.
    """

    def __init__(self, marker_type: type[Any]) -> None:
        self.marker_type = marker_type
        super().__init__(
            f"No components with marker of type {marker_type.__qualname__} found.",
        )


class MapWireInsertResolutionFailedError(MapWireError):
    """Signal that a collector cannot derive keys for a selected component.

    Raised by ``MapCollector.insert`` implementations, typically when required
    per-component marker metadata is absent. The collector map stays empty.
    """

    def __init__(self, component_name: str, reason: str | None = None) -> None:
        self.component_name = component_name
        msg = f"Unable to resolve map entries for component with name {component_name}."
        if reason:
            msg = f"{msg} {reason}"
        super().__init__(msg)


class MapWireLinkingErrors(MapWireError):
    """Aggregate per-collector configuration errors.

    Raised by ``CollectorLinker`` configured with ``LinkErrorPolicy.COLLECT``
    after every collector has been inspected.
    """

    def __init__(self, errors: Sequence[MapWireError]) -> None:
        self.errors = tuple(errors)
        details = "; ".join(str(error) for error in self.errors)
        super().__init__(f"Linking failed with {len(self.errors)} error(s): {details}")


class MapWireLinkingPhaseError(MapWireError):
    """Signal a registry mutation in the wrong bootstrap phase.

    Dependency edges and registrations must be added before the container starts
    instantiating components. A linker can also run only once.
    """


class MapWireCollectorStateError(MapWireError):
    """Signal invalid use of a collector lifecycle.

    Raised when ``attach`` is called twice or when entries are written after the
    collected map was frozen.
    """


class MapWireInvalidRegistrationError(MapWireError):
    """Signal invalid registration arguments.

    Raised by ``ComponentRegistry.add_factory``, ``add_concrete``,
    ``add_instance`` and ``add_configuration``, for example for duplicate
    component names or factories whose produced type cannot be inferred.
    """


class MapWireComponentNotRegisteredError(MapWireError):
    """Signal that a component name or type has no registration."""


class MapWireAmbiguousComponentError(MapWireError):
    """Signal that a type lookup matches more than one component.

    Typical fix is requesting the component by name or narrowing the type.
    """


class MapWireCircularDependencyError(MapWireError):
    """Signal a cycle in the component build graph.

    The ``cycle`` attribute lists component names in dependency order, starting
    and ending with the same name.
    """

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class MapWireContainerNotStartedError(MapWireError):
    """Signal component access before ``Container.start`` completed."""


class MapWireUnresolvedSpecializationError(MapWireError):
    """Signal that a collector cannot determine its own value type.

    Raised by ``MapCollector.value_type`` when the collector class does not bind
    a concrete value type on ``MapCollector`` and no ``value_type=`` witness was
    passed to its constructor.
    """

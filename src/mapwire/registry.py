from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, TypeVar, cast

from mapwire._internal.type_checks import is_instance_of, is_runtime_class, is_type_match
from mapwire.exceptions import (
    MapWireComponentNotRegisteredError,
    MapWireContainerNotStartedError,
    MapWireInvalidRegistrationError,
    MapWireLinkingPhaseError,
)
from mapwire.markers import Marker, find_marker, marker_types, validate_markers
from mapwire.type_resolver import resolve_factory_return_type

M = TypeVar("M", bound=Marker)
FactoryF = TypeVar("FactoryF", bound=Callable[..., Any])

logger = logging.getLogger(__name__)

COMPONENT_OPTIONS_ATTRIBUTE = "__mapwire_component__"
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class RegistryPhase(int, Enum):
    """Bootstrap phases a registry moves through, in order."""

    REGISTERING = 0
    """Descriptors may be added. No instance exists."""

    LINKED = 1
    """Post-processors have run. Edges may still be added, registrations may not."""

    INSTANTIATING = 2
    """The container is building components. The build graph is frozen."""

    STARTED = 3
    """Every component is built and attached."""


@dataclass(frozen=True, slots=True)
class ComponentDescriptor:
    """Registration record of one component. Immutable once registered."""

    name: str
    """Unique component name."""
    declared_type: Any
    """Type the component is registered as, used by type lookups."""
    factory: Callable[..., Any] | None = None
    """Callable producing the component, for factory registrations."""
    factory_owner: Any = None
    """Object declaring the factory method, if the factory is a named method of one."""
    factory_method_name: str | None = None
    """Name of the producing factory method. ``None`` for concrete or instance registrations."""
    concrete_type: type[Any] | None = None
    """Class instantiated directly, for concrete registrations."""
    instance: Any = None
    """Pre-built value, for instance registrations."""
    markers: tuple[Marker, ...] = ()
    """Selection markers attached to the component."""
    collects: Any = None
    """Explicit collected value type witness, for collector components."""

    @property
    def marker_types(self) -> frozenset[type[Any]]:
        return marker_types(self.markers)

    @property
    def is_instance(self) -> bool:
        return self.factory is None and self.concrete_type is None


@dataclass(frozen=True, slots=True, order=True)
class DependencyEdge:
    """Ordering constraint: ``dependency`` is built before ``dependent``."""

    dependent: str
    dependency: str


@dataclass(frozen=True, slots=True)
class ComponentOptions:
    """Registration options attached to a configuration method by ``@component``."""

    name: str | Literal["infer"] = "infer"
    provides: Any = "infer"
    markers: tuple[Marker, ...] = ()
    collects: Any = None


def component(
    *,
    name: str | Literal["infer"] = "infer",
    provides: Any | Literal["infer"] = "infer",
    markers: Iterable[Marker] = (),
    collects: Any = None,
) -> Callable[[FactoryF], FactoryF]:
    """Mark a method of a configuration class as a component factory.

    Marked methods are registered by ``ComponentRegistry.add_configuration``.

    Args:
        name: Component name. ``"infer"`` uses the method name.
        provides: Declared component type. ``"infer"`` reads the return annotation.
        markers: Selection markers attached to the produced component.
        collects: Explicit value type witness for collector components.

    Examples:
        .. code-block:: python

            class HandlersConfiguration:
                @component(markers=(Handles(keys=(1,)),))
                def echo_handler(self) -> Handler:
                    return EchoHandler()

                @component()
                def handler_collector(self) -> HandlerCollector:
                    return HandlerCollector()

    """
    options = ComponentOptions(
        name=name,
        provides=provides,
        markers=validate_markers(markers),
        collects=collects,
    )

    def decorator(factory: FactoryF) -> FactoryF:
        setattr(factory, COMPONENT_OPTIONS_ATTRIBUTE, options)
        return factory

    return decorator


class ComponentRegistry:
    """Store component descriptors, dependency edges and built instances.

    Descriptors are added while the registry is in ``RegistryPhase.REGISTERING``.
    Dependency edges can be added until instantiation starts. Instances are stored
    by the container while it builds components in dependency order.
    """

    def __init__(self) -> None:
        self._descriptors: dict[str, ComponentDescriptor] = {}
        self._dependencies: dict[str, dict[str, None]] = {}
        self._instances: dict[str, Any] = {}
        self._phase = RegistryPhase.REGISTERING

    # region Registration Methods

    def add_factory(  # noqa: PLR0913
        self,
        factory: Callable[..., Any],
        *,
        name: str | Literal["infer"] = "infer",
        provides: Any | Literal["infer"] = "infer",
        markers: Iterable[Marker] = (),
        owner: Any = None,
        collects: Any = None,
    ) -> ComponentDescriptor:
        """Register a factory callable as a component.

        The factory method name is recorded together with its owner so the
        declaration can be inspected later without calling it. Bound methods use
        ``__self__`` as the owner when ``owner`` is omitted.

        Args:
            factory: Callable producing the component. Its parameters are
                injected by annotation when the container builds it.
            name: Component name. ``"infer"`` uses ``factory.__name__``.
            provides: Declared component type. ``"infer"`` reads the factory
                return annotation.
            markers: Selection markers attached to the component.
            owner: Object declaring ``factory`` as a named attribute.
            collects: Explicit value type witness for collector components.

        Returns:
            The registered descriptor.

        Raises:
            MapWireInvalidRegistrationError: If ``factory`` is not callable, the
                produced type cannot be inferred, or the name is taken.

        Examples:
            .. code-block:: python

                def build_handler_collector() -> HandlerCollector:
                    return HandlerCollector()


                registry.add_factory(build_handler_collector)

        """
        if not callable(factory):
            msg = f"add_factory() parameter 'factory' must be callable, got {factory!r}."
            raise MapWireInvalidRegistrationError(msg)

        factory_name = getattr(factory, "__name__", None)
        if provides == "infer":
            declared_type = resolve_factory_return_type(factory)
            if declared_type is None:
                msg = (
                    f"Unable to infer produced type for factory '{factory_name or factory!r}'. "
                    "Add a return type annotation or pass provides= explicitly."
                )
                raise MapWireInvalidRegistrationError(msg)
        else:
            declared_type = provides

        if owner is None:
            owner = getattr(factory, "__self__", None)

        return self._add(
            ComponentDescriptor(
                name=self._component_name(name, default=factory_name, method_name="add_factory"),
                declared_type=declared_type,
                factory=factory,
                factory_owner=owner,
                factory_method_name=factory_name,
                markers=validate_markers(markers),
                collects=collects,
            ),
        )

    def add_concrete(
        self,
        concrete_type: type[Any],
        *,
        name: str | Literal["infer"] = "infer",
        markers: Iterable[Marker] = (),
        collects: Any = None,
    ) -> ComponentDescriptor:
        """Register a class that the container instantiates directly.

        Concrete registrations have no factory method. A collector registered
        this way can only be linked when ``collects`` is given.

        Args:
            concrete_type: Class to instantiate. ``__init__`` parameters are
                injected by annotation.
            name: Component name. ``"infer"`` uses the snake_case class name.
            markers: Selection markers attached to the component.
            collects: Explicit value type witness for collector components.

        Raises:
            MapWireInvalidRegistrationError: If ``concrete_type`` is not a class
                or the name is taken.

        """
        if not is_runtime_class(concrete_type):
            msg = (
                f"add_concrete() parameter 'concrete_type' must be a class, got {concrete_type!r}."
            )
            raise MapWireInvalidRegistrationError(msg)

        return self._add(
            ComponentDescriptor(
                name=self._component_name(
                    name,
                    default=_snake_case(concrete_type.__name__),
                    method_name="add_concrete",
                ),
                declared_type=concrete_type,
                concrete_type=concrete_type,
                markers=validate_markers(markers),
                collects=collects,
            ),
        )

    def add_instance(
        self,
        instance: Any,
        *,
        name: str,
        provides: Any | Literal["infer"] = "infer",
        markers: Iterable[Marker] = (),
    ) -> ComponentDescriptor:
        """Register a pre-built value as a component.

        Args:
            instance: Value returned for the component.
            name: Component name.
            provides: Declared component type. ``"infer"`` uses ``type(instance)``.
            markers: Selection markers attached to the component.

        """
        declared_type = type(instance) if provides == "infer" else provides
        return self._add(
            ComponentDescriptor(
                name=self._component_name(name, default=None, method_name="add_instance"),
                declared_type=declared_type,
                instance=instance,
                markers=validate_markers(markers),
            ),
        )

    def add_configuration(self, configuration: Any) -> list[ComponentDescriptor]:
        """Register every ``@component`` method of a configuration class.

        Args:
            configuration: Configuration class or instance. A class is
                instantiated without arguments.

        Returns:
            Descriptors registered, in declaration order.

        Raises:
            MapWireInvalidRegistrationError: If no method is marked with
                ``@component`` or a registration is invalid.

        """
        owner_type = configuration if is_runtime_class(configuration) else type(configuration)
        owner_instance = owner_type() if configuration is owner_type else configuration

        descriptors: list[ComponentDescriptor] = []
        for attribute_name, attribute in vars(owner_type).items():
            function = getattr(attribute, "__func__", attribute)
            options = getattr(function, COMPONENT_OPTIONS_ATTRIBUTE, None)
            if not isinstance(options, ComponentOptions):
                continue

            factory = getattr(owner_instance, attribute_name)
            provides = options.provides
            if provides == "infer":
                provides = resolve_factory_return_type(function)
                if provides is None:
                    msg = (
                        f"Unable to infer produced type for component method "
                        f"'{owner_type.__qualname__}.{attribute_name}'. "
                        "Add a return type annotation or pass provides= explicitly."
                    )
                    raise MapWireInvalidRegistrationError(msg)

            descriptors.append(
                self.add_factory(
                    factory,
                    name=attribute_name if options.name == "infer" else options.name,
                    provides=provides,
                    markers=options.markers,
                    owner=owner_type,
                    collects=options.collects,
                ),
            )

        if not descriptors:
            msg = f"Configuration '{owner_type.__qualname__}' declares no @component methods."
            raise MapWireInvalidRegistrationError(msg)
        return descriptors

    # endregion Registration Methods

    # region Lookups

    @property
    def phase(self) -> RegistryPhase:
        return self._phase

    @property
    def names(self) -> tuple[str, ...]:
        """Component names in registration order."""
        return tuple(self._descriptors)

    def descriptors(self) -> list[ComponentDescriptor]:
        """Return every descriptor in registration order."""
        return list(self._descriptors.values())

    def get_descriptor(self, name: str) -> ComponentDescriptor:
        """Return the descriptor registered under ``name``.

        Raises:
            MapWireComponentNotRegisteredError: If ``name`` is unknown.

        """
        try:
            return self._descriptors[name]
        except KeyError:
            msg = f"No component with name {name} is registered."
            raise MapWireComponentNotRegisteredError(msg) from None

    def names_for_type(self, dependency_type: Any) -> tuple[str, ...]:
        """Return names of components whose declared type matches ``dependency_type``."""
        return tuple(
            name
            for name, descriptor in self._descriptors.items()
            if is_type_match(descriptor.declared_type, dependency_type)
        )

    def names_for_marker(self, marker_type: type[Marker]) -> tuple[str, ...]:
        """Return names of components carrying a marker of ``marker_type``."""
        return tuple(
            name
            for name, descriptor in self._descriptors.items()
            if find_marker(descriptor.markers, marker_type) is not None
        )

    def find_marker(self, name: str, marker_type: type[M]) -> M | None:
        """Return the marker of ``marker_type`` attached to component ``name``, if any."""
        return find_marker(self.get_descriptor(name).markers, marker_type)

    # endregion Lookups

    # region Dependency Edges

    def add_dependency_edge(self, dependent: str, dependency: str) -> bool:
        """Require ``dependency`` to be built before ``dependent``.

        Returns:
            ``True`` when the edge is new, ``False`` when it was already present.

        Raises:
            MapWireComponentNotRegisteredError: If either name is unknown.
            MapWireLinkingPhaseError: If instantiation has already started.

        """
        if self._phase >= RegistryPhase.INSTANTIATING:
            msg = (
                f"Cannot add dependency {dependency} to component {dependent}: "
                "component instantiation has already started."
            )
            raise MapWireLinkingPhaseError(msg)
        self.get_descriptor(dependent)
        self.get_descriptor(dependency)

        dependencies = self._dependencies.setdefault(dependent, {})
        if dependency in dependencies:
            return False
        dependencies[dependency] = None
        return True

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        """Return names that must be built before ``name``, in insertion order."""
        return tuple(self._dependencies.get(name, ()))

    @property
    def edges(self) -> tuple[DependencyEdge, ...]:
        return tuple(
            DependencyEdge(dependent=dependent, dependency=dependency)
            for dependent, dependencies in self._dependencies.items()
            for dependency in dependencies
        )

    # endregion Dependency Edges

    # region Instances

    def get_component(self, name: str) -> Any:
        """Return the live instance of component ``name``.

        Raises:
            MapWireComponentNotRegisteredError: If ``name`` is unknown.
            MapWireContainerNotStartedError: If the component is not built yet.

        """
        self.get_descriptor(name)
        if not self.has_component(name):
            msg = f"Component with name {name} has not been instantiated yet."
            raise MapWireContainerNotStartedError(msg)
        return self._instances[name]

    def has_component(self, name: str) -> bool:
        """Return whether component ``name`` has been built."""
        return name in self._instances

    def components_with_marker(
        self,
        marker_type: type[Marker],
        *,
        of_type: Any = None,
    ) -> dict[str, Any]:
        """Return live instances carrying ``marker_type``, keyed by component name.

        Args:
            marker_type: Marker class selecting the components.
            of_type: When given, only components declared as and built as this
                type are returned. Other marked components are never touched.

        """
        names = self.names_for_marker(marker_type)
        if of_type is not None:
            matching = set(self.names_for_type(of_type))
            names = tuple(name for name in names if name in matching)

        components = {name: self.get_component(name) for name in names}
        if of_type is None:
            return components
        return {
            name: instance
            for name, instance in components.items()
            if is_instance_of(instance, of_type)
        }

    def store_component(self, name: str, instance: Any) -> None:
        """Record the built instance of component ``name``. Used by the container."""
        self.get_descriptor(name)
        self._instances[name] = instance

    # endregion Instances

    def advance_to(self, phase: RegistryPhase) -> None:
        """Move the registry to a later bootstrap phase. Phases never go back."""
        if phase < self._phase:
            msg = f"Cannot move registry from {self._phase.name} back to {phase.name}."
            raise MapWireLinkingPhaseError(msg)
        logger.debug("Registry phase %s -> %s", self._phase.name, phase.name)
        self._phase = phase

    def _add(self, descriptor: ComponentDescriptor) -> ComponentDescriptor:
        if self._phase > RegistryPhase.REGISTERING:
            msg = (
                f"Cannot register component {descriptor.name}: "
                f"registry is already in phase {self._phase.name}."
            )
            raise MapWireLinkingPhaseError(msg)
        if descriptor.name in self._descriptors:
            msg = f"Component with name {descriptor.name} is already registered."
            raise MapWireInvalidRegistrationError(msg)

        self._descriptors[descriptor.name] = descriptor
        logger.debug(
            "Registered component %s of type %r with markers %s",
            descriptor.name,
            descriptor.declared_type,
            sorted(marker_type.__qualname__ for marker_type in descriptor.marker_types),
        )
        return descriptor

    def _component_name(
        self,
        name: str | Literal["infer"],
        *,
        default: str | None,
        method_name: str,
    ) -> str:
        resolved = default if name == "infer" else name
        if not isinstance(resolved, str) or not resolved:
            msg = f"{method_name}() parameter 'name' must be a non-empty string, got {name!r}."
            raise MapWireInvalidRegistrationError(msg)
        return cast("str", resolved)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


__all__ = [
    "ComponentDescriptor",
    "ComponentOptions",
    "ComponentRegistry",
    "DependencyEdge",
    "RegistryPhase",
    "component",
]

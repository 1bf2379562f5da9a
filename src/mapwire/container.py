from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterable
from inspect import Parameter
from typing import Any, Protocol, TypeVar, get_type_hints, overload

from mapwire._internal.type_checks import unwrap_annotated
from mapwire.collector import MapCollector, RegistryAware
from mapwire.exceptions import (
    MapWireAmbiguousComponentError,
    MapWireCircularDependencyError,
    MapWireComponentNotRegisteredError,
    MapWireContainerNotStartedError,
    MapWireInvalidRegistrationError,
    MapWireLinkingPhaseError,
)
from mapwire.registry import ComponentDescriptor, ComponentRegistry, RegistryPhase

T = TypeVar("T")

logger = logging.getLogger(__name__)


class PostProcessor(Protocol):
    """Bootstrap step that may add dependency edges before instantiation."""

    def link(self, registry: ComponentRegistry) -> Any:
        """Inspect ``registry`` and add dependency edges."""
        ...


class Container:
    """Build every registered component once, in dependency order.

    Bootstrap has two explicit phases. Registration only records descriptors in
    the registry. ``start`` then runs post-processors such as
    ``CollectorLinker``, computes a topological instantiation plan and builds
    each component, calling ``attach(registry)`` on components that implement
    ``RegistryAware``.

    Every component is a singleton built synchronously during ``start``.
    """

    def __init__(
        self,
        registry: ComponentRegistry | None = None,
        *,
        post_processors: Iterable[PostProcessor] = (),
        infer_parameter_dependencies: bool = True,
    ) -> None:
        """Initialize a container.

        Args:
            registry: Registry to build from. A new empty one is created when
                omitted.
            post_processors: Steps run once by ``start`` before the plan is
                computed, in the given order.
            infer_parameter_dependencies: Inject factory and ``__init__``
                parameters by annotation and add the matching build edges.

        Examples:
            .. code-block:: python

                container = Container(post_processors=[CollectorLinker(Handles)])
                container.registry.add_configuration(HandlersConfiguration)
                container.start()

                handlers = container.resolve(HandlerCollector).get_map()

        """
        self._registry = registry if registry is not None else ComponentRegistry()
        self._post_processors: list[PostProcessor] = list(post_processors)
        self._infer_parameter_dependencies = infer_parameter_dependencies
        self._start_attempted = False
        self._started = False

    @property
    def registry(self) -> ComponentRegistry:
        return self._registry

    @property
    def is_started(self) -> bool:
        return self._started

    def add_post_processor(self, post_processor: PostProcessor) -> None:
        """Append a bootstrap step. Only allowed before ``start``."""
        if self._start_attempted:
            msg = "Post-processors must be added before the container starts."
            raise MapWireLinkingPhaseError(msg)
        self._post_processors.append(post_processor)

    def plan(self) -> tuple[str, ...]:
        """Return component names in instantiation order.

        Every dependency comes before its dependents. Independent components keep
        their registration order.

        Raises:
            MapWireCircularDependencyError: If the build graph has a cycle.

        """
        dependencies = {
            name: self._dependencies_of(self._registry.get_descriptor(name))
            for name in self._registry.names
        }

        order: list[str] = []
        done: set[str] = set()
        path: list[str] = []

        def visit(name: str) -> None:
            if name in done:
                return
            if name in path:
                raise MapWireCircularDependencyError([*path[path.index(name) :], name])
            path.append(name)
            for dependency in dependencies[name]:
                visit(dependency)
            path.pop()
            done.add(name)
            order.append(name)

        for name in dependencies:
            visit(name)
        return tuple(order)

    def start(self) -> None:
        """Run post-processors, then build and attach every component.

        Any error aborts startup. A container that failed to start cannot be
        started again and never hands out components.

        Raises:
            MapWireLinkingPhaseError: If ``start`` was already called.
            MapWireError: Any configuration error raised by post-processors,
                planning, factories or ``attach`` callbacks.

        """
        if self._start_attempted:
            msg = "Container.start() can only be called once."
            raise MapWireLinkingPhaseError(msg)
        self._start_attempted = True

        for post_processor in self._post_processors:
            post_processor.link(self._registry)
        self._registry.advance_to(RegistryPhase.LINKED)

        if self._infer_parameter_dependencies:
            for name in self._registry.names:
                descriptor = self._registry.get_descriptor(name)
                for dependency in self._parameter_dependencies(descriptor).values():
                    self._registry.add_dependency_edge(name, dependency)

        order = self.plan()
        self._registry.advance_to(RegistryPhase.INSTANTIATING)
        for name in order:
            descriptor = self._registry.get_descriptor(name)
            instance = self._build(descriptor)
            self._registry.store_component(name, instance)
            logger.debug("Instantiated component %s", name)
            if descriptor.collects is not None and isinstance(instance, MapCollector):
                instance.use_value_type(descriptor.collects)
            if isinstance(instance, RegistryAware):
                instance.attach(self._registry)

        self._registry.advance_to(RegistryPhase.STARTED)
        self._started = True
        logger.info("Container started with %d components", len(order))

    def get(self, name: str) -> Any:
        """Return the component registered under ``name``.

        Raises:
            MapWireContainerNotStartedError: If ``start`` did not complete.
            MapWireComponentNotRegisteredError: If ``name`` is unknown.

        """
        self._ensure_started()
        return self._registry.get_component(name)

    @overload
    def resolve(self, dependency_type: type[T]) -> T: ...

    @overload
    def resolve(self, dependency_type: Any) -> Any: ...

    def resolve(self, dependency_type: Any) -> Any:
        """Return the only component of ``dependency_type``.

        Raises:
            MapWireContainerNotStartedError: If ``start`` did not complete.
            MapWireComponentNotRegisteredError: If no component matches.
            MapWireAmbiguousComponentError: If several components match.

        """
        self._ensure_started()
        names = self._registry.names_for_type(dependency_type)
        if not names:
            msg = f"No component of type {dependency_type!r} is registered."
            raise MapWireComponentNotRegisteredError(msg)
        if len(names) > 1:
            msg = (
                f"Type {dependency_type!r} matches {len(names)} components: "
                f"{', '.join(names)}. Request one by name."
            )
            raise MapWireAmbiguousComponentError(msg)
        return self._registry.get_component(names[0])

    def _ensure_started(self) -> None:
        if not self._started:
            msg = "Container has not been started. Call start() first."
            raise MapWireContainerNotStartedError(msg)

    def _dependencies_of(self, descriptor: ComponentDescriptor) -> tuple[str, ...]:
        dependencies = dict.fromkeys(self._registry.dependencies_of(descriptor.name))
        if self._infer_parameter_dependencies:
            dependencies.update(dict.fromkeys(self._parameter_dependencies(descriptor).values()))
        return tuple(dependencies)

    def _build(self, descriptor: ComponentDescriptor) -> Any:
        provider = self._provider_of(descriptor)
        if provider is None:
            return descriptor.instance

        arguments = {
            parameter_name: self._registry.get_component(dependency)
            for parameter_name, dependency in self._parameter_dependencies(descriptor).items()
        }
        return provider(**arguments)

    def _provider_of(self, descriptor: ComponentDescriptor) -> Callable[..., Any] | None:
        if descriptor.factory is not None:
            return descriptor.factory
        return descriptor.concrete_type

    def _parameter_dependencies(self, descriptor: ComponentDescriptor) -> dict[str, str]:
        provider = self._provider_of(descriptor)
        if provider is None or not self._infer_parameter_dependencies:
            return {}

        parameters = _provider_parameters(provider)
        annotations = _resolved_type_hints(
            provider.__init__ if descriptor.concrete_type is not None else provider,
        )

        dependencies: dict[str, str] = {}
        for parameter in parameters:
            if parameter.kind in (Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD):
                continue
            annotation = unwrap_annotated(annotations.get(parameter.name, parameter.annotation))
            # Any matches every component, so it never selects a dependency.
            if annotation is Parameter.empty or annotation is Any or isinstance(annotation, str):
                if parameter.default is not Parameter.empty:
                    continue
                msg = (
                    f"Unable to infer dependency for required parameter '{parameter.name}' "
                    f"of component {descriptor.name}. Add a type annotation."
                )
                raise MapWireInvalidRegistrationError(msg)

            dependency = self._match_parameter(descriptor, parameter, annotation)
            if dependency is not None:
                dependencies[parameter.name] = dependency
        return dependencies

    def _match_parameter(
        self,
        descriptor: ComponentDescriptor,
        parameter: Parameter,
        annotation: Any,
    ) -> str | None:
        names = [
            name for name in self._registry.names_for_type(annotation) if name != descriptor.name
        ]
        if len(names) == 1:
            return names[0]
        if parameter.name in names:
            return parameter.name
        if not names:
            if parameter.default is not Parameter.empty:
                return None
            msg = (
                f"Parameter '{parameter.name}' of component {descriptor.name} requires "
                f"a component of type {annotation!r}, but none is registered."
            )
            raise MapWireComponentNotRegisteredError(msg)
        msg = (
            f"Parameter '{parameter.name}' of component {descriptor.name} matches "
            f"{len(names)} components of type {annotation!r}: {', '.join(names)}. "
            "Rename the parameter after one of them."
        )
        raise MapWireAmbiguousComponentError(msg)


def _provider_parameters(provider: Callable[..., Any]) -> tuple[Parameter, ...]:
    try:
        return tuple(inspect.signature(provider).parameters.values())
    except (TypeError, ValueError):
        return ()


def _resolved_type_hints(provider: Callable[..., Any]) -> dict[str, Any]:
    try:
        return get_type_hints(provider, include_extras=True)
    except (AttributeError, NameError, TypeError):
        return {}


__all__ = ["Container", "PostProcessor"]

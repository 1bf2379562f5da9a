"""Collect marked components into a keyed map through a started container."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TypeVar

import pytest

from mapwire import (
    CollectorLinker,
    ComponentRegistry,
    Container,
    Marker,
    MarkerMapCollector,
    component,
)
from mapwire.exceptions import (
    MapWireNoAnnotatedComponentsFoundError,
    MapWireNoCollectorsFoundError,
)


@dataclass(frozen=True)
class Handles(Marker):
    keys: tuple[int, ...]


@dataclass(frozen=True)
class Audited(Marker):
    pass


class Handler:
    pass


class EchoHandler(Handler):
    pass


class UpperHandler(Handler):
    pass


class IdleHandler(Handler):
    pass


class AuditLog:
    pass


class HandlerCollector(MarkerMapCollector[int, Handler]):
    marker_type = Handles

    def keys_for(self, marker: Handles, name: str, instance: Handler) -> Iterable[int]:
        return marker.keys


V = TypeVar("V")


class OpenHandlerCollector(MarkerMapCollector[int, V]):
    marker_type = Handles

    def keys_for(self, marker: Handles, name: str, instance: V) -> Iterable[int]:
        return marker.keys


class AuditLogCollector(MarkerMapCollector[int, AuditLog]):
    marker_type = Handles

    def keys_for(self, marker: Handles, name: str, instance: AuditLog) -> Iterable[int]:
        return marker.keys


class Dispatcher:
    def __init__(self, handlers: Mapping[int, Handler]) -> None:
        self.handlers = handlers


class HandlersConfiguration:
    # Declared before the handlers so only the linker edges order the build.
    @component()
    def handler_collector(self) -> HandlerCollector:
        return HandlerCollector()

    @component()
    def dispatcher(self, handler_collector: HandlerCollector) -> Dispatcher:
        return Dispatcher(handler_collector.get_map())

    @component(markers=(Handles(keys=(1,)),))
    def echo_handler(self) -> EchoHandler:
        return EchoHandler()

    @component(markers=(Handles(keys=(2, 3)), Audited()))
    def upper_handler(self) -> UpperHandler:
        return UpperHandler()

    @component()
    def idle_handler(self) -> IdleHandler:
        return IdleHandler()


class UnmarkedHandlersConfiguration:
    @component()
    def handler_collector(self) -> HandlerCollector:
        return HandlerCollector()

    @component(markers=(Handles(keys=(7,)),))
    def audit_log(self) -> AuditLog:
        return AuditLog()

    @component()
    def echo_handler(self) -> EchoHandler:
        return EchoHandler()


class TestHandlersConfiguration:
    @pytest.fixture()
    def container(self, registry: ComponentRegistry) -> Container:
        registry.add_configuration(HandlersConfiguration)
        container = Container(registry, post_processors=[CollectorLinker(Handles)])
        container.start()
        return container

    def test_map_contains_marked_components_under_their_keys(self, container: Container) -> None:
        handlers = container.resolve(HandlerCollector).get_map()

        assert handlers == {
            1: container.get("echo_handler"),
            2: container.get("upper_handler"),
            3: container.get("upper_handler"),
        }

    def test_consumer_receives_collected_map(self, container: Container) -> None:
        dispatcher = container.resolve(Dispatcher)

        assert dispatcher.handlers is container.resolve(HandlerCollector).get_map()
        assert set(dispatcher.handlers) == {1, 2, 3}

    def test_marked_components_are_built_before_collector(self, container: Container) -> None:
        order = container.plan()

        assert order.index("echo_handler") < order.index("handler_collector")
        assert order.index("upper_handler") < order.index("handler_collector")
        assert order.index("handler_collector") < order.index("dispatcher")

    def test_only_marked_components_become_dependencies(
        self,
        registry: ComponentRegistry,
        container: Container,
    ) -> None:
        assert registry.dependencies_of("handler_collector") == ("echo_handler", "upper_handler")

    def test_map_is_read_only(self, container: Container) -> None:
        handlers = container.resolve(HandlerCollector).get_map()

        with pytest.raises(TypeError):
            handlers[4] = IdleHandler()  # type: ignore[index]


def test_unmarked_components_are_reported(
    registry: ComponentRegistry,
    caplog: pytest.LogCaptureFixture,
) -> None:
    registry.add_configuration(HandlersConfiguration)
    caplog.set_level(logging.WARNING, logger="mapwire.linker")

    Container(registry, post_processors=[CollectorLinker(Handles)]).start()

    warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "idle_handler" in warnings[0].getMessage()


def test_marker_used_only_by_other_types_gives_empty_map(registry: ComponentRegistry) -> None:
    registry.add_configuration(UnmarkedHandlersConfiguration)
    container = Container(registry, post_processors=[CollectorLinker(Handles)])

    container.start()

    assert registry.dependencies_of("handler_collector") == ()
    assert container.resolve(HandlerCollector).get_map() == {}


def test_marker_without_users_fails_start(registry: ComponentRegistry) -> None:
    registry.add_configuration(UnmarkedHandlersConfiguration)
    container = Container(registry, post_processors=[CollectorLinker(Audited)])

    with pytest.raises(MapWireNoAnnotatedComponentsFoundError, match="Audited"):
        container.start()
    assert not container.is_started
    assert registry.edges == ()


def test_linker_without_collectors_fails_start(registry: ComponentRegistry) -> None:
    registry.add_instance(EchoHandler(), name="echo_handler", markers=(Handles(keys=(1,)),))
    container = Container(registry, post_processors=[CollectorLinker(Handles)])

    with pytest.raises(MapWireNoCollectorsFoundError):
        container.start()


class TestRegisteredValueType:
    def test_open_collector_collects_registered_value_type(
        self,
        registry: ComponentRegistry,
    ) -> None:
        echo = EchoHandler()
        registry.add_concrete(OpenHandlerCollector, name="collector", collects=Handler)
        registry.add_instance(echo, name="echo", markers=(Handles(keys=(1,)),))
        container = Container(registry, post_processors=[CollectorLinker(Handles)])

        container.start()

        assert registry.dependencies_of("collector") == ("echo",)
        assert container.get("collector").get_map() == {1: echo}

    def test_registered_value_type_overrides_declared_one(
        self,
        registry: ComponentRegistry,
    ) -> None:
        echo = EchoHandler()
        registry.add_concrete(AuditLogCollector, name="collector", collects=Handler)
        registry.add_instance(echo, name="echo", markers=(Handles(keys=(1,)),))
        registry.add_instance(AuditLog(), name="audit_log", markers=(Handles(keys=(2,)),))
        container = Container(registry, post_processors=[CollectorLinker(Handles)])

        container.start()

        collector = container.get("collector")
        assert registry.dependencies_of("collector") == ("echo",)
        assert collector.value_type is Handler
        assert collector.get_map() == {1: echo}

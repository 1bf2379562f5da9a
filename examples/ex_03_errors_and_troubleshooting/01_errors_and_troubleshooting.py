"""Common linking errors.

This module triggers representative configuration errors and prints exception
type names so you can recognize each error category quickly.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from mapwire import (
    CollectorLinker,
    ComponentRegistry,
    LinkErrorPolicy,
    MapWireInsertResolutionFailedError,
    MapWireLinkingErrors,
    MapWireNoAnnotatedComponentsFoundError,
    MapWireNoCollectorsFoundError,
    MapWireNoFactoryMethodFoundError,
    Marker,
    MarkerMapCollector,
)


@dataclass(frozen=True)
class Handles(Marker):
    keys: tuple[int, ...] = ()


@dataclass(frozen=True)
class Audited(Marker):
    pass


class Handler:
    pass


class HandlerCollector(MarkerMapCollector[int, Handler]):
    marker_type = Handles

    def keys_for(self, marker: Handles, name: str, instance: Handler) -> Iterable[int]:
        return marker.keys


def build_handler_collector() -> HandlerCollector:
    return HandlerCollector()


def build_handler() -> Handler:
    return Handler()


def main() -> None:
    no_collectors = ComponentRegistry()
    no_collectors.add_factory(build_handler, markers=(Handles(keys=(1,)),))
    try:
        CollectorLinker(Handles).link(no_collectors)
    except MapWireNoCollectorsFoundError as error:
        print(type(error).__name__)  # => MapWireNoCollectorsFoundError

    no_factory = ComponentRegistry()
    no_factory.add_concrete(HandlerCollector)
    no_factory.add_factory(build_handler, markers=(Handles(keys=(1,)),))
    try:
        CollectorLinker(Handles).link(no_factory)
    except MapWireNoFactoryMethodFoundError as error:
        print(error)  # => No factory method for component with name handler_collector found.

    no_markers = ComponentRegistry()
    no_markers.add_factory(build_handler_collector)
    no_markers.add_factory(build_handler, markers=(Handles(keys=(1,)),))
    try:
        CollectorLinker(Audited).link(no_markers)
    except MapWireNoAnnotatedComponentsFoundError as error:
        print(error)  # => No components with marker of type Audited found.

    many_errors = ComponentRegistry()
    many_errors.add_concrete(HandlerCollector, name="first")
    many_errors.add_concrete(HandlerCollector, name="second")
    many_errors.add_factory(build_handler, markers=(Handles(keys=(1,)),))
    try:
        CollectorLinker(Handles, error_policy=LinkErrorPolicy.COLLECT).link(many_errors)
    except MapWireLinkingErrors as error:
        print(len(error.errors))  # => 2

    wrong_marker = ComponentRegistry()
    wrong_marker.add_instance(Handler(), name="plain", markers=(Handles(keys=(1,)),))
    try:
        HandlerCollector(marker_type=Audited).insert("plain", Handler(), wrong_marker)
    except MapWireInsertResolutionFailedError as error:
        print(error.component_name)  # => plain


if __name__ == "__main__":
    main()

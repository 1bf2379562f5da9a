"""Collect marked components into a keyed map.

This module registers a few command handlers tagged with ``Handles`` markers,
lets ``CollectorLinker`` order them before the collector, and reads the
resulting map once the container has started.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from mapwire import CollectorLinker, Container, Marker, MarkerMapCollector


@dataclass(frozen=True)
class Handles(Marker):
    commands: tuple[str, ...]


class Handler:
    def handle(self, payload: str) -> str:
        raise NotImplementedError


class EchoHandler(Handler):
    def handle(self, payload: str) -> str:
        return payload


class ShoutHandler(Handler):
    def handle(self, payload: str) -> str:
        return payload.upper()


class HandlerCollector(MarkerMapCollector[str, Handler]):
    marker_type = Handles

    def keys_for(self, marker: Handles, name: str, instance: Handler) -> Iterable[str]:
        return marker.commands


def build_handler_collector() -> HandlerCollector:
    return HandlerCollector()


def build_echo_handler() -> EchoHandler:
    return EchoHandler()


def build_shout_handler() -> ShoutHandler:
    return ShoutHandler()


def main() -> None:
    container = Container(post_processors=[CollectorLinker(Handles)])
    container.registry.add_factory(build_handler_collector)
    container.registry.add_factory(build_echo_handler, markers=(Handles(commands=("echo",)),))
    container.registry.add_factory(
        build_shout_handler,
        markers=(Handles(commands=("shout", "yell")),),
    )

    container.start()
    handlers = container.resolve(HandlerCollector).get_map()

    print(sorted(handlers))  # => ['echo', 'shout', 'yell']
    print(handlers["yell"].handle("hello"))  # => HELLO
    dependencies = container.registry.dependencies_of("build_handler_collector")
    print(dependencies)  # => ('build_echo_handler', 'build_shout_handler')
    print(container.plan()[-1])  # => build_handler_collector


if __name__ == "__main__":
    main()

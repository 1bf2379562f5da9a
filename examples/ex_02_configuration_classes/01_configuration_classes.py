"""Declare components on a configuration class with ``@component``.

The collected map is itself consumed by another component. Parameters of
component methods are injected by annotation, so the router is built after the
collector, which is built after every marked route.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from mapwire import CollectorLinker, Container, Marker, MarkerMapCollector, component


@dataclass(frozen=True)
class Route(Marker):
    paths: tuple[str, ...]


class View:
    def __init__(self, body: str) -> None:
        self.body = body


class ViewCollector(MarkerMapCollector[str, View]):
    marker_type = Route

    def keys_for(self, marker: Route, name: str, instance: View) -> Iterable[str]:
        return marker.paths


class Router:
    def __init__(self, views: Mapping[str, View]) -> None:
        self.views = views

    def dispatch(self, path: str) -> str:
        view = self.views.get(path)
        return "404" if view is None else view.body


class WebConfiguration:
    @component()
    def router(self, view_collector: ViewCollector) -> Router:
        return Router(view_collector.get_map())

    @component()
    def view_collector(self) -> ViewCollector:
        return ViewCollector()

    @component(markers=(Route(paths=("/", "/index")),))
    def index_view(self) -> View:
        return View("index")

    @component(markers=(Route(paths=("/about",)),))
    def about_view(self) -> View:
        return View("about")


def main() -> None:
    container = Container(post_processors=[CollectorLinker(Route)])
    container.registry.add_configuration(WebConfiguration)
    container.start()

    router = container.resolve(Router)
    print(router.dispatch("/index"))  # => index
    print(router.dispatch("/about"))  # => about
    print(router.dispatch("/missing"))  # => 404
    print(container.plan()[-1])  # => router


if __name__ == "__main__":
    main()

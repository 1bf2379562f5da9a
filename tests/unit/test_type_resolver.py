from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Annotated, Any, Generic, Optional, TypeVar

import pytest

from mapwire.collector import MapCollector, MarkerMapCollector
from mapwire.registry import ComponentRegistry
from mapwire.type_resolver import (
    CollectorSpecialization,
    resolve_factory_return_type,
    resolve_key_type,
    resolve_specialization,
    resolve_value_type,
)

K = TypeVar("K")
V = TypeVar("V")
T = TypeVar("T")


class Handler:
    pass


class Box(Generic[T]):
    pass


class _Collector(MapCollector[K, V]):
    def select_candidates(self, registry: ComponentRegistry) -> Mapping[str, Any]:
        return {}

    def insert(self, name: str, instance: Any, registry: ComponentRegistry) -> None:
        return None


class HandlerCollector(_Collector[int, Handler]):
    pass


class HandlerCollectorSubclass(HandlerCollector):
    pass


class ByName(_Collector[str, V]):
    pass


class HandlerByName(ByName[Handler]):
    pass


class Swapped(_Collector[V, K], Generic[K, V]):
    pass


class SwappedHandler(Swapped[Handler, int]):
    pass


class OpenCollector(_Collector[int, V]):
    pass


class BoxCollector(_Collector[str, Box[int]]):
    pass


class NestedOpenCollector(_Collector[str, list[V]]):
    pass


class NestedClosedCollector(NestedOpenCollector[Handler]):
    pass


class Keyed(MarkerMapCollector[str, Handler]):
    def keys_for(self, marker: Any, name: str, instance: Handler) -> Iterable[str]:
        return (name,)


class NotACollector(Generic[K, V]):
    pass


class SpecializedNotACollector(NotACollector[int, Handler]):
    pass


def build_handler_collector() -> HandlerCollector:
    return HandlerCollector()


def test_direct_specialization_resolves_key_and_value() -> None:
    assert resolve_specialization(HandlerCollector) == CollectorSpecialization(
        key_type=int,
        value_type=Handler,
    )


def test_plain_subclass_inherits_specialization() -> None:
    assert resolve_value_type(HandlerCollectorSubclass) is Handler
    assert resolve_key_type(HandlerCollectorSubclass) is int


def test_specialization_through_intermediate_generic_is_substituted() -> None:
    assert resolve_value_type(HandlerByName) is Handler
    assert resolve_key_type(HandlerByName) is str


def test_reordered_type_parameters_follow_declaration_not_position() -> None:
    specialization = resolve_specialization(SwappedHandler)

    assert specialization == CollectorSpecialization(key_type=int, value_type=Handler)


def test_marker_map_collector_subclass_resolves() -> None:
    assert resolve_value_type(Keyed) is Handler
    assert resolve_key_type(Keyed) is str


def test_parameterized_value_type_is_kept_as_alias() -> None:
    assert resolve_value_type(BoxCollector) == Box[int]


def test_nested_type_variable_is_substituted() -> None:
    assert resolve_value_type(NestedClosedCollector) == list[Handler]


@pytest.mark.parametrize(
    "declaration",
    [
        pytest.param(OpenCollector, id="open-value"),
        pytest.param(NestedOpenCollector, id="nested-open-value"),
        pytest.param(_Collector, id="unspecialized"),
        pytest.param(MapCollector, id="base"),
        pytest.param(SpecializedNotACollector, id="unrelated-generic"),
        pytest.param(Handler, id="plain-class"),
        pytest.param("HandlerCollector", id="string"),
        pytest.param(None, id="none"),
    ],
)
def test_unresolvable_declarations_return_none(declaration: Any) -> None:
    assert resolve_specialization(declaration) is None
    assert resolve_value_type(declaration) is None


def test_open_key_is_reported_as_none() -> None:
    class AnyKey(_Collector[K, Handler]):
        pass

    specialization = resolve_specialization(AnyKey)

    assert specialization == CollectorSpecialization(key_type=None, value_type=Handler)


def test_parameterized_alias_declaration_resolves() -> None:
    assert resolve_value_type(MapCollector[int, Handler]) is Handler
    assert resolve_value_type(ByName[Handler]) is Handler
    assert resolve_value_type(OpenCollector[Handler]) is Handler


def test_annotated_declaration_is_unwrapped() -> None:
    assert resolve_value_type(Annotated[HandlerCollector, "primary"]) is Handler


def test_custom_base_is_supported() -> None:
    assert resolve_value_type(SpecializedNotACollector, base=NotACollector) is Handler


def test_factory_return_type_is_read_from_annotation() -> None:
    assert resolve_factory_return_type(build_handler_collector) is HandlerCollector


def test_factory_return_type_of_bound_method() -> None:
    class Configuration:
        def handler_collector(self) -> HandlerCollector:
            return HandlerCollector()

    assert resolve_factory_return_type(Configuration().handler_collector) is HandlerCollector


def test_factory_return_type_unwraps_annotated() -> None:
    def build() -> Annotated[HandlerCollector, "primary"]:
        return HandlerCollector()

    assert resolve_factory_return_type(build) is HandlerCollector


@pytest.mark.parametrize(
    "factory",
    [
        pytest.param(lambda: None, id="no-annotation"),
        pytest.param(print, id="builtin"),
    ],
)
def test_factory_without_return_annotation_returns_none(factory: Any) -> None:
    assert resolve_factory_return_type(factory) is None


def test_factory_returning_none_is_treated_as_missing() -> None:
    def build() -> None:
        return None

    assert resolve_factory_return_type(build) is None


def test_unresolved_forward_reference_is_treated_as_missing() -> None:
    def build() -> MissingCollector:  # type: ignore[name-defined]  # noqa: F821
        raise NotImplementedError

    assert resolve_factory_return_type(build) is None


def test_optional_factory_return_type_is_unwrapped() -> None:
    def build() -> HandlerCollector | None:
        return HandlerCollector()

    def build_legacy() -> Optional[HandlerCollector]:  # noqa: UP045
        return HandlerCollector()

    assert resolve_factory_return_type(build) is HandlerCollector
    assert resolve_factory_return_type(build_legacy) is HandlerCollector
    assert resolve_value_type(resolve_factory_return_type(build)) is Handler


def test_union_of_several_types_is_kept() -> None:
    def build() -> HandlerCollector | Handler:
        return HandlerCollector()

    return_type = resolve_factory_return_type(build)

    assert return_type == HandlerCollector | Handler
    assert resolve_value_type(return_type) is None

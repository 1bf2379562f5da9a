"""Shared pytest fixtures for mapwire tests."""

import pytest

from mapwire.container import Container
from mapwire.registry import ComponentRegistry


@pytest.fixture()
def registry() -> ComponentRegistry:
    """Empty registry in the registering phase."""
    return ComponentRegistry()


@pytest.fixture()
def container(registry: ComponentRegistry) -> Container:
    """Container without post-processors, built on the ``registry`` fixture."""
    return Container(registry)

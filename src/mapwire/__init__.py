from mapwire.collector import MapCollector, MarkerMapCollector, RegistryAware
from mapwire.container import Container, PostProcessor
from mapwire.exceptions import (
    MapWireAmbiguousComponentError,
    MapWireCircularDependencyError,
    MapWireCollectorStateError,
    MapWireComponentNotRegisteredError,
    MapWireContainerNotStartedError,
    MapWireError,
    MapWireInsertResolutionFailedError,
    MapWireInvalidRegistrationError,
    MapWireLinkingErrors,
    MapWireLinkingPhaseError,
    MapWireNoAnnotatedComponentsFoundError,
    MapWireNoCollectorsFoundError,
    MapWireNoFactoryMethodFoundError,
    MapWireUnresolvedSpecializationError,
)
from mapwire.linker import CollectorLink, CollectorLinker, LinkErrorPolicy, LinkPlan
from mapwire.markers import Marker
from mapwire.registry import (
    ComponentDescriptor,
    ComponentRegistry,
    DependencyEdge,
    RegistryPhase,
    component,
)
from mapwire.type_resolver import (
    CollectorSpecialization,
    resolve_factory_return_type,
    resolve_key_type,
    resolve_specialization,
    resolve_value_type,
)

__all__ = [
    "CollectorLink",
    "CollectorLinker",
    "CollectorSpecialization",
    "ComponentDescriptor",
    "ComponentRegistry",
    "Container",
    "DependencyEdge",
    "LinkErrorPolicy",
    "LinkPlan",
    "MapCollector",
    "MapWireAmbiguousComponentError",
    "MapWireCircularDependencyError",
    "MapWireCollectorStateError",
    "MapWireComponentNotRegisteredError",
    "MapWireContainerNotStartedError",
    "MapWireError",
    "MapWireInsertResolutionFailedError",
    "MapWireInvalidRegistrationError",
    "MapWireLinkingErrors",
    "MapWireLinkingPhaseError",
    "MapWireNoAnnotatedComponentsFoundError",
    "MapWireNoCollectorsFoundError",
    "MapWireNoFactoryMethodFoundError",
    "MapWireUnresolvedSpecializationError",
    "Marker",
    "MarkerMapCollector",
    "PostProcessor",
    "RegistryAware",
    "RegistryPhase",
    "component",
    "resolve_factory_return_type",
    "resolve_key_type",
    "resolve_specialization",
    "resolve_value_type",
]

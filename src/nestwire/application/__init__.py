"""
Application layer - Use cases and orchestration.

This layer contains the registry, resolver and container that orchestrate
domain objects. It depends only on the Domain layer.
"""

from .circular_detector import CircularDependencyDetector
from .config_resolver import ConfigResolver
from .container import DIContainer
from .decorators import (
    Inject,
    di_module,
    inject,
    inject_config,
    inject_container,
    inject_entity_schema,
    inject_entity_service,
    injectable,
    on_init,
)
from .lifetime_manager import LifetimeManager
from .metadata_store import (
    DI_METADATA_STORE,
    register_constructor_dependency,
    register_module_metadata,
    register_on_init_hook,
    register_property_dependency,
)
from .middleware import MiddlewarePipeline
from .registry import ProviderRegistry
from .resolver import DependencyResolver
from .settings import DISettings, get_settings

__all__ = [
    "DIContainer",
    "DependencyResolver",
    "ProviderRegistry",
    "LifetimeManager",
    "CircularDependencyDetector",
    "MiddlewarePipeline",
    "ConfigResolver",
    "DISettings",
    "get_settings",
    # Metadata
    "DI_METADATA_STORE",
    "register_constructor_dependency",
    "register_property_dependency",
    "register_on_init_hook",
    "register_module_metadata",
    # Decorators
    "Inject",
    "inject",
    "inject_config",
    "inject_container",
    "inject_entity_service",
    "inject_entity_schema",
    "injectable",
    "on_init",
    "di_module",
]

"""
nestwire: Hierarchical, token based dependency injection with modules and scoped containers.

Public API exports for the nestwire package.
"""

# Application exports
from nestwire.application.container import DIContainer
from nestwire.application.decorators import (
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
from nestwire.application.metadata_store import (
    register_constructor_dependency,
    register_module_metadata,
    register_on_init_hook,
    register_property_dependency,
)
from nestwire.application.settings import DISettings, get_settings

# Domain exports
from nestwire.domain.enums import ProviderKind, ProviderType
from nestwire.domain.exceptions import (
    CircularDependencyError,
    DIException,
    DispatchReentryError,
    InitializationMethodError,
    InitializationMethodTypeError,
    InvalidDependencyCriteriaError,
    InvalidProviderError,
    InvalidTokenError,
    ModuleMetadataError,
    NoEntitySchemaProviderError,
    NoEntityServiceProviderError,
    NoProviderFoundError,
    NothingToExportError,
)
from nestwire.domain.models import (
    AliasProvider,
    ClassProvider,
    ConfigProvider,
    FactoryProvider,
    PriorityCriteria,
    ResolutionCriteria,
    ValueProvider,
)
from nestwire.domain.tokens import DI_CONTAINER, make_token

__version__ = "0.1.0"

__all__ = [
    # Container
    "DIContainer",
    "DISettings",
    "get_settings",
    # Registration helpers
    "Inject",
    "inject",
    "inject_config",
    "inject_container",
    "inject_entity_service",
    "inject_entity_schema",
    "injectable",
    "on_init",
    "di_module",
    "register_constructor_dependency",
    "register_property_dependency",
    "register_on_init_hook",
    "register_module_metadata",
    # Providers and criteria
    "ClassProvider",
    "FactoryProvider",
    "ValueProvider",
    "ConfigProvider",
    "AliasProvider",
    "PriorityCriteria",
    "ResolutionCriteria",
    # Tokens
    "DI_CONTAINER",
    "make_token",
    # Enums
    "ProviderKind",
    "ProviderType",
    # Exceptions
    "DIException",
    "InvalidTokenError",
    "InvalidProviderError",
    "NoProviderFoundError",
    "NoEntityServiceProviderError",
    "NoEntitySchemaProviderError",
    "CircularDependencyError",
    "DispatchReentryError",
    "InitializationMethodError",
    "InitializationMethodTypeError",
    "InvalidDependencyCriteriaError",
    "ModuleMetadataError",
    "NothingToExportError",
]

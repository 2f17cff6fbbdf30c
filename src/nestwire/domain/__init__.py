"""
Domain layer - Core models, tokens and errors.

This layer contains the fundamental rules and models for dependency injection.
It has no dependencies on other layers.
"""

from .enums import ProviderKind, ProviderType
from .exceptions import (
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
from .interfaces import IContainer, ILifetimeManager, IResolver
from .models import (
    MISSING,
    AliasProvider,
    BaseProvider,
    ClassProvider,
    CriteriaLike,
    ConfigProvider,
    FactoryProvider,
    InjectOptions,
    InternalProvider,
    Middleware,
    ModuleMetadata,
    ParameterInjection,
    PriorityCriteria,
    PropertyInjection,
    ProviderSpec,
    ResolutionContext,
    ResolutionCriteria,
    ValueProvider,
    build_criteria,
    build_provider,
    entity_name,
    provider_condition,
)
from .tokens import DI_CONTAINER, TOKEN_NAMESPACE, is_token, make_token, strip_token_namespace

# Rebuild Pydantic models to resolve forward references
InternalProvider.model_rebuild()
ModuleMetadata.model_rebuild()

__all__ = [
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
    # Interfaces
    "IContainer",
    "IResolver",
    "ILifetimeManager",
    # Models
    "MISSING",
    "BaseProvider",
    "ClassProvider",
    "FactoryProvider",
    "ValueProvider",
    "ConfigProvider",
    "AliasProvider",
    "ProviderSpec",
    "CriteriaLike",
    "InternalProvider",
    "InjectOptions",
    "ParameterInjection",
    "PropertyInjection",
    "PriorityCriteria",
    "ResolutionCriteria",
    "ResolutionContext",
    "Middleware",
    "ModuleMetadata",
    "build_criteria",
    "build_provider",
    "entity_name",
    "provider_condition",
    # Tokens
    "TOKEN_NAMESPACE",
    "DI_CONTAINER",
    "make_token",
    "strip_token_namespace",
    "is_token",
]

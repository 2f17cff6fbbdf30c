from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, Optional, Tuple

from nestwire.domain.models import CriteriaLike, InternalProvider, ResolutionContext


class IContainer(ABC):
    """Abstract interface for dependency injection container operations."""

    container_id: str

    @abstractmethod
    def register(self, provider: Any) -> Optional[str]:
        """Register a provider spec in this container.

        Args:
            provider: A provider model, a provider mapping, or a class.

        Returns:
            The token the provider was registered under, or None when its condition was false.
        """

    @abstractmethod
    def resolve(
        self,
        dependency: Any,
        criteria: CriteriaLike = None,
        path: Optional[ResolutionContext] = None,
    ) -> Any:
        """Resolve the best provider for a dependency identifier.

        Args:
            dependency: String, class or token.
            criteria: Optional selection criteria.
            path: Resolution chain of the enclosing resolution, if any.
        """

    @abstractmethod
    async def resolve_async(
        self,
        dependency: Any,
        criteria: CriteriaLike = None,
        path: Optional[ResolutionContext] = None,
    ) -> Any:
        """Asynchronous counterpart of resolve()."""

    @abstractmethod
    def resolve_provider_value(self, wrapper: InternalProvider, path: Optional[ResolutionContext] = None) -> Any:
        """Produce the value of one specific provider wrapper."""

    @abstractmethod
    async def resolve_provider_value_async(
        self, wrapper: InternalProvider, path: Optional[ResolutionContext] = None
    ) -> Any:
        """Asynchronous counterpart of resolve_provider_value()."""

    @abstractmethod
    def module(self, target: type) -> Dict[str, Any]:
        """Import a module class and return its identifier and proxy container."""

    @abstractmethod
    def export_providers_for(self, identifier: Any) -> None:
        """Publish providers matching an identifier into this container's exports."""

    @abstractmethod
    def create_child_container(self, identifier: str) -> "IContainer":
        """Create a child scope of this container."""

    @abstractmethod
    def clear(self, clear_child_containers: bool = True) -> None:
        """Clear all registrations and instances from the container."""


class IResolver(ABC):
    """Abstract interface for instance creation."""

    @abstractmethod
    def create_instance(self, container: IContainer, wrapper: InternalProvider, path: ResolutionContext) -> Any:
        """Build the value of a provider wrapper, resolving its dependencies.

        Args:
            container: Container that owns the wrapper's state.
            wrapper: Provider wrapper to build.
            path: Current resolution chain.

        Returns:
            The built value.
        """

    @abstractmethod
    async def create_instance_async(
        self, container: IContainer, wrapper: InternalProvider, path: ResolutionContext
    ) -> Any:
        """Asynchronous counterpart of create_instance()."""


class ILifetimeManager(ABC):
    """Abstract interface for the singleton cache of one container."""

    @abstractmethod
    def has(self, wrapper_id: str) -> bool:
        """Return True if an instance is cached for the wrapper id."""

    @abstractmethod
    def get(self, wrapper_id: str) -> Any:
        """Return the cached instance for the wrapper id."""

    @abstractmethod
    def store(self, wrapper: InternalProvider, instance: Any) -> Any:
        """Cache the instance when the wrapper is a singleton; returns the instance."""

    @abstractmethod
    def invalidate(self, wrapper_id: str) -> None:
        """Drop the cached instance of a wrapper id, if any."""

    @abstractmethod
    def items(self) -> Iterator[Tuple[str, Any]]:
        """Iterate over (wrapper id, instance) pairs."""

    @abstractmethod
    def clear_cache(self) -> None:
        """Clear every cached instance."""

from typing import Any, Dict, Iterator, Tuple

from nestwire.domain import ILifetimeManager, InternalProvider


class LifetimeManager(ILifetimeManager):
    """Singleton cache of one container.

    Instances are cached by wrapper id, never by token, because one token may
    have several competing providers across the hierarchy. Transient
    providers are never cached.

    Attributes:
        _singleton_cache: Wrapper id -> instance.
    """

    def __init__(self) -> None:
        """Initialize the lifetime manager with an empty cache."""
        self._singleton_cache: Dict[str, Any] = {}

    def has(self, wrapper_id: str) -> bool:
        return wrapper_id in self._singleton_cache

    def get(self, wrapper_id: str) -> Any:
        return self._singleton_cache[wrapper_id]

    def store(self, wrapper: InternalProvider, instance: Any) -> Any:
        """Cache an instance according to the provider's lifetime.

        Args:
            wrapper: The provider wrapper the instance was built for.
            instance: The built instance.

        Returns:
            The instance, unchanged.

        Example:
            >>> manager.store(wrapper, UserService())
            >>> manager.has(wrapper.id)
            True
        """
        if wrapper.provider.singleton:
            self._singleton_cache[wrapper.id] = instance
        return instance

    def invalidate(self, wrapper_id: str) -> None:
        self._singleton_cache.pop(wrapper_id, None)

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(list(self._singleton_cache.items()))

    def clear_cache(self) -> None:
        """Clear all cached instances.

        Useful for testing or resetting container state.
        """
        self._singleton_cache.clear()

    def __len__(self) -> int:
        return len(self._singleton_cache)

"""Application layer - Provider registry of one container."""

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

from nestwire.application.config_resolver import flatten_config
from nestwire.application.settings import get_settings
from nestwire.domain import (
    ConfigProvider,
    InternalProvider,
    build_provider,
    make_token,
    provider_condition,
    strip_token_namespace,
)

if TYPE_CHECKING:
    from nestwire.application.container import DIContainer

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Token -> providers map of one container, plus its exports table.

    Several providers may coexist under one token; they are told apart at
    resolution time by criteria and ordering. A new registration replaces an
    existing one only when both share priority, type, tags and entity.

    Attributes:
        providers: Token -> provider wrappers registered in the container.
        exports: Token -> wrappers published to importing containers.
    """

    def __init__(self) -> None:
        self.providers: Dict[str, List[InternalProvider]] = {}
        self.exports: Dict[str, List[InternalProvider]] = {}

    def register(self, spec: Any, container: "DIContainer") -> Optional[str]:
        """Register a provider spec on behalf of a container.

        Args:
            spec: Provider model, provider mapping or class.
            container: The owning (real) container.

        Returns:
            The token registered under, or None when the condition was false.

        Raises:
            InvalidProviderError: If the spec is invalid.
        """
        condition = provider_condition(spec)
        if condition is not None and not condition():
            logger.debug(f"Skipping provider {spec!r}: condition is false. DIContainer[{container.container_id}]")
            return None

        provider = build_provider(spec)

        if isinstance(provider, ConfigProvider):
            self.register_config(provider, container)
            return provider.token

        self.insert(InternalProvider(container=container, provider=provider), container)
        return provider.token

    def register_config(self, provider: ConfigProvider, container: "DIContainer") -> List[str]:
        """Flatten a config provider into one provider per leaf path."""
        base_path = strip_token_namespace(provider.token)
        tokens = []

        for path, value in flatten_config(provider.use_config, base_path).items():
            leaf = provider.model_copy(update={"provide": path, "use_config": value, "condition": None})
            self.insert(InternalProvider(container=container, provider=leaf), container)
            tokens.append(leaf.token)

        return tokens

    def insert(self, wrapper: InternalProvider, container: "DIContainer") -> Optional[InternalProvider]:
        """Append a wrapper, replacing a prior one with an equal conflict key.

        Returns:
            The replaced wrapper, if any.
        """
        token = wrapper.token
        token_providers = self.providers.setdefault(token, [])

        replaced = next(
            (
                existing
                for existing in token_providers
                if existing.provider.conflict_key() == wrapper.provider.conflict_key()
            ),
            None,
        )

        if replaced is not None:
            message = (
                f"Provider for {token} with same priority, type, for_entity and tags already exists, replacing it. "
                f"DIContainer[{container.container_id}]"
            )
            if get_settings().warn_on_replace:
                logger.warning(message)
            else:
                logger.debug(message)
            token_providers.remove(replaced)
            container.lifetime_manager.invalidate(replaced.id)

        token_providers.append(wrapper)
        logger.debug(f"Registered {wrapper.provider.kind} provider for {token}. DIContainer[{container.container_id}]")
        return replaced

    def add_exports(self, token: str, wrappers: List[InternalProvider]) -> None:
        self.exports.setdefault(token, []).extend(wrappers)

    def get_exports(self, token: str) -> List[InternalProvider]:
        return list(self.exports.get(token, []))

    def remove(self, identifier: Any) -> List[InternalProvider]:
        """Remove and return every provider registered for an identifier."""
        return self.providers.pop(make_token(identifier), [])

    def all(self, exported: bool = False) -> Iterator[InternalProvider]:
        table = self.exports if exported else self.providers
        for wrappers in list(table.values()):
            yield from wrappers

    def clear(self) -> None:
        self.providers.clear()
        self.exports.clear()

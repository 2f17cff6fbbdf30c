import inspect
import logging
from typing import Any, Dict, Iterator, List, Optional, Set
from uuid import uuid4

from nestwire.application.circular_detector import CircularDependencyDetector
from nestwire.application.config_resolver import ConfigResolver
from nestwire.application.lifetime_manager import LifetimeManager
from nestwire.application.metadata_store import (
    get_constructor_dependencies,
    get_module_metadata,
    get_property_dependencies,
)
from nestwire.application.middleware import AsyncHandler, MiddlewarePipeline, SyncHandler
from nestwire.application.registry import ProviderRegistry
from nestwire.application.resolver import DependencyResolver
from nestwire.application.settings import get_settings
from nestwire.domain import (
    DI_CONTAINER,
    ConfigProvider,
    CriteriaLike,
    IContainer,
    InternalProvider,
    InvalidProviderError,
    ModuleMetadata,
    ModuleMetadataError,
    NoEntitySchemaProviderError,
    NoEntityServiceProviderError,
    NoProviderFoundError,
    NothingToExportError,
    ProviderKind,
    ProviderType,
    ResolutionContext,
    ResolutionCriteria,
    build_criteria,
    build_provider,
    entity_name,
    make_token,
    provider_condition,
    strip_token_namespace,
)

logger = logging.getLogger(__name__)

ProviderTable = Dict[str, List[InternalProvider]]


class DIContainer(IContainer):
    """Hierarchical dependency injection container.

    Owns a provider registry, a singleton cache, an in-flight map and a
    middleware pipeline. Resolution walks from the container up to the root,
    looking at each level's own providers and at its children's exports.

    A container created with ``proxy_for`` is a proxy: its registry, cache,
    in-flight map, children and middleware are those of the target container.
    Importing a module attaches such a proxy to the importer, so the importer
    sees the module's exports but never its private providers.

    Attributes:
        container_id: Identifier of the container.
        parent: Parent container, or None for a root.
        proxy_for: Container this proxy forwards to, or None for a real container.
        _resolver: Component building provider values.
        _config_resolver: Component answering configuration queries.
    """

    _root: Optional["DIContainer"] = None

    def __init__(
        self,
        container_id: Optional[str] = None,
        parent: Optional["DIContainer"] = None,
        proxy_for: Optional["DIContainer"] = None,
    ) -> None:
        """Initialize an empty container.

        Args:
            container_id: Identifier of the container; a random one when omitted.
            parent: Parent container.
            proxy_for: Real container to forward storage to.
        """
        self.container_id = container_id or uuid4().hex
        self.parent = parent
        self.proxy_for = proxy_for
        self._registry = ProviderRegistry()
        self._lifetime_manager = LifetimeManager()
        self._detector = CircularDependencyDetector()
        self._pipeline = MiddlewarePipeline()
        self._child_containers: List["DIContainer"] = []
        self._resolver = DependencyResolver()
        self._config_resolver = ConfigResolver()

    def __repr__(self) -> str:
        return f"DIContainer[{self.container_id}]"

    # Process root

    @classmethod
    def root(cls) -> "DIContainer":
        """Return the process-wide root container, creating it on first access."""
        if DIContainer._root is None:
            DIContainer._root = DIContainer(container_id=get_settings().root_container_id)
            logger.debug(f"Created root container {DIContainer._root.container_id}")
        return DIContainer._root

    @classmethod
    def reset_root(cls) -> None:
        """Clear and drop the root container; the next root() call creates a new one.

        Useful for testing.
        """
        if DIContainer._root is not None:
            DIContainer._root.clear()
            DIContainer._root = None

    # Storage (forwarded by proxies)

    @property
    def target(self) -> "DIContainer":
        """The real container behind this one (itself unless it is a proxy)."""
        current = self
        while current.proxy_for is not None:
            current = current.proxy_for
        return current

    @property
    def is_proxy(self) -> bool:
        return self.proxy_for is not None

    @property
    def registry(self) -> ProviderRegistry:
        return self.target._registry

    @property
    def lifetime_manager(self) -> LifetimeManager:
        return self.target._lifetime_manager

    @property
    def detector(self) -> CircularDependencyDetector:
        return self.target._detector

    @property
    def pipeline(self) -> MiddlewarePipeline:
        return self.target._pipeline

    @property
    def child_containers(self) -> List["DIContainer"]:
        return self.target._child_containers

    # Hierarchy

    def ancestry(self) -> Iterator["DIContainer"]:
        """Yield this container, its parent, and so on up to the root."""
        current: Optional[DIContainer] = self
        while current is not None:
            yield current
            current = current.parent

    def root_of_hierarchy(self) -> "DIContainer":
        top = self
        for top in self.ancestry():
            pass
        return top

    def create_child_container(self, identifier: Optional[str] = None) -> "DIContainer":
        """Create a child scope of this container.

        The child sees every provider of its ancestors; providers registered in
        the child stay invisible to the parent.

        Args:
            identifier: Id of the child container; a random one when omitted.

        Returns:
            The new child container.

        Example:
            >>> request_scope = container.create_child_container("request-42")
            >>> request_scope.register({"provide": RequestContext, "use_value": ctx})
        """
        child = DIContainer(container_id=identifier, parent=self.target)
        self.child_containers.append(child)
        logger.debug(f"Created child container {child.container_id}. DIContainer[{self.container_id}]")
        return child

    def _walk_children(self) -> Iterator["DIContainer"]:
        seen: Set[int] = set()
        pending = list(self.child_containers)
        while pending:
            child = pending.pop(0)
            if id(child) in seen:
                continue
            seen.add(id(child))
            yield child
            pending.extend(child.child_containers)

    def get_child_container_by_id(self, identifier: str) -> Optional["DIContainer"]:
        """Find a descendant whose id starts with identifier (breadth first)."""
        return next((child for child in self._walk_children() if child.container_id.startswith(identifier)), None)

    def has_child_container_by_id(self, identifier: str) -> bool:
        return self.get_child_container_by_id(identifier) is not None

    def remove_child_container_by_id(self, identifier: str) -> bool:
        """Detach every descendant whose id starts with identifier.

        Returns:
            True if at least one container was removed.
        """
        removed = False
        for container in [self, *self._walk_children()]:
            children = container.child_containers
            kept = [child for child in children if not child.container_id.startswith(identifier)]
            if len(kept) != len(children):
                children[:] = kept
                removed = True
        return removed

    def visible_child_tables(self, include_descendants: bool = False) -> Iterator[ProviderTable]:
        """Provider tables of the children that resolution from this level may see.

        Args:
            include_descendants: Expose every descendant's private providers, not only the children's exports.
        """
        if not include_descendants:
            for child in self.child_containers:
                yield child.registry.exports
            return

        for descendant in self._walk_children():
            yield descendant.registry.providers
            yield descendant.registry.exports

    # Registration

    def register(self, provider: Any) -> Optional[str]:
        """Register a provider.

        Args:
            provider: A provider model, a mapping with one of use_class, use_factory,
                use_value, use_config or use_existing, or a class.

        Returns:
            The token registered under, or None when the provider's condition is false.

        Raises:
            InvalidProviderError: If the provider is invalid.

        Example:
            >>> container.register({"provide": "db", "use_factory": create_engine, "deps": ["settings"]})
            >>> container.register({"provide": Cache, "use_class": RedisCache, "priority": 10})
            >>> container.register(UserService)
        """
        return self.registry.register(provider, self.target)

    def register_many(self, providers: List[Any]) -> List[Optional[str]]:
        return [self.register(provider) for provider in providers]

    def register_config_provider(self, provider: Any) -> List[str]:
        """Register a nested configuration, flattened into one provider per leaf path.

        Raises:
            InvalidProviderError: If the spec is not a configuration provider.

        Example:
            >>> container.register_config_provider({"provide": "app", "use_config": {"name": "A", "version": "1.0"}})
            ['nestwire.di.token:app.name', 'nestwire.di.token:app.version']
        """
        condition = provider_condition(provider)
        if condition is not None and not condition():
            return []

        config_provider = build_provider(provider)
        if not isinstance(config_provider, ConfigProvider):
            raise InvalidProviderError(f"Expected a config provider, got {config_provider.kind} provider")
        return self.registry.register_config(config_provider, self.target)

    def register_in_parent(self, provider: Any) -> Optional[str]:
        """Register a provider in the parent container.

        Raises:
            InvalidProviderError: If the container has no parent.
        """
        if self.parent is None:
            raise InvalidProviderError(f"{self!r} has no parent to register {provider!r} in")
        return self.parent.register(provider)

    def register_in_root(self, provider: Any) -> Optional[str]:
        return self.root_of_hierarchy().register(provider)

    def remove_providers_for(self, identifier: Any) -> int:
        """Drop every provider of a token in this container, with their cached instances.

        Returns:
            The number of providers removed.
        """
        removed = self.registry.remove(identifier)
        for wrapper in removed:
            self.lifetime_manager.invalidate(wrapper.id)
        logger.debug(f"Removed {len(removed)} provider(s) for {make_token(identifier)}. DIContainer[{self.container_id}]")
        return len(removed)

    # Selection

    def collect_best_providers_for(
        self, token: Optional[Any], criteria: CriteriaLike = None
    ) -> List[InternalProvider]:
        """Collect, filter and order the candidate providers of a token.

        Walks from this container to the root. At each level the container's
        own providers are taken, plus its children's exports (or every
        descendant's providers with ``include_descendants``). The first
        occurrence of a wrapper wins. Override providers sort first, then
        descending priority; ties keep walk order.

        Args:
            token: Dependency identifier, or None to consider every token.
            criteria: Selection criteria.

        Returns:
            Matching wrappers, best first (possibly empty).
        """
        resolution_criteria = build_criteria(criteria)
        normalized = make_token(token) if token is not None else None
        candidates: Dict[str, InternalProvider] = {}

        def collect(table: ProviderTable) -> None:
            if normalized is not None:
                wrappers = table.get(normalized, [])
            else:
                wrappers = [wrapper for token_wrappers in table.values() for wrapper in token_wrappers]
            for wrapper in wrappers:
                candidates.setdefault(wrapper.id, wrapper)

        for current in self.ancestry():
            collect(current.registry.providers)
            for table in current.visible_child_tables(resolution_criteria.include_descendants):
                collect(table)

        matching = [wrapper for wrapper in candidates.values() if resolution_criteria.matches(wrapper.provider)]
        return sorted(matching, key=lambda wrapper: (not wrapper.provider.override, -wrapper.provider.priority))

    def has(self, dependency: Any, criteria: CriteriaLike = None) -> bool:
        """Return True if a provider for the dependency is reachable from this container."""
        if self._is_container_identifier(dependency):
            return True
        return bool(self.collect_best_providers_for(dependency, criteria))

    def _is_container_identifier(self, dependency: Any) -> bool:
        if inspect.isclass(dependency):
            return issubclass(dependency, IContainer)
        return isinstance(dependency, str) and dependency in (
            DI_CONTAINER,
            strip_token_namespace(DI_CONTAINER),
            make_token(IContainer),
            make_token(DIContainer),
        )

    def _best_provider(self, dependency: Any, criteria: ResolutionCriteria) -> InternalProvider:
        best = self.collect_best_providers_for(dependency, criteria)
        if not best:
            raise NoProviderFoundError(make_token(dependency), self.container_id, criteria.describe())
        return best[0]

    # Resolution

    def resolve(self, dependency: Any, criteria: CriteriaLike = None, path: Optional[ResolutionContext] = None) -> Any:
        """Resolve the best provider for a dependency.

        Args:
            dependency: String, class or token. DI_CONTAINER (or the container class) yields this container.
            criteria: Optional selection criteria (tags, type, priority, for_entity, include_descendants).
            path: Resolution chain of an enclosing resolution.

        Returns:
            The provider's value.

        Raises:
            NoProviderFoundError: If nothing matches.
            CircularDependencyError: If the dependency cannot be built without itself.

        Example:
            >>> service = container.resolve(UserService)
            >>> cache = container.resolve("cache", {"tags": {"redis"}, "priority": {"greater_than": 5}})
        """
        if self._is_container_identifier(dependency):
            return self
        wrapper = self._best_provider(dependency, build_criteria(criteria))
        return self.resolve_provider_value(wrapper, path)

    async def resolve_async(
        self, dependency: Any, criteria: CriteriaLike = None, path: Optional[ResolutionContext] = None
    ) -> Any:
        """Asynchronous counterpart of resolve(); awaits factories, hooks and async middleware.

        Example:
            >>> engine = await container.resolve_async("db-engine")
        """
        if self._is_container_identifier(dependency):
            return self
        wrapper = self._best_provider(dependency, build_criteria(criteria))
        return await self.resolve_provider_value_async(wrapper, path)

    def resolve_provider_value(self, wrapper: InternalProvider, path: Optional[ResolutionContext] = None) -> Any:
        """Produce the value of one wrapper.

        Exported wrappers forward to the original owner, and wrappers owned by
        another container are built there, so the cache and in-flight state
        always live with the owner. Cached singletons short-circuit the
        middleware pipeline.
        """
        path = path if path is not None else ResolutionContext()

        if wrapper.delegate is not None:
            return wrapper.delegate.container.resolve_provider_value(wrapper.delegate, path)
        if wrapper.container is not self:
            return wrapper.container.resolve_provider_value(wrapper, path)

        if self.lifetime_manager.has(wrapper.id):
            return self.lifetime_manager.get(wrapper.id)

        entry = self.detector.check(wrapper, path, self.container_id)
        if entry is not None:
            if entry.has_slot:
                return entry.slot
            self.detector.raise_unavailable(wrapper, path, self.container_id)

        return self.pipeline.apply(lambda: self._resolver.create_instance(self, wrapper, path))

    async def resolve_provider_value_async(
        self, wrapper: InternalProvider, path: Optional[ResolutionContext] = None
    ) -> Any:
        """Asynchronous counterpart of resolve_provider_value().

        A singleton being built by a concurrent branch is awaited rather than
        built twice; a transient is built again. Waiting on a build that
        itself waits for one of the caller's builds raises
        CircularDependencyError.
        """
        path = path if path is not None else ResolutionContext()

        if wrapper.delegate is not None:
            return await wrapper.delegate.container.resolve_provider_value_async(wrapper.delegate, path)
        if wrapper.container is not self:
            return await wrapper.container.resolve_provider_value_async(wrapper, path)

        if self.lifetime_manager.has(wrapper.id):
            return self.lifetime_manager.get(wrapper.id)

        entry = self.detector.check(wrapper, path, self.container_id)
        if entry is not None:
            if entry.has_slot:
                return entry.slot
            if wrapper.provider.singleton:
                return await self.detector.wait(entry, wrapper, self.container_id)

        return await self.pipeline.apply_async(lambda: self._resolver.create_instance_async(self, wrapper, path))

    def resolve_config(self, query: str = "", criteria: CriteriaLike = None) -> Any:
        """Resolve a configuration path (``*`` segments allowed) merged across the hierarchy.

        Example:
            >>> container.resolve_config("app.*.host")
        """
        return self._config_resolver.resolve(self, query, criteria)

    # Entities

    def _entity_criteria(self, entity: Any, provider_type: ProviderType, criteria: CriteriaLike) -> ResolutionCriteria:
        return build_criteria(criteria, type=provider_type, for_entity=entity_name(entity))

    def _best_entity_provider(self, entity: Any, provider_type: ProviderType, criteria: CriteriaLike) -> InternalProvider:
        entity_criteria = self._entity_criteria(entity, provider_type, criteria)
        best = self.collect_best_providers_for(None, entity_criteria)
        if best:
            return best[0]

        error = NoEntityServiceProviderError if provider_type == ProviderType.SERVICE else NoEntitySchemaProviderError
        raise error(entity_name(entity), self.container_id, entity_criteria.describe())

    def resolve_entity_service(
        self, entity: Any, criteria: CriteriaLike = None, path: Optional[ResolutionContext] = None
    ) -> Any:
        """Resolve the best service provider associated with an entity, whatever its token.

        Raises:
            NoEntityServiceProviderError: If no service provider is associated with the entity.
        """
        return self.resolve_provider_value(self._best_entity_provider(entity, ProviderType.SERVICE, criteria), path)

    def resolve_entity_schema(
        self, entity: Any, criteria: CriteriaLike = None, path: Optional[ResolutionContext] = None
    ) -> Any:
        """Resolve the best schema provider associated with an entity.

        Raises:
            NoEntitySchemaProviderError: If no schema provider is associated with the entity.
        """
        return self.resolve_provider_value(self._best_entity_provider(entity, ProviderType.SCHEMA, criteria), path)

    async def resolve_entity_service_async(
        self, entity: Any, criteria: CriteriaLike = None, path: Optional[ResolutionContext] = None
    ) -> Any:
        wrapper = self._best_entity_provider(entity, ProviderType.SERVICE, criteria)
        return await self.resolve_provider_value_async(wrapper, path)

    async def resolve_entity_schema_async(
        self, entity: Any, criteria: CriteriaLike = None, path: Optional[ResolutionContext] = None
    ) -> Any:
        wrapper = self._best_entity_provider(entity, ProviderType.SCHEMA, criteria)
        return await self.resolve_provider_value_async(wrapper, path)

    def has_entity_service(self, entity: Any, criteria: CriteriaLike = None) -> bool:
        entity_criteria = self._entity_criteria(entity, ProviderType.SERVICE, criteria)
        return bool(self.collect_best_providers_for(None, entity_criteria))

    def has_entity_schema(self, entity: Any, criteria: CriteriaLike = None) -> bool:
        entity_criteria = self._entity_criteria(entity, ProviderType.SCHEMA, criteria)
        return bool(self.collect_best_providers_for(None, entity_criteria))

    # Modules

    def module(self, target: type) -> Dict[str, Any]:
        """Import a module class into this container.

        The module's own container is created on first import; the importer
        gets a proxy child exposing the module's exports. Importing the same
        module again reuses the proxy.

        Args:
            target: Class decorated with ``@di_module``.

        Returns:
            ``{"identifier": <module token>, "container": <proxy container>}``.

        Raises:
            ModuleMetadataError: If the class has no module metadata.
            NothingToExportError: If the module exports a token nothing provides.

        Example:
            >>> users = container.module(UsersModule)["container"]
            >>> users.resolve(UserService)
        """
        metadata = get_module_metadata(target)
        if metadata is None:
            raise ModuleMetadataError(getattr(target, "__name__", repr(target)), self.container_id)

        module_container = self._materialize_module(metadata)
        return {"identifier": metadata.identifier, "container": self._attach_proxy(metadata, module_container)}

    def _materialize_module(self, metadata: ModuleMetadata) -> "DIContainer":
        if metadata.container is not None:
            return metadata.container  # type: ignore[return-value]

        parent = self._provided_by_container(metadata)
        container = DIContainer(container_id=metadata.identifier, parent=parent)
        # Set before imports so that an import cycle reuses this container.
        metadata.container = container

        for provider in metadata.providers:
            container.register(provider)
        for imported in metadata.imports:
            container.module(imported)
        for identifier in metadata.exports:
            container.export_providers_for(identifier)

        logger.info(
            f"Materialized module {strip_token_namespace(metadata.identifier)} under {parent!r}. "
            f"DIContainer[{self.container_id}]"
        )
        return container

    def _provided_by_container(self, metadata: ModuleMetadata) -> "DIContainer":
        provided_by = metadata.provided_by

        if provided_by is None:
            return self.target
        if provided_by == "ROOT" or provided_by == get_settings().root_container_id:
            return DIContainer.root()
        if isinstance(provided_by, DIContainer):
            return provided_by.target
        provider_module = get_module_metadata(provided_by)
        if provider_module is not None:
            return self._materialize_module(provider_module)

        raise ModuleMetadataError(
            strip_token_namespace(metadata.identifier),
            self.container_id,
            f"Invalid provided_by {provided_by!r}; expected 'ROOT', a container or a module class",
        )

    def _attach_proxy(self, metadata: ModuleMetadata, module_container: "DIContainer") -> "DIContainer":
        importer = self.target
        proxy_id = f"{metadata.identifier}:ProxyIn[{importer.container_id}]"

        for child in list(importer.child_containers):
            if child.container_id != proxy_id:
                continue
            if child.proxy_for is module_container:
                return child
            logger.warning(f"Replacing stale proxy {proxy_id}. DIContainer[{importer.container_id}]")
            importer.child_containers.remove(child)

        proxy = DIContainer(container_id=proxy_id, parent=importer, proxy_for=module_container)
        importer.child_containers.append(proxy)
        return proxy

    def export_providers_for(self, identifier: Any) -> None:
        """Publish the providers of a token into this container's exports.

        Candidates are the container's own providers and its imported modules'
        exports; configuration paths below the token are exported too. Each
        export is a new record forwarding to the original provider, whose
        owner keeps the cache.

        Raises:
            NothingToExportError: If no provider matches.
        """
        target = self.target
        token = make_token(identifier)
        prefix = f"{strip_token_namespace(token)}."
        found: Dict[str, InternalProvider] = {}

        def collect(table: ProviderTable) -> None:
            for key, wrappers in table.items():
                for wrapper in wrappers:
                    is_config_path = (
                        wrapper.provider.kind == ProviderKind.CONFIG and strip_token_namespace(key).startswith(prefix)
                    )
                    if key == token or is_config_path:
                        origin = wrapper.delegate or wrapper
                        found.setdefault(origin.id, origin)

        collect(target.registry.providers)
        for table in target.visible_child_tables():
            collect(table)

        if not found:
            raise NothingToExportError(token, target.container_id)

        for origin in found.values():
            already_exported = any(
                exported.delegate is not None and exported.delegate.id == origin.id
                for exported in target.registry.get_exports(origin.token)
            )
            if already_exported:
                continue
            # Resolution goes through the delegate; the provider record only drives selection.
            exported = InternalProvider(container=target, provider=origin.provider, delegate=origin)
            target.registry.add_exports(origin.token, [exported])
            logger.debug(f"Exported {origin.token}. DIContainer[{target.container_id}]")

    # Middleware

    def use_middleware(self, middleware: SyncHandler, order: int = 1) -> None:
        """Wrap synchronous instance creation with middleware (ascending order).

        Example:
            >>> container.use_middleware(lambda next_: next_(), order=0)
        """
        self.pipeline.use(middleware, order)

    def use_middleware_async(self, middleware: AsyncHandler, order: int = 1) -> None:
        self.pipeline.use_async(middleware, order)

    # Introspection

    def create_token(self, identifier: Any) -> str:
        return make_token(identifier)

    def get_class_dependencies(self, target: type) -> Dict[str, List[Any]]:
        """Constructor and property injection requests of a class."""
        return {
            "constructor": get_constructor_dependencies(target),
            "properties": get_property_dependencies(target),
        }

    def log_providers(self) -> None:
        logger.info(f"Providers of DIContainer[{self.container_id}]:")
        for token, wrappers in self.registry.providers.items():
            for wrapper in wrappers:
                provider = wrapper.provider
                logger.info(
                    f"  {token} [{provider.kind}] id={wrapper.id} priority={provider.priority} "
                    f"type={provider.type} tags={sorted(provider.tags)} singleton={provider.singleton}"
                )
        for token, wrappers in self.registry.exports.items():
            logger.info(f"  exported {token} x{len(wrappers)}")

    def log_cache(self) -> None:
        logger.info(f"Singleton cache of DIContainer[{self.container_id}]:")
        for wrapper_id, instance in self.lifetime_manager.items():
            logger.info(f"  {wrapper_id}: {type(instance).__name__}")

    def log_child_containers(self, depth: int = 0) -> None:
        if depth == 0:
            logger.info(f"Child containers of DIContainer[{self.container_id}]:")
        for child in self.child_containers:
            suffix = f" -> {child.proxy_for.container_id}" if child.proxy_for is not None else ""
            logger.info(f"  {'  ' * depth}{child.container_id}{suffix}")
            if child.proxy_for is None:
                child.log_child_containers(depth + 1)

    # Teardown

    def clear(self, clear_child_containers: bool = True) -> None:
        """Clear providers, exports, cached instances and in-flight state.

        Proxy children are detached instead of cleared, leaving module
        containers shared with other importers untouched. Clearing a proxy
        detaches it from its importer.

        Args:
            clear_child_containers: Also clear real child containers and drop every child.
        """
        if self.is_proxy:
            if self.parent is not None and self in self.parent.child_containers:
                self.parent.child_containers.remove(self)
            return

        if clear_child_containers:
            for child in list(self._child_containers):
                if not child.is_proxy:
                    child.clear(clear_child_containers=True)
            self._child_containers.clear()
        else:
            self._child_containers[:] = [child for child in self._child_containers if not child.is_proxy]

        self._registry.clear()
        self._lifetime_manager.clear_cache()
        self._detector.clear()

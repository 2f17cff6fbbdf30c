import asyncio
import inspect
from typing import TYPE_CHECKING, Any, Dict, List, Sequence, Tuple

from nestwire.application.metadata_store import (
    Inject,
    get_constructor_dependencies,
    get_on_init_hook,
    get_property_dependencies,
)
from nestwire.domain import (
    MISSING,
    AliasProvider,
    ClassProvider,
    ConfigProvider,
    FactoryProvider,
    InitializationMethodError,
    InitializationMethodTypeError,
    InjectOptions,
    InternalProvider,
    InvalidDependencyCriteriaError,
    InvalidProviderError,
    IResolver,
    NoProviderFoundError,
    ParameterInjection,
    ProviderType,
    ResolutionContext,
    ValueProvider,
    make_token,
)

if TYPE_CHECKING:
    from nestwire.application.container import DIContainer


def _factory_dependency(dependency: Any) -> InjectOptions:
    if isinstance(dependency, Inject):
        return dependency.options
    if isinstance(dependency, InjectOptions):
        return dependency
    return InjectOptions(token=make_token(dependency))


def _call_arguments(dependencies: Sequence[ParameterInjection], values: Sequence[Any]) -> Tuple[List[Any], Dict[str, Any]]:
    args: List[Any] = []
    kwargs: Dict[str, Any] = {}
    for dependency, value in zip(dependencies, values):
        if dependency.name is None:
            args.append(value)
        else:
            kwargs[dependency.name] = value
    return args, kwargs


def _discard_awaitable(value: Any) -> None:
    # Avoids "coroutine was never awaited" warnings for rejected results.
    if inspect.iscoroutine(value):
        value.close()


class DependencyResolver(IResolver):
    """Builds provider values, resolving their dependencies through the container.

    Class providers are built in two phases: an uninitialised instance is
    allocated with ``__new__`` and registered as in flight, the constructor
    dependencies are resolved (a cycle back to this class receives the
    allocated instance), then ``__init__`` runs on that same object. Holders of
    the early reference therefore see the finished instance. Classes with a
    custom ``__new__`` are built in one step and cannot take part in a cycle.

    Property injection and the on-init hook run after construction and
    singleton caching, for class providers only.
    """

    # Dependencies

    def resolve_dependency(self, container: "DIContainer", options: InjectOptions, path: ResolutionContext) -> Any:
        """Resolve one injection request, substituting its default when allowed.

        Args:
            container: Container the dependency is looked up from.
            options: The injection request.
            path: Current resolution chain.

        Returns:
            The resolved value, or the declared default (None when only optional)
            if no provider is found.

        Raises:
            NoProviderFoundError: If nothing matches and the dependency is required.
            InvalidDependencyCriteriaError: If for_entity is combined with a type other
                than service or schema.
        """
        try:
            if options.is_config:
                return container.resolve_config(options.token, options.criteria())
            if options.for_entity is not None:
                if options.type == ProviderType.SERVICE:
                    return container.resolve_entity_service(options.for_entity, options.criteria(), path)
                if options.type == ProviderType.SCHEMA:
                    return container.resolve_entity_schema(options.for_entity, options.criteria(), path)
                raise InvalidDependencyCriteriaError(options.criteria().describe())
            return container.resolve(options.token, options.criteria(), path)
        except NoProviderFoundError:
            if options.optional or options.has_default:
                return options.fallback
            raise

    async def resolve_dependency_async(
        self, container: "DIContainer", options: InjectOptions, path: ResolutionContext
    ) -> Any:
        """Asynchronous counterpart of resolve_dependency()."""
        try:
            if options.is_config:
                return container.resolve_config(options.token, options.criteria())
            if options.for_entity is not None:
                if options.type == ProviderType.SERVICE:
                    return await container.resolve_entity_service_async(options.for_entity, options.criteria(), path)
                if options.type == ProviderType.SCHEMA:
                    return await container.resolve_entity_schema_async(options.for_entity, options.criteria(), path)
                raise InvalidDependencyCriteriaError(options.criteria().describe())
            return await container.resolve_async(options.token, options.criteria(), path)
        except NoProviderFoundError:
            if options.optional or options.has_default:
                return options.fallback
            raise

    async def _gather_dependencies(
        self, container: "DIContainer", dependencies: Sequence[InjectOptions], path: ResolutionContext
    ) -> List[Any]:
        # Every concurrently started branch gets its own copy of the chain.
        return list(
            await asyncio.gather(
                *(self.resolve_dependency_async(container, dependency, path.fork()) for dependency in dependencies)
            )
        )

    # Synchronous creation

    def create_instance(self, container: "DIContainer", wrapper: InternalProvider, path: ResolutionContext) -> Any:
        """Build the value of a provider wrapper.

        Args:
            container: The real container owning the wrapper.
            wrapper: Provider wrapper to build.
            path: Current resolution chain; the wrapper is pushed for the duration of the build.

        Returns:
            The built value, stored in the singleton cache when applicable.

        Raises:
            CircularDependencyError: If the wrapper is already on the chain.
            InvalidProviderError: If a factory returns an awaitable.
        """
        provider = wrapper.provider

        if isinstance(provider, ValueProvider):
            return container.lifetime_manager.store(wrapper, provider.use_value)
        if isinstance(provider, ConfigProvider):
            return container.lifetime_manager.store(wrapper, provider.use_config)

        path.push(wrapper.id, wrapper.token, container.container_id)
        try:
            if isinstance(provider, ClassProvider):
                return self._create_class(container, wrapper, provider, path)
            if isinstance(provider, FactoryProvider):
                return self._create_from_factory(container, wrapper, provider, path)
            if isinstance(provider, AliasProvider):
                return self._create_alias(container, wrapper, provider, path)
            raise InvalidProviderError(f"Unsupported provider kind {provider.kind} for {wrapper.token}")
        finally:
            path.pop()

    def _create_class(
        self, container: "DIContainer", wrapper: InternalProvider, provider: ClassProvider, path: ResolutionContext
    ) -> Any:
        cls = provider.use_class
        two_phase = cls.__new__ is object.__new__
        slot = cls.__new__(cls) if two_phase else MISSING
        entry = container.detector.begin(wrapper, slot)

        try:
            dependencies = get_constructor_dependencies(cls)
            values = [self.resolve_dependency(container, dependency, path) for dependency in dependencies]
            args, kwargs = _call_arguments(dependencies, values)

            if two_phase:
                cls.__init__(slot, *args, **kwargs)
                instance = slot
            else:
                instance = cls(*args, **kwargs)

            container.lifetime_manager.store(wrapper, instance)
            for dependency in get_property_dependencies(cls):
                setattr(instance, dependency.property_name, self.resolve_dependency(container, dependency, path))
            self._run_on_init(container, cls, instance)
        except BaseException as e:
            container.lifetime_manager.invalidate(wrapper.id)
            container.detector.fail(entry, e)
            raise

        container.detector.finish(entry, instance)
        return instance

    def _create_from_factory(
        self, container: "DIContainer", wrapper: InternalProvider, provider: FactoryProvider, path: ResolutionContext
    ) -> Any:
        entry = container.detector.begin(wrapper)

        try:
            values = [
                self.resolve_dependency(container, _factory_dependency(dependency), path) for dependency in provider.deps
            ]
            value = provider.use_factory(*values)
            if inspect.isawaitable(value):
                _discard_awaitable(value)
                raise InvalidProviderError(
                    f"Factory for {wrapper.token} returned an awaitable; resolve it with resolve_async()"
                )
        except BaseException as e:
            container.detector.fail(entry, e)
            raise

        container.detector.finish(entry, value)
        return container.lifetime_manager.store(wrapper, value)

    def _create_alias(
        self, container: "DIContainer", wrapper: InternalProvider, provider: AliasProvider, path: ResolutionContext
    ) -> Any:
        entry = container.detector.begin(wrapper)

        try:
            value = container.resolve(provider.use_existing, path=path)
        except BaseException as e:
            container.detector.fail(entry, e)
            raise

        container.detector.finish(entry, value)
        return container.lifetime_manager.store(wrapper, value)

    def _run_on_init(self, container: "DIContainer", cls: type, instance: Any) -> None:
        hook = self._on_init_hook(container, cls, instance)
        if hook is None:
            return

        try:
            result = hook()
        except Exception as e:
            raise InitializationMethodError(cls.__name__, str(e), container.container_id) from e

        if inspect.isawaitable(result):
            _discard_awaitable(result)
            raise InitializationMethodError(
                cls.__name__, "on-init hook is asynchronous; resolve it with resolve_async()", container.container_id
            )

    def _on_init_hook(self, container: "DIContainer", cls: type, instance: Any) -> Any:
        method_name = get_on_init_hook(cls)
        if method_name is None:
            return None

        hook = getattr(instance, method_name, None)
        if not callable(hook):
            raise InitializationMethodTypeError(method_name, cls.__name__, container.container_id)
        return hook

    # Asynchronous creation

    async def create_instance_async(
        self, container: "DIContainer", wrapper: InternalProvider, path: ResolutionContext
    ) -> Any:
        """Asynchronous counterpart of create_instance().

        Constructor (and factory) dependencies are resolved concurrently;
        awaitable factory results and asynchronous on-init hooks are awaited.
        """
        provider = wrapper.provider

        if isinstance(provider, ValueProvider):
            return container.lifetime_manager.store(wrapper, provider.use_value)
        if isinstance(provider, ConfigProvider):
            return container.lifetime_manager.store(wrapper, provider.use_config)

        path.push(wrapper.id, wrapper.token, container.container_id)
        try:
            if isinstance(provider, ClassProvider):
                return await self._create_class_async(container, wrapper, provider, path)
            if isinstance(provider, FactoryProvider):
                return await self._create_from_factory_async(container, wrapper, provider, path)
            if isinstance(provider, AliasProvider):
                return await self._create_alias_async(container, wrapper, provider, path)
            raise InvalidProviderError(f"Unsupported provider kind {provider.kind} for {wrapper.token}")
        finally:
            path.pop()

    async def _create_class_async(
        self, container: "DIContainer", wrapper: InternalProvider, provider: ClassProvider, path: ResolutionContext
    ) -> Any:
        cls = provider.use_class
        two_phase = cls.__new__ is object.__new__
        slot = cls.__new__(cls) if two_phase else MISSING
        entry = container.detector.begin(wrapper, slot)

        try:
            dependencies = get_constructor_dependencies(cls)
            values = await self._gather_dependencies(container, dependencies, path)
            args, kwargs = _call_arguments(dependencies, values)

            if two_phase:
                cls.__init__(slot, *args, **kwargs)
                instance = slot
            else:
                instance = cls(*args, **kwargs)

            container.lifetime_manager.store(wrapper, instance)
            # One at a time, in declaration order.
            for dependency in get_property_dependencies(cls):
                value = await self.resolve_dependency_async(container, dependency, path)
                setattr(instance, dependency.property_name, value)
            await self._run_on_init_async(container, cls, instance)
        except BaseException as e:
            container.lifetime_manager.invalidate(wrapper.id)
            container.detector.fail(entry, e)
            raise

        container.detector.finish(entry, instance)
        return instance

    async def _create_from_factory_async(
        self, container: "DIContainer", wrapper: InternalProvider, provider: FactoryProvider, path: ResolutionContext
    ) -> Any:
        entry = container.detector.begin(wrapper)

        try:
            values = await self._gather_dependencies(
                container, [_factory_dependency(dependency) for dependency in provider.deps], path
            )
            value = provider.use_factory(*values)
            if inspect.isawaitable(value):
                value = await value
        except BaseException as e:
            container.detector.fail(entry, e)
            raise

        container.detector.finish(entry, value)
        return container.lifetime_manager.store(wrapper, value)

    async def _create_alias_async(
        self, container: "DIContainer", wrapper: InternalProvider, provider: AliasProvider, path: ResolutionContext
    ) -> Any:
        entry = container.detector.begin(wrapper)

        try:
            value = await container.resolve_async(provider.use_existing, path=path)
        except BaseException as e:
            container.detector.fail(entry, e)
            raise

        container.detector.finish(entry, value)
        return container.lifetime_manager.store(wrapper, value)

    async def _run_on_init_async(self, container: "DIContainer", cls: type, instance: Any) -> None:
        hook = self._on_init_hook(container, cls, instance)
        if hook is None:
            return

        try:
            result = hook()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            raise InitializationMethodError(cls.__name__, str(e), container.container_id) from e

"""Application layer - Class-level registration helpers.

Each helper records metadata or registers a provider through an ordinary
call made while the class is being defined.

Example:
    >>> @injectable(provide="user-service", priority=5)
    ... class UserService:
    ...     audit = inject(AuditLog, optional=True)
    ...
    ...     def __init__(self, repo=inject("user-repository"), settings=inject_config("app.users")):
    ...         self.repo = repo
    ...         self.settings = settings
    ...
    ...     @on_init
    ...     def warm_up(self):
    ...         self.repo.load()
"""

from typing import Any, Callable, Iterable, Optional, TypeVar

from nestwire.application.container import DIContainer
from nestwire.application.metadata_store import (
    Inject,
    get_module_metadata,
    register_module_metadata,
    register_on_init_hook,
    update_module_metadata,
)
from nestwire.application.settings import get_settings
from nestwire.domain import DI_CONTAINER, BaseProvider, InvalidProviderError, ProviderType, build_provider

T = TypeVar("T", bound=type)


def inject(token: Any, **options: Any) -> Any:
    """Request injection of a dependency.

    Args:
        token: Dependency identifier (string, class or token).
        **options: optional, default, tags, type, priority, for_entity.

    Returns:
        An Inject marker, to be used as a parameter default or class attribute.
    """
    return Inject(token, **options)


def inject_config(path: str, **options: Any) -> Any:
    """Request injection of a configuration path (``*`` segments allowed)."""
    return Inject(path, is_config=True, **options)


def inject_container() -> Any:
    """Request injection of the container building the instance."""
    return Inject(DI_CONTAINER)


def inject_entity_service(entity: Any, **options: Any) -> Any:
    """Request the best service provider associated with an entity."""
    return Inject(entity, for_entity=entity, type=ProviderType.SERVICE, **options)


def inject_entity_schema(entity: Any, **options: Any) -> Any:
    """Request the best schema provider associated with an entity."""
    return Inject(entity, for_entity=entity, type=ProviderType.SCHEMA, **options)


class on_init:
    """Method decorator marking the hook run once per instance after injection.

    Example:
        >>> class Cache:
        ...     @on_init
        ...     async def connect(self):
        ...         await self.client.ping()
    """

    def __init__(self, method: Callable[..., Any]) -> None:
        self.method = method

    def __set_name__(self, owner: type, name: str) -> None:
        register_on_init_hook(owner, name)
        setattr(owner, name, self.method)


def register_injectable(provider: BaseProvider, provided_in: Any = None) -> None:
    """Register a class provider where ``provided_in`` points.

    Args:
        provider: The class provider.
        provided_in: None or "ROOT" for the root container, a container, or a module class.

    Raises:
        InvalidProviderError: If provided_in is none of the above.
    """
    if provided_in is None or provided_in == "ROOT" or provided_in == get_settings().root_container_id:
        DIContainer.root().register(provider)
        return

    if isinstance(provided_in, DIContainer):
        provided_in.register(provider)
        return

    metadata = get_module_metadata(provided_in)
    if metadata is not None:
        update_module_metadata(metadata, providers=[provider])
        return

    raise InvalidProviderError(
        f"Cannot register {provider.token}: provided_in must be 'ROOT', a container or a module class, "
        f"got {provided_in!r}"
    )


def injectable(
    provide: Any = None,
    *,
    provided_in: Any = None,
    type: ProviderType = ProviderType.SERVICE,
    **options: Any,
) -> Callable[[T], T]:
    """Class decorator registering the class as a class provider.

    Args:
        provide: Identifier to register under; the class itself when omitted.
        provided_in: "ROOT" (default), a container, or a module class.
        type: Provider type.
        **options: singleton, priority, tags, override, for_entity, condition.

    Raises:
        InvalidProviderError: If the options are invalid or provided_in is unusable.

    Example:
        >>> @injectable(provided_in=UsersModule, for_entity="User")
        ... class UserService:
        ...     ...
    """

    def decorator(cls: T) -> T:
        provider = build_provider(
            {"provide": provide if provide is not None else cls, "use_class": cls, "type": type, **options}
        )
        register_injectable(provider, provided_in)
        return cls

    return decorator


def di_module(
    imports: Optional[Iterable[Any]] = None,
    exports: Optional[Iterable[Any]] = None,
    providers: Optional[Iterable[Any]] = None,
    provided_by: Any = None,
) -> Callable[[T], T]:
    """Class decorator declaring a module.

    Args:
        imports: Module classes whose exports are visible inside the module.
        exports: Identifiers re-published to containers importing the module.
        providers: Providers registered in the module's own container.
        provided_by: "ROOT", a container or a module class the module's container nests under.

    Example:
        >>> @di_module(providers=[UserService, {"provide": "users-table", "use_value": "users"}],
        ...            exports=[UserService])
        ... class UsersModule:
        ...     pass
        >>> DIContainer.root().module(UsersModule)
    """

    def decorator(cls: T) -> T:
        options = {
            "imports": list(imports) if imports is not None else None,
            "exports": list(exports) if exports is not None else None,
            "providers": list(providers) if providers is not None else None,
            "provided_by": provided_by,
        }
        register_module_metadata(cls, **{key: value for key, value in options.items() if value is not None})
        return cls

    return decorator


__all__ = [
    "Inject",
    "di_module",
    "inject",
    "inject_config",
    "inject_container",
    "inject_entity_schema",
    "inject_entity_service",
    "injectable",
    "on_init",
    "register_injectable",
]

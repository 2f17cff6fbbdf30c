import functools
import inspect
from typing import Any, Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from nestwire.application import DIContainer
from nestwire.domain import CriteriaLike, IContainer


def create_fastapi_dependency(
    container: IContainer, token: Any, criteria: CriteriaLike = None
) -> Callable[[], Awaitable[Any]]:
    """Create a FastAPI Depends() callable that resolves from the DI container.

    Resolution goes through the asynchronous path, so async factories and
    on-init hooks are awaited. The lifetime of the value follows its provider
    (singleton or transient).

    Args:
        container: The DI container to resolve dependencies from.
        token: Dependency identifier (string, class or token).
        criteria: Optional selection criteria.

    Returns:
        A callable that FastAPI can use with Depends().

    Example:
        >>> container = DIContainer()
        >>> container.register({"provide": UserRepository, "use_class": SqlUserRepository})
        >>>
        >>> get_user_repo = create_fastapi_dependency(container, UserRepository)
        >>>
        >>> @app.get("/users")
        >>> async def list_users(repo: UserRepository = Depends(get_user_repo)):
        ...     return await repo.get_all()
    """

    async def dependency() -> Any:
        """Resolve the dependency from the container."""
        return await container.resolve_async(token, criteria)

    return dependency


def create_scoped_dependency(token: Any, criteria: CriteriaLike = None) -> Callable[[Request], Awaitable[Any]]:
    """Create a FastAPI dependency that resolves from the request-scoped container.

    Requires the ScopedContainerMiddleware to be installed.

    Args:
        token: Dependency identifier to resolve from the scoped container.
        criteria: Optional selection criteria.

    Returns:
        A callable that resolves from the request-scoped container.

    Example:
        >>> app.add_middleware(ScopedContainerMiddleware, container=container)
        >>>
        >>> get_request_context = create_scoped_dependency(RequestContext)
        >>>
        >>> @app.get("/process")
        >>> async def process_request(ctx: RequestContext = Depends(get_request_context)):
        ...     return {"request_id": ctx.request_id}
    """

    async def scoped_dependency(request: Request) -> Any:
        """Resolve from the request's scoped container."""
        if not hasattr(request.state, "di_container"):
            raise RuntimeError(
                "Request does not have a scoped DI container. Did you forget to add ScopedContainerMiddleware?"
            )
        scoped_container: IContainer = request.state.di_container
        return await scoped_container.resolve_async(token, criteria)

    return scoped_dependency


class ScopedContainerMiddleware(BaseHTTPMiddleware):
    """Middleware that creates a child DI container for each request.

    The child container is accessible via ``request.state.di_container`` and
    has the current ``Request`` registered as a value. Providers registered in
    it (and the singletons they produce) live for the duration of the request.

    Attributes:
        container: The parent DI container to create scopes from.

    Example:
        >>> container = DIContainer()
        >>> container.register({"provide": RequestContext, "use_class": RequestContext})
        >>>
        >>> app = FastAPI()
        >>> app.add_middleware(ScopedContainerMiddleware, container=container)
    """

    def __init__(self, app: FastAPI, container: DIContainer):
        """Initialize the middleware with a parent container.

        Args:
            app: The FastAPI/Starlette application.
            container: The parent DI container to create scopes from.
        """
        super().__init__(app)
        self.container = container

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        """Create a scoped container for the request and execute the endpoint.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or endpoint handler.

        Returns:
            The response from the endpoint.
        """
        scoped_container = self.container.create_child_container(f"request-{uuid4().hex}")
        scoped_container.register({"provide": Request, "use_value": request})
        request.state.di_container = scoped_container

        try:
            return await call_next(request)
        finally:
            self.container.remove_child_container_by_id(scoped_container.container_id)
            scoped_container.clear()


def inject_dependencies(container: IContainer, **tokens: Any) -> Callable:
    """Decorator that injects dependencies into a FastAPI endpoint function.

    The named parameters are resolved from the container on every call and
    hidden from FastAPI's signature inspection, so they are never read from
    the request.

    Args:
        container: The DI container to resolve from.
        **tokens: Parameter name -> dependency identifier.

    Returns:
        A decorator function.

    Example:
        >>> @app.get("/users")
        >>> @inject_dependencies(container, user_service=UserService, audit="audit-log")
        >>> async def list_users(limit: int, user_service: UserService, audit: AuditLog):
        ...     audit.record("list-users")
        ...     return await user_service.get_all(limit)
    """

    def decorator(func: Callable) -> Callable:
        """Wrap the function with dependency injection logic."""
        signature = inspect.signature(func)
        exposed = [param for name, param in signature.parameters.items() if name not in tokens]

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            """Resolve dependencies and call the original function."""
            for param_name, token in tokens.items():
                if param_name not in kwargs:
                    kwargs[param_name] = await container.resolve_async(token)

            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

        wrapper.__signature__ = signature.replace(parameters=exposed)  # type: ignore[attr-defined]
        return wrapper

    return decorator

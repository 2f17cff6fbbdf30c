"""Application layer - Interceptor chain around instance creation."""

from typing import Any, Awaitable, Callable, List

from nestwire.domain import DispatchReentryError, Middleware

SyncHandler = Callable[[Callable[[], Any]], Any]
AsyncHandler = Callable[[Callable[[], Awaitable[Any]]], Awaitable[Any]]


class MiddlewarePipeline:
    """Ordered, onion-style middleware chains (sync and async).

    Each middleware receives a ``next`` continuation. It may skip it, or call
    it once; calling it a second time for the same resolution raises
    DispatchReentryError. Middlewares run in ascending ``order``, ties keep
    registration order.

    Example:
        >>> def timing(next_):
        ...     started = time.perf_counter()
        ...     try:
        ...         return next_()
        ...     finally:
        ...         print(time.perf_counter() - started)
        >>> pipeline.use(timing, order=0)
    """

    def __init__(self) -> None:
        self._middlewares: List[Middleware] = []
        self._async_middlewares: List[Middleware] = []

    @property
    def middlewares(self) -> List[Middleware]:
        return list(self._middlewares)

    @property
    def async_middlewares(self) -> List[Middleware]:
        return list(self._async_middlewares)

    def use(self, handler: SyncHandler, order: int = 1) -> None:
        self._middlewares.append(Middleware(handler=handler, order=order))
        self._middlewares.sort(key=lambda middleware: middleware.order)

    def use_async(self, handler: AsyncHandler, order: int = 1) -> None:
        self._async_middlewares.append(Middleware(handler=handler, order=order))
        self._async_middlewares.sort(key=lambda middleware: middleware.order)

    def apply(self, create: Callable[[], Any]) -> Any:
        """Run create() wrapped by the synchronous middlewares."""
        middlewares = self._middlewares
        if not middlewares:
            return create()

        last_index = -1

        def dispatch(index: int) -> Any:
            nonlocal last_index
            if index <= last_index:
                raise DispatchReentryError(index - 1)
            last_index = index

            if index >= len(middlewares):
                return create()

            return middlewares[index].handler(lambda: dispatch(index + 1))

        return dispatch(0)

    async def apply_async(self, create: Callable[[], Awaitable[Any]]) -> Any:
        """Run create() wrapped by the asynchronous middlewares."""
        middlewares = self._async_middlewares
        if not middlewares:
            return await create()

        last_index = -1

        async def dispatch(index: int) -> Any:
            nonlocal last_index
            if index <= last_index:
                raise DispatchReentryError(index - 1)
            last_index = index

            if index >= len(middlewares):
                return await create()

            return await middlewares[index].handler(lambda: dispatch(index + 1))

        return await dispatch(0)

    def clear(self) -> None:
        self._middlewares.clear()
        self._async_middlewares.clear()

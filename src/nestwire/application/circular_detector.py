"""Application layer - Circular dependency detection and in-flight tracking."""

import asyncio
from contextvars import ContextVar
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from nestwire.domain import MISSING, CircularDependencyError, InternalProvider, ResolutionContext


class InFlight:
    """A provider wrapper currently being built.

    Attributes:
        wrapper_id: Id of the wrapper being built.
        token: Token of the wrapper, for error chains.
        slot: Pre-allocated instance handed out to re-entrant requests, or MISSING.
        waiters: Futures of concurrent requests waiting for the build to finish.
        blocked_on: In-flight builds this build is waiting for, directly or through a nested build.
        done: True once the build finished or failed.
    """

    __slots__ = ("wrapper_id", "token", "slot", "waiters", "blocked_on", "done")

    def __init__(self, wrapper_id: str, token: str = "", slot: Any = MISSING) -> None:
        self.wrapper_id = wrapper_id
        self.token = token
        self.slot = slot
        self.waiters: List[asyncio.Future] = []
        self.blocked_on: List["InFlight"] = []
        self.done = False

    @property
    def has_slot(self) -> bool:
        return self.slot is not MISSING

    def reaches(self, targets: Sequence["InFlight"]) -> bool:
        """True if this build waits, directly or transitively, for one of targets."""
        seen: Set[int] = set()
        pending = list(self.blocked_on)
        while pending:
            candidate = pending.pop()
            if candidate.done or id(candidate) in seen:
                continue
            if any(candidate is target for target in targets):
                return True
            seen.add(id(candidate))
            pending.extend(candidate.blocked_on)
        return False


# Builds started by the current task (or thread), outermost first.
_building: ContextVar[Tuple[InFlight, ...]] = ContextVar("nestwire_building", default=())


class CircularDependencyDetector:
    """Tracks in-flight constructions of one container and detects cycles.

    A wrapper that re-enters its own resolution chain is satisfied from its
    pre-allocated slot when it has one (class providers); otherwise the
    chain is reported as a CircularDependencyError. Requests for an in-flight
    wrapper that is not on their own chain (concurrent async siblings) wait
    for the build to finish, unless that build is itself waiting for one of
    the requester's builds.

    Attributes:
        _resolving: Wrapper id -> in-flight record.
    """

    def __init__(self) -> None:
        """Initialize the detector with no in-flight constructions."""
        self._resolving: Dict[str, InFlight] = {}

    def begin(self, wrapper: InternalProvider, slot: Any = MISSING) -> InFlight:
        """Record that a wrapper is being built.

        Args:
            wrapper: The wrapper being built.
            slot: Optional pre-allocated instance for re-entrant requests.

        Returns:
            The in-flight record; pass it back to finish() or fail().
        """
        entry = InFlight(wrapper.id, wrapper.token, slot)
        self._resolving[wrapper.id] = entry
        _building.set(_building.get() + (entry,))
        return entry

    def check(self, wrapper: InternalProvider, path: ResolutionContext, container_id: str) -> Optional[InFlight]:
        """Check a wrapper against the in-flight map and the current chain.

        Returns:
            The in-flight record when the request can be satisfied from it
            (a slot, or a build to wait for), None when the wrapper must be built.

        Raises:
            CircularDependencyError: If the wrapper is on its own chain without a slot,
                or in flight without a slot on a synchronous chain.

        Example:
            >>> detector.check(wrapper_a, path, "ROOT")  # None, A must be built
        """
        entry = self._resolving.get(wrapper.id)
        if entry is not None and entry.has_slot:
            return entry

        if wrapper.id in path:
            # Raises with the full chain.
            path.push(wrapper.id, wrapper.token, container_id)

        return entry

    def wait(self, entry: InFlight, wrapper: InternalProvider, container_id: str) -> "asyncio.Future[Any]":
        """Future completed when the in-flight build of entry finishes.

        Raises:
            CircularDependencyError: If entry is one of the current task's own
                builds, or is waiting (possibly through other builds) for one of them.
        """
        current = tuple(building for building in _building.get() if not building.done)
        if any(building is entry for building in current) or entry.reaches(current):
            raise CircularDependencyError([building.token for building in current] + [wrapper.token], container_id)

        for building in current:
            building.blocked_on.append(entry)

        future = asyncio.get_running_loop().create_future()
        entry.waiters.append(future)
        return future

    def finish(self, entry: InFlight, instance: Any) -> None:
        """Remove an in-flight record and release its waiters."""
        self._release(entry)
        for future in entry.waiters:
            if not future.done():
                future.set_result(instance)

    def fail(self, entry: InFlight, error: BaseException) -> None:
        """Remove an in-flight record and propagate error to its waiters."""
        self._release(entry)
        for future in entry.waiters:
            if not future.done():
                future.set_exception(error)

    def _release(self, entry: InFlight) -> None:
        entry.done = True
        if self._resolving.get(entry.wrapper_id) is entry:
            del self._resolving[entry.wrapper_id]
        _building.set(tuple(building for building in _building.get() if building is not entry))

    def raise_unavailable(self, wrapper: InternalProvider, path: ResolutionContext, container_id: str) -> None:
        """Report a synchronous request for a wrapper that is in flight without a slot."""
        raise CircularDependencyError(path.tokens() + [wrapper.token], container_id)

    def clear(self) -> None:
        """Forget every in-flight record.

        Useful for testing or error recovery.
        """
        for entry in self._resolving.values():
            entry.done = True
        self._resolving.clear()

    def __len__(self) -> int:
        return len(self._resolving)

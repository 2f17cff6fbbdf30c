"""Unit tests for CircularDependencyDetector."""

import asyncio

import pytest

from nestwire.application.circular_detector import CircularDependencyDetector, InFlight
from nestwire.application.container import DIContainer
from nestwire.domain import MISSING, CircularDependencyError, InternalProvider, ResolutionContext, build_provider


@pytest.fixture
def container():
    return DIContainer("detector-test")


def make_wrapper(container, token="svc"):
    return InternalProvider(container=container, provider=build_provider({"provide": token, "use_value": 1}))


class TestInFlight:
    """Test cases for in-flight records."""

    def test_without_slot(self):
        """Test that a record without slot reports it."""
        entry = InFlight("id")

        assert entry.slot is MISSING
        assert not entry.has_slot
        assert entry.waiters == []

    def test_with_slot(self):
        """Test that a falsy slot still counts as a slot."""
        assert InFlight("id", slot=0).has_slot


class TestCircularDependencyDetector:
    """Test cases for CircularDependencyDetector class."""

    def test_detector_initialization(self):
        """Test that detector initializes with nothing in flight."""
        assert len(CircularDependencyDetector()) == 0

    def test_begin_registers_wrapper(self, container):
        """Test that begin marks a wrapper as resolving."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container)

        entry = detector.begin(wrapper, slot="placeholder")

        assert len(detector) == 1
        assert detector.check(wrapper, ResolutionContext(), container.container_id) is entry
        assert entry.slot == "placeholder"
        assert entry.token == wrapper.token

        detector.finish(entry, "placeholder")

    def test_check_unknown_wrapper_returns_none(self, container):
        """Test that a wrapper neither in flight nor on the chain must be built."""
        detector = CircularDependencyDetector()

        assert detector.check(make_wrapper(container), ResolutionContext(), container.container_id) is None

    def test_check_returns_slot_entry_even_on_chain(self, container):
        """Test that a re-entered wrapper with a slot is satisfied from it."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container)
        path = ResolutionContext()
        path.push(wrapper.id, wrapper.token)
        entry = detector.begin(wrapper, slot=object())

        assert detector.check(wrapper, path, container.container_id) is entry
        detector.clear()

    def test_check_raises_for_chain_without_slot(self, container):
        """Test that a re-entered wrapper without a slot is a cycle."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container, "A")
        path = ResolutionContext()
        path.push(wrapper.id, wrapper.token)
        detector.begin(wrapper)

        with pytest.raises(CircularDependencyError) as exc_info:
            detector.check(wrapper, path, container.container_id)

        assert exc_info.value.dependency_chain == [wrapper.token, wrapper.token]
        detector.clear()

    def test_check_returns_entry_in_flight_elsewhere(self, container):
        """Test that a wrapper in flight on another branch is reported for waiting."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container)
        entry = detector.begin(wrapper)

        assert detector.check(wrapper, ResolutionContext(), container.container_id) is entry
        detector.finish(entry, 1)

    def test_finish_removes_current_entry_only(self, container):
        """Test that finishing a superseded entry keeps the newer one."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container)
        first = detector.begin(wrapper)
        second = detector.begin(wrapper)

        detector.finish(first, "value")
        assert detector.check(wrapper, ResolutionContext(), container.container_id) is second

        detector.finish(second, "value")
        assert len(detector) == 0

    def test_raise_unavailable(self, container):
        """Test the error for a synchronous request of a wrapper built elsewhere."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container, "B")
        path = ResolutionContext()
        path.push("other", "A")

        with pytest.raises(CircularDependencyError, match="A -> "):
            detector.raise_unavailable(wrapper, path, container.container_id)

    def test_clear(self, container):
        """Test that clear forgets every in-flight record."""
        detector = CircularDependencyDetector()
        detector.begin(make_wrapper(container))
        detector.clear()

        assert len(detector) == 0


async def begin_elsewhere(detector, wrapper):
    """Begin a build from another task, so the current task is not its builder."""

    async def begin():
        return detector.begin(wrapper)

    return await asyncio.create_task(begin())


class TestWaiting:
    """Test cases for waiting on in-flight builds."""

    @pytest.mark.asyncio
    async def test_waiters_receive_result(self, container):
        """Test that finish releases waiters with the built value."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container)
        entry = await begin_elsewhere(detector, wrapper)
        future = detector.wait(entry, wrapper, container.container_id)

        detector.finish(entry, "built")

        assert await future == "built"
        assert entry.done

    @pytest.mark.asyncio
    async def test_waiters_receive_error(self, container):
        """Test that fail propagates the error to waiters."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container)
        entry = await begin_elsewhere(detector, wrapper)
        future = detector.wait(entry, wrapper, container.container_id)

        detector.fail(entry, RuntimeError("boom"))

        with pytest.raises(RuntimeError, match="boom"):
            await asyncio.wait_for(future, timeout=1)
        assert len(detector) == 0

    @pytest.mark.asyncio
    async def test_waiting_on_own_build_raises(self, container):
        """Test that a task cannot wait for a build it started itself."""
        detector = CircularDependencyDetector()
        wrapper = make_wrapper(container, "X")
        entry = detector.begin(wrapper)

        with pytest.raises(CircularDependencyError) as exc_info:
            detector.wait(entry, wrapper, container.container_id)

        assert exc_info.value.dependency_chain == [wrapper.token, wrapper.token]
        assert entry.waiters == []
        detector.finish(entry, None)

    @pytest.mark.asyncio
    async def test_waiting_on_build_blocked_by_own_build_raises(self, container):
        """Test that two builds waiting for each other are reported as a cycle."""
        detector = CircularDependencyDetector()
        first_wrapper = make_wrapper(container, "B")
        second_wrapper = make_wrapper(container, "C")
        second = await begin_elsewhere(detector, second_wrapper)
        first = detector.begin(first_wrapper)
        second.blocked_on.append(first)

        with pytest.raises(CircularDependencyError) as exc_info:
            detector.wait(second, second_wrapper, container.container_id)

        assert exc_info.value.dependency_chain == [first_wrapper.token, second_wrapper.token]
        detector.finish(first, None)
        detector.finish(second, None)

    @pytest.mark.asyncio
    async def test_wait_records_blocking_edge(self, container):
        """Test that waiting marks the current builds as blocked on the awaited one."""
        detector = CircularDependencyDetector()
        other_wrapper = make_wrapper(container, "other")
        own_wrapper = make_wrapper(container, "own")
        other = await begin_elsewhere(detector, other_wrapper)
        own = detector.begin(own_wrapper)

        future = detector.wait(other, other_wrapper, container.container_id)

        assert own.blocked_on == [other]
        assert own.reaches([other])
        detector.finish(other, "value")
        assert not own.reaches([other])
        assert await future == "value"
        detector.finish(own, None)


class TestInFlightReachability:
    """Test cases for InFlight.reaches."""

    def test_transitive_reach(self):
        """Test that reachability follows chains of waiting builds."""
        first, second, third = InFlight("a"), InFlight("b"), InFlight("c")
        first.blocked_on.append(second)
        second.blocked_on.append(third)

        assert first.reaches([third])
        assert not third.reaches([first])

    def test_finished_builds_are_skipped(self):
        """Test that finished builds no longer block anything."""
        first, second = InFlight("a"), InFlight("b")
        first.blocked_on.append(second)
        second.done = True

        assert not first.reaches([second])

    def test_loops_terminate(self):
        """Test that a loop among other builds does not hang the search."""
        first, second, target = InFlight("a"), InFlight("b"), InFlight("c")
        first.blocked_on.append(second)
        second.blocked_on.append(first)

        assert not first.reaches([target])

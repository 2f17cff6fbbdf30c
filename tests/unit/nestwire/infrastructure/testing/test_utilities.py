"""Unit tests for testing utilities."""

import pytest

from nestwire.application.container import DIContainer
from nestwire.domain.exceptions import NoProviderFoundError
from nestwire.infrastructure.testing.utilities import (
    MockScope,
    TestContainer,
    create_mock_container,
)


class Database:
    pass


class UserService:
    def __init__(self, db: Database):
        self.db = db


@pytest.fixture
def parent():
    container = DIContainer("app")
    container.register(Database)
    container.register(UserService)
    return container


class TestTestContainerInitialization:
    """Test cases for TestContainer initialization."""

    def test_test_container_initialization_without_parent(self):
        """Test TestContainer can be initialized without parent container."""
        test_container = TestContainer()

        assert isinstance(test_container, DIContainer)
        assert test_container.parent is None
        assert test_container.container_id.startswith("test-")
        assert test_container.registry.providers == {}

    def test_test_container_initialization_with_parent(self, parent):
        """Test TestContainer starts with copies of the parent's providers."""
        test_container = TestContainer(parent)

        assert test_container.parent is parent
        assert test_container.has(UserService)
        assert isinstance(test_container.resolve(UserService).db, Database)

    def test_instances_are_not_shared_with_parent(self, parent):
        """Test that copied providers are built and cached in the test container."""
        test_container = TestContainer(parent)

        assert test_container.resolve(Database) is not parent.resolve(Database)
        assert len(parent.lifetime_manager) == 1

    def test_nearer_ancestors_win_on_copy(self, parent):
        """Test that a child's provider replaces its ancestor's on copy."""
        child = parent.create_child_container("child")
        child.register({"provide": Database, "use_value": "child-db"})

        test_container = TestContainer(child)

        assert test_container.resolve(Database) == "child-db"


class TestMockSingleton:
    """Test cases for mock_singleton method."""

    def test_mock_singleton_replaces_dependency(self, parent):
        """Test that the mock is returned for the mocked token."""
        test_container = TestContainer(parent)
        mock_db = object()

        test_container.mock_singleton(Database, mock_db)

        assert test_container.resolve(Database) is mock_db

    def test_mock_singleton_used_by_dependent_services(self, parent):
        """Test that dependents of the mocked token receive the mock."""
        test_container = TestContainer(parent)
        mock_db = object()

        test_container.mock_singleton(Database, mock_db)

        assert test_container.resolve(UserService).db is mock_db
        assert parent.resolve(UserService).db is not mock_db

    def test_mock_singleton_with_none_value(self):
        """Test that None can be used as a mock."""
        test_container = TestContainer()

        test_container.mock_singleton("optional-service", None)

        assert test_container.resolve("optional-service") is None

    def test_mock_beats_higher_priority_parent_provider(self):
        """Test that mocks win even over high priority providers reachable through the parent."""
        parent = DIContainer("app")
        child = parent.create_child_container("child")
        parent.register({"provide": Database, "use_value": "real", "priority": 100})
        test_container = TestContainer(child)

        test_container.mock_singleton(Database, "mock")

        assert test_container.resolve(Database) == "mock"


class TestMockTransient:
    """Test cases for mock_transient method."""

    def test_mock_transient_creates_new_instances(self):
        """Test that the factory runs on every resolution."""
        test_container = TestContainer()

        test_container.mock_transient(Database, Database)

        assert test_container.resolve(Database) is not test_container.resolve(Database)

    def test_mock_transient_uses_factory_function(self):
        """Test that the factory result is returned."""
        test_container = TestContainer()
        counter = iter(range(10))

        test_container.mock_transient("request-id", lambda: next(counter))

        assert [test_container.resolve("request-id") for _ in range(3)] == [0, 1, 2]


class TestOverrideRegistration:
    """Test cases for override_registration method."""

    def test_override_registration_with_singleton(self, parent):
        """Test that the builder receives the test container and its result is cached."""
        test_container = TestContainer(parent)
        received = []

        def builder(container):
            received.append(container)
            return "override-db"

        test_container.override_registration(Database, builder)

        assert test_container.resolve(Database) == "override-db"
        assert test_container.resolve(Database) == "override-db"
        assert received == [test_container]

    def test_override_registration_with_transient(self):
        """Test that singleton=False rebuilds on every resolution."""
        test_container = TestContainer()

        test_container.override_registration(Database, lambda container: Database(), singleton=False)

        assert test_container.resolve(Database) is not test_container.resolve(Database)


class TestResetAndContextManager:
    """Test cases for reset_overrides and the context manager."""

    def test_reset_overrides_restores_parent_providers(self, parent):
        """Test that reset_overrides drops mocks and copies the parent again."""
        test_container = TestContainer(parent)
        test_container.mock_singleton(Database, "mock")

        test_container.reset_overrides()

        assert isinstance(test_container.resolve(Database), Database)

    def test_reset_overrides_without_parent(self):
        """Test that a parentless container is emptied."""
        test_container = TestContainer()
        test_container.mock_singleton(Database, "mock")

        test_container.reset_overrides()

        with pytest.raises(NoProviderFoundError):
            test_container.resolve(Database)

    def test_context_manager_clears(self, parent):
        """Test that leaving the with-block clears the container."""
        with TestContainer(parent) as test_container:
            test_container.mock_singleton(Database, "mock")
            assert test_container.resolve(UserService).db == "mock"

        assert test_container.registry.providers == {}
        assert isinstance(parent.resolve(UserService).db, Database)


class TestCreateMockContainer:
    """Test cases for create_mock_container function."""

    def test_creates_container_with_mocks(self):
        """Test that every pair becomes a mock singleton."""
        mock_db = object()

        test_container = create_mock_container((Database, mock_db), ("cache", "mock-cache"))

        assert test_container.resolve(Database) is mock_db
        assert test_container.resolve("cache") == "mock-cache"

    def test_creates_empty_container(self):
        """Test that no pairs gives an empty container."""
        assert create_mock_container().registry.providers == {}


class TestMockScope:
    """Test cases for MockScope context manager."""

    def test_scope_sees_parent_providers(self, parent):
        """Test that the scoped container resolves through the parent."""
        with MockScope(parent) as scoped:
            assert scoped.parent is parent
            assert scoped.resolve(Database) is parent.resolve(Database)

    def test_scope_registrations_stay_private(self, parent):
        """Test that scope registrations are invisible to the parent and dropped on exit."""
        with MockScope(parent) as scoped:
            scoped.register({"provide": "request-id", "use_value": "req-1"})
            assert scoped.resolve("request-id") == "req-1"
            assert not parent.has("request-id")

        assert parent.child_containers == []
        assert scoped.registry.providers == {}

    def test_scope_cleans_up_on_exception(self, parent):
        """Test that the scope is detached when the block raises."""
        with pytest.raises(ValueError):
            with MockScope(parent):
                raise ValueError("boom")

        assert parent.child_containers == []

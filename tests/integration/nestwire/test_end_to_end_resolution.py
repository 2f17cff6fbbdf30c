"""Integration tests for end-to-end dependency resolution."""

import pytest

from nestwire import (
    CircularDependencyError,
    DIContainer,
    NoProviderFoundError,
    di_module,
    inject,
    inject_config,
    inject_entity_service,
    injectable,
    make_token,
    on_init,
    register_constructor_dependency,
)


class TestCompleteApplicationFlow:
    """Test a small application wired entirely through the public API."""

    def test_layered_application(self):
        """Test a config -> repository -> service -> controller graph."""
        root = DIContainer.root()
        root.register_config_provider({"provide": "app", "use_config": {"name": "shop", "db": {"url": "sqlite://"}}})

        class Engine:
            def __init__(self, url=inject_config("app.db.url")):
                self.url = url

        class OrderRepository:
            def __init__(self, engine: Engine):
                self.engine = engine

        class AuditLog:
            def __init__(self):
                self.entries = []

        class OrderService:
            audit = inject(AuditLog)

            def __init__(self, repository: OrderRepository, app_name=inject_config("app.name")):
                self.repository = repository
                self.app_name = app_name

            @on_init
            def announce(self):
                self.audit.entries.append(f"{self.app_name} ready")

        root.register_many([Engine, OrderRepository, AuditLog, OrderService])

        service = root.resolve(OrderService)

        assert service.repository.engine.url == "sqlite://"
        assert service.app_name == "shop"
        assert root.resolve(AuditLog).entries == ["shop ready"]

    def test_decorator_driven_application(self):
        """Test injectable classes registered in a module and resolved by entity."""

        @di_module()
        class OrdersModule:
            pass

        @injectable(provided_in=OrdersModule, for_entity="Order")
        class OrderService:
            pass

        class Checkout:
            def __init__(self, orders=inject_entity_service("Order")):
                self.orders = orders

        di_module(providers=[Checkout], exports=[Checkout])(OrdersModule)

        root = DIContainer.root()
        root.module(OrdersModule)

        assert isinstance(root.resolve(Checkout).orders, OrderService)
        assert not root.has(OrderService)


class TestTokenIdentity:
    """Test that every spelling of a dependency reaches the same provider."""

    def test_class_string_and_token_are_equivalent(self):
        """Test that a class, its name and its token resolve the same singleton."""
        container = DIContainer()

        class Mailer:
            pass

        container.register(Mailer)

        assert container.resolve(Mailer) is container.resolve("Mailer")
        assert container.resolve("Mailer") is container.resolve(make_token(Mailer))

    def test_explicit_di_name(self):
        """Test that __di_name__ pins the token of a class."""
        container = DIContainer()

        class Mailer:
            __di_name__ = "mail.sender"

        container.register(Mailer)

        assert isinstance(container.resolve("mail.sender"), Mailer)


class TestSingletonIdentity:
    """Test singleton identity across the hierarchy."""

    def test_same_instance_from_descendants(self):
        """Test that a singleton is shared by the container and every descendant."""
        root = DIContainer("root")

        class Pool:
            pass

        root.register(Pool)
        leaf = root.create_child_container("a").create_child_container("b")

        assert root.resolve(Pool) is leaf.resolve(Pool)
        assert leaf.resolve(Pool) is leaf.resolve(Pool)

    def test_transient_is_rebuilt(self):
        """Test that transient providers produce a new instance per resolution."""
        container = DIContainer()

        class Request:
            pass

        container.register({"provide": Request, "use_class": Request, "singleton": False})

        assert container.resolve(Request) is not container.resolve(Request)

    def test_transient_hook_runs_per_instance(self):
        """Test that the on-init hook runs once for every transient instance."""
        container = DIContainer()
        started = []

        class Worker:
            @on_init
            def start(self):
                started.append(self)

        container.register({"provide": Worker, "use_class": Worker, "singleton": False})

        container.resolve(Worker)
        container.resolve(Worker)

        assert len(started) == 2


class TestCircularDependencies:
    """Test cycle resolution and detection."""

    def test_two_class_cycle_resolves(self):
        """Test that two classes requiring each other share finished instances."""
        container = DIContainer()

        class Parent:
            def __init__(self, child=inject("Child")):
                self.child = child
                self.name = "parent"

        class Child:
            def __init__(self, parent: Parent):
                self.parent = parent
                self.name = "child"

        container.register_many([Parent, Child])

        parent = container.resolve(Parent)

        assert parent.child.parent is parent
        assert parent.child.parent.name == "parent"
        assert container.resolve(Child) is parent.child

    def test_explicitly_registered_cycle(self):
        """Test a cycle declared with register_constructor_dependency."""
        container = DIContainer()

        class Left:
            def __init__(self, right):
                self.right = right

        class Right:
            def __init__(self, left):
                self.left = left

        register_constructor_dependency(Left, 0, Right)
        register_constructor_dependency(Right, 0, Left)
        container.register_many([Left, Right])

        right = container.resolve(Right)

        assert right.left.right is right

    def test_three_factory_cycle_raises(self):
        """Test that a factory cycle A -> B -> C -> A is reported with its chain."""
        container = DIContainer()
        container.register({"provide": "A", "use_factory": lambda b: b, "deps": ["B"]})
        container.register({"provide": "B", "use_factory": lambda c: c, "deps": ["C"]})
        container.register({"provide": "C", "use_factory": lambda a: a, "deps": ["A"]})

        with pytest.raises(CircularDependencyError) as exc_info:
            container.resolve("A")

        assert exc_info.value.dependency_chain == [make_token(name) for name in ["A", "B", "C", "A"]]

    def test_alias_cycle_raises(self):
        """Test that aliases pointing at each other are reported."""
        container = DIContainer()
        container.register({"provide": "first", "use_existing": "second"})
        container.register({"provide": "second", "use_existing": "first"})

        with pytest.raises(CircularDependencyError):
            container.resolve("first")

    def test_container_usable_after_cycle_error(self):
        """Test that a failed resolution leaves no in-flight state behind."""
        container = DIContainer()
        container.register({"provide": "A", "use_factory": lambda b: b, "deps": ["B"]})
        container.register({"provide": "B", "use_factory": lambda a: a, "deps": ["A"]})

        with pytest.raises(CircularDependencyError):
            container.resolve("A")

        container.register({"provide": "B", "use_value": "fixed"})

        assert container.resolve("A") == "fixed"


class TestPriorityAndOverride:
    """Test provider precedence."""

    def test_priority_two_beats_priority_one(self):
        """Test that the higher priority provider always wins."""
        container = DIContainer()
        container.register({"provide": "T", "use_value": "p1", "priority": 1})
        container.register({"provide": "T", "use_value": "p2", "priority": 2})

        assert all(container.resolve("T") == "p2" for _ in range(3))

    def test_override_wins_regardless_of_priority(self):
        """Test that an override provider beats a higher priority one."""
        container = DIContainer()
        container.register({"provide": "T", "use_value": "p2", "priority": 2})
        container.register({"provide": "T", "use_value": "forced", "priority": -5, "override": True})

        assert container.resolve("T") == "forced"

    def test_two_overrides_keep_insertion_order(self):
        """Test that equal override providers keep their registration order."""
        container = DIContainer()
        container.register({"provide": "T", "use_value": "first", "override": True, "tags": ["a"]})
        container.register({"provide": "T", "use_value": "second", "override": True, "tags": ["b"]})

        assert container.resolve("T") == "first"


class TestOptionalDefaults:
    """Test optional dependencies with defaults."""

    def test_default_used_then_registered_value(self):
        """Test that the default applies only while nothing is registered."""

        class Greeter:
            def __init__(self, greeting=inject("greeting", optional=True, default="default")):
                self.greeting = greeting

        empty = DIContainer()
        empty.register(Greeter)
        filled = DIContainer()
        filled.register(Greeter)
        filled.register({"provide": "greeting", "use_value": "hello"})

        assert empty.resolve(Greeter).greeting == "default"
        assert filled.resolve(Greeter).greeting == "hello"

    def test_required_dependency_error_propagates(self):
        """Test that a missing required dependency fails the whole resolution."""

        class Greeter:
            def __init__(self, greeting=inject("greeting")):
                self.greeting = greeting

        container = DIContainer()
        container.register(Greeter)

        with pytest.raises(NoProviderFoundError) as exc_info:
            container.resolve(Greeter)

        assert exc_info.value.token == make_token("greeting")

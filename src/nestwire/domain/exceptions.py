from typing import Any, Dict, List, Optional


class DIException(Exception):
    """Base exception for DI-related errors."""


class InvalidTokenError(DIException):
    """Raised when an identifier cannot be normalized into a token.

    Attributes:
        identifier: The offending identifier.
    """

    def __init__(self, identifier: Any, reason: Optional[str] = None) -> None:
        self.identifier = identifier
        self.reason = reason
        message = f"Invalid dependency identifier: {identifier!r}"
        if reason:
            message += f". Reason: {reason}"
        super().__init__(message)


class InvalidProviderError(DIException):
    """Raised for invalid provider configurations.

    This occurs when:
    - The variant specific field (use_class, use_factory, ...) is missing or invalid.
    - A provider is registered without a resolvable owning container.
    - A provider cannot be built by the path it was resolved through.
    """


class NoProviderFoundError(DIException):
    """Raised when a token and criteria match nothing in the reachable hierarchy.

    Attributes:
        token: The normalized token that was requested.
        container_id: Id of the container the resolution started from.
        criteria: Criteria applied while searching.
    """

    def __init__(self, token: str, container_id: str, criteria: Optional[Dict[str, Any]] = None) -> None:
        self.token = token
        self.container_id = container_id
        self.criteria = criteria or {}
        message = f"No provider found for {token}. DIContainer[{container_id}]"
        if self.criteria:
            message += f" criteria={self.criteria}"
        super().__init__(message)


class NoEntityServiceProviderError(NoProviderFoundError):
    """Raised when no service provider is associated with an entity."""

    def __init__(self, entity_name: str, container_id: str, criteria: Optional[Dict[str, Any]] = None) -> None:
        self.entity_name = entity_name
        super().__init__(f"entity-service:{entity_name}", container_id, criteria)


class NoEntitySchemaProviderError(NoProviderFoundError):
    """Raised when no schema provider is associated with an entity."""

    def __init__(self, entity_name: str, container_id: str, criteria: Optional[Dict[str, Any]] = None) -> None:
        self.entity_name = entity_name
        super().__init__(f"entity-schema:{entity_name}", container_id, criteria)


class CircularDependencyError(DIException):
    """Raised when a circular dependency is detected.

    Attributes:
        dependency_chain: Tokens of the providers involved, in resolution order.
        container_id: Id of the container that detected the cycle.
    """

    def __init__(self, dependency_chain: List[str], container_id: str = "") -> None:
        self.dependency_chain = dependency_chain
        self.container_id = container_id
        message = f"Circular dependency detected: {' -> '.join(dependency_chain)}"
        if container_id:
            message += f". DIContainer[{container_id}]"
        super().__init__(message)


class DispatchReentryError(DIException):
    """Raised when a middleware invokes ``next`` more than once."""

    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"next() called multiple times by middleware #{index}")


class InitializationMethodError(DIException):
    """Raised when an on-init hook fails.

    Attributes:
        class_name: Name of the class whose hook failed.
        container_id: Id of the container that created the instance.
    """

    def __init__(self, class_name: str, error_message: str, container_id: str) -> None:
        self.class_name = class_name
        self.container_id = container_id
        super().__init__(
            f"Initialization method failed for {class_name}: {error_message}. DIContainer[{container_id}]"
        )


class InitializationMethodTypeError(DIException):
    """Raised when the registered on-init hook is not callable on the instance."""

    def __init__(self, method_name: str, class_name: str, container_id: str) -> None:
        self.method_name = method_name
        self.class_name = class_name
        self.container_id = container_id
        super().__init__(
            f"Initialization method {method_name} is not a function on {class_name}. DIContainer[{container_id}]"
        )


class InvalidDependencyCriteriaError(DIException):
    """Raised when injection options combine criteria that cannot be resolved."""

    def __init__(self, criteria: Any) -> None:
        self.criteria = criteria
        super().__init__(f"Invalid dependency criteria {criteria!r}")


class ModuleMetadataError(DIException):
    """Raised when a module class has no (or conflicting) module metadata."""

    def __init__(self, module_name: str, container_id: str, reason: Optional[str] = None) -> None:
        self.module_name = module_name
        self.container_id = container_id
        message = reason or f"Module {module_name} does not have any metadata, make sure it's decorated with @di_module()"
        super().__init__(f"{message}. DIContainer[{container_id}]")


class NothingToExportError(DIException):
    """Raised when a module exports a token no provider in its chain supplies."""

    def __init__(self, token: str, container_id: str) -> None:
        self.token = token
        self.container_id = container_id
        super().__init__(f"Nothing to export; no providers found for {token}. DIContainer[{container_id}]")

from enum import Enum


class ProviderType(str, Enum):
    """Free-form classification of a registered provider.

    Attributes:
        SERVICE: Entity or application service.
        SCHEMA: Entity schema definition.
        CONFIG: Configuration leaf registered under a dotted path.
        CONTROLLER: Request handler registered by the surrounding framework.
        MODULE: Module class registered into its own container.
        UNKNOWN: Default when no classification is given.
    """

    SERVICE = "service"
    SCHEMA = "schema"
    CONFIG = "config"
    CONTROLLER = "controller"
    MODULE = "module"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class ProviderKind(str, Enum):
    """Variant tag of a provider record."""

    CLASS = "class"
    FACTORY = "factory"
    VALUE = "value"
    CONFIG = "config"
    ALIAS = "alias"

    def __str__(self) -> str:
        return self.value

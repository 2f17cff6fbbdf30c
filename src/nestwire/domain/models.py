import inspect
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, List, Literal, Optional, Tuple, Type, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from nestwire.domain.enums import ProviderKind, ProviderType
from nestwire.domain.exceptions import CircularDependencyError, InvalidProviderError
from nestwire.domain.tokens import make_token, strip_token_namespace

if TYPE_CHECKING:
    from nestwire.domain.interfaces import IContainer


class _Missing:
    """Marker for "no default value declared"."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def entity_name(entity: Any) -> str:
    """Return the plain entity name for a string or class."""
    return strip_token_namespace(make_token(entity))


class PriorityCriteria(BaseModel):
    """Predicate on a provider's priority. Exactly one form must be set.

    Attributes:
        greater_than: Matches priorities strictly greater than the value.
        less_than: Matches priorities strictly less than the value.
        eq: Matches priorities equal to the value.
        between: Matches priorities inside the inclusive range.
    """

    model_config = ConfigDict(frozen=True)

    greater_than: Optional[int] = None
    less_than: Optional[int] = None
    eq: Optional[int] = None
    between: Optional[Tuple[int, int]] = None

    @model_validator(mode="after")
    def _exactly_one_form(self) -> "PriorityCriteria":
        forms = [self.greater_than, self.less_than, self.eq, self.between]
        if sum(form is not None for form in forms) != 1:
            raise ValueError("exactly one of greater_than, less_than, eq or between must be set")
        return self

    def matches(self, priority: int) -> bool:
        if self.greater_than is not None:
            return priority > self.greater_than
        if self.less_than is not None:
            return priority < self.less_than
        if self.eq is not None:
            return priority == self.eq
        low, high = self.between  # type: ignore[misc]
        return low <= priority <= high


class ResolutionCriteria(BaseModel):
    """Criteria used to pick the best provider for a token.

    Attributes:
        tags: Every tag must be present on the provider.
        type: Provider classification to match.
        priority: Priority predicate.
        for_entity: Entity the provider must be associated with.
        include_descendants: Look at child containers' private providers, not only their exports.
    """

    model_config = ConfigDict(frozen=True)

    tags: Optional[FrozenSet[str]] = None
    type: Optional[ProviderType] = None
    priority: Optional[PriorityCriteria] = None
    for_entity: Optional[str] = None
    include_descendants: bool = False

    @field_validator("for_entity", mode="before")
    @classmethod
    def _normalize_entity(cls, value: Any) -> Any:
        return None if value is None else entity_name(value)

    def describe(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude_defaults=True)

    def matches(self, provider: "BaseProvider") -> bool:
        """True if the provider passes every filter set on these criteria."""
        if self.type is not None and provider.type != self.type:
            return False
        if self.for_entity is not None and provider.for_entity != self.for_entity:
            return False
        if self.tags and not self.tags <= provider.tags:
            return False
        if self.priority is not None and not self.priority.matches(provider.priority):
            return False
        return True


CriteriaLike = Union[ResolutionCriteria, Mapping, None]


def build_criteria(criteria: CriteriaLike = None, **overrides: Any) -> ResolutionCriteria:
    """Coerce a mapping (or None) into ResolutionCriteria, applying overrides."""
    if isinstance(criteria, ResolutionCriteria):
        data = criteria.model_dump(exclude_unset=True)
    else:
        data = dict(criteria or {})
    data.update({key: value for key, value in overrides.items() if value is not None})
    return ResolutionCriteria.model_validate(data)


class BaseProvider(BaseModel):
    """Fields shared by every provider record.

    Attributes:
        provide: Identifier the provider is registered under.
        type: Free-form classification.
        singleton: Cache the resolved value in the owning container.
        priority: Higher priorities win during selection.
        tags: Tags used to filter during selection.
        condition: Evaluated once at registration; a false result skips registration.
        override: Sorts ahead of every non-override provider.
        for_entity: Entity the provider is associated with.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ProviderKind
    provide: Any = Field(..., description="Identifier the provider is registered under.")
    type: ProviderType = ProviderType.UNKNOWN
    singleton: bool = True
    priority: int = 0
    tags: FrozenSet[str] = frozenset()
    condition: Optional[Callable[[], bool]] = None
    override: bool = False
    for_entity: Optional[str] = None

    @field_validator("for_entity", mode="before")
    @classmethod
    def _normalize_entity(cls, value: Any) -> Any:
        return None if value is None else entity_name(value)

    @property
    def token(self) -> str:
        return make_token(self.provide)

    def conflict_key(self) -> Tuple[int, ProviderType, FrozenSet[str], Optional[str]]:
        """Tuple that decides whether a new registration replaces this one."""
        return (self.priority, self.type, self.tags, self.for_entity)


class ClassProvider(BaseProvider):
    kind: Literal[ProviderKind.CLASS] = ProviderKind.CLASS
    use_class: Type[Any]


class FactoryProvider(BaseProvider):
    kind: Literal[ProviderKind.FACTORY] = ProviderKind.FACTORY
    use_factory: Callable[..., Any]
    deps: Tuple[Any, ...] = ()


class ValueProvider(BaseProvider):
    kind: Literal[ProviderKind.VALUE] = ProviderKind.VALUE
    use_value: Any


class ConfigProvider(BaseProvider):
    kind: Literal[ProviderKind.CONFIG] = ProviderKind.CONFIG
    type: ProviderType = ProviderType.CONFIG
    use_config: Any


class AliasProvider(BaseProvider):
    kind: Literal[ProviderKind.ALIAS] = ProviderKind.ALIAS
    use_existing: Any

    @field_validator("use_existing")
    @classmethod
    def _not_none(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("use_existing cannot be None")
        return value


ProviderSpec = Union[ClassProvider, FactoryProvider, ValueProvider, ConfigProvider, AliasProvider]

_VARIANT_FIELDS: List[Tuple[str, Type[BaseProvider]]] = [
    ("use_class", ClassProvider),
    ("use_factory", FactoryProvider),
    ("use_value", ValueProvider),
    ("use_config", ConfigProvider),
    ("use_existing", AliasProvider),
]


def provider_condition(spec: Any) -> Optional[Callable[[], bool]]:
    """Return the registration condition of a spec without validating it."""
    if isinstance(spec, BaseProvider):
        return spec.condition
    if isinstance(spec, Mapping):
        return spec.get("condition")
    return None


def build_provider(spec: Any) -> BaseProvider:
    """Build a provider record from a model, a mapping or a bare class.

    Args:
        spec: A provider model; a mapping carrying one of use_class, use_factory,
            use_value, use_config or use_existing; or a class (shorthand for a
            class provider of itself).

    Returns:
        The validated provider record.

    Raises:
        InvalidProviderError: If no variant field is present or validation fails.

    Example:
        >>> build_provider({"provide": "db", "use_value": connection})
        ValueProvider(kind=<ProviderKind.VALUE: 'value'>, provide='db', ...)
    """
    if isinstance(spec, BaseProvider):
        return spec

    if inspect.isclass(spec):
        return ClassProvider(provide=spec, use_class=spec)

    if not isinstance(spec, Mapping):
        raise InvalidProviderError(f"Invalid provider configuration {spec!r}")

    data = dict(spec)
    for variant_field, model in _VARIANT_FIELDS:
        if variant_field not in data:
            continue
        if model is ClassProvider:
            data.setdefault("provide", data[variant_field])
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise InvalidProviderError(
                f"Invalid provider configuration for {data.get('provide')!r}. '{variant_field}' is invalid: {e}"
            ) from e

    raise InvalidProviderError(
        f"Invalid provider configuration for {data.get('provide')!r}. "
        "One of 'use_class', 'use_factory', 'use_value', 'use_config' or 'use_existing' is required"
    )


class InjectOptions(BaseModel):
    """A request to inject one dependency.

    Attributes:
        token: Normalized token (or config path when is_config is set).
        optional: Substitute the default when no provider is found.
        default: Value used when no provider is found.
        is_config: Resolve through the config resolver.
        tags: Tag criteria.
        type: Provider type criteria.
        priority: Priority criteria.
        for_entity: Entity criteria; routes to the entity helpers.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    token: str
    optional: bool = False
    default: Any = MISSING
    is_config: bool = False
    tags: Optional[FrozenSet[str]] = None
    type: Optional[ProviderType] = None
    priority: Optional[PriorityCriteria] = None
    for_entity: Optional[str] = None

    @field_validator("for_entity", mode="before")
    @classmethod
    def _normalize_entity(cls, value: Any) -> Any:
        return None if value is None else entity_name(value)

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    @property
    def fallback(self) -> Any:
        return None if self.default is MISSING else self.default

    def criteria(self) -> ResolutionCriteria:
        return ResolutionCriteria(tags=self.tags, type=self.type, priority=self.priority, for_entity=self.for_entity)


class ParameterInjection(InjectOptions):
    """Constructor parameter injection request."""

    index: int
    name: Optional[str] = None
    keyword_only: bool = False


class PropertyInjection(InjectOptions):
    """Attribute injection request, applied after construction."""

    property_name: str


class InternalProvider(BaseModel):
    """A registered provider paired with its wrapper id and owning container.

    Attributes:
        id: Unique wrapper id; the key of the singleton cache and resolving map.
        container: Real container the provider is resolved through; owns its cache and resolving state.
        provider: The provider record.
        delegate: For exported records, the original wrapper resolution is forwarded to.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    container: "IContainer"
    provider: BaseProvider
    delegate: Optional["InternalProvider"] = None

    @property
    def token(self) -> str:
        return self.provider.token


class Middleware(BaseModel):
    """Registered interceptor around instance creation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    handler: Callable[..., Any]
    order: int = 1


class ModuleMetadata(BaseModel):
    """Descriptor of a module class.

    Attributes:
        identifier: Token of the module class.
        container: Module's own container, created on first import.
        imports: Module classes imported into the module's container.
        exports: Identifiers re-published to importing containers.
        providers: Providers registered into the module's container.
        provided_by: Container ("ROOT", a container or a module class) the module nests under.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    identifier: str
    container: Optional["IContainer"] = None
    imports: List[Any] = Field(default_factory=list)
    exports: List[Any] = Field(default_factory=list)
    providers: List[BaseProvider] = Field(default_factory=list)
    provided_by: Optional[Any] = None

    @field_validator("providers", mode="before")
    @classmethod
    def _build_providers(cls, value: Any) -> Any:
        return [build_provider(spec) for spec in value or []]

    def has_import(self, module: Any) -> bool:
        return any(existing is module for existing in self.imports)

    def has_export(self, identifier: Any) -> bool:
        token = make_token(identifier)
        return any(make_token(existing) == token for existing in self.exports)

    def has_provider(self, provider: BaseProvider) -> bool:
        return any(existing == provider for existing in self.providers)


class ResolutionContext(BaseModel):
    """Tracks the chain of wrappers being resolved by one resolution call.

    Used for circular dependency detection. Each entry pairs a wrapper id with
    its token so the chain can be reported.

    Attributes:
        stack: (wrapper id, token) pairs currently being resolved.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    stack: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="Wrappers currently being resolved, outermost first.",
    )

    def __contains__(self, wrapper_id: object) -> bool:
        return any(entry_id == wrapper_id for entry_id, _ in self.stack)

    def push(self, wrapper_id: str, token: str, container_id: str = "") -> None:
        """Add a wrapper to the resolution chain.

        Raises:
            CircularDependencyError: If the wrapper is already in the chain.
        """
        if wrapper_id in self:
            start = next(index for index, (entry_id, _) in enumerate(self.stack) if entry_id == wrapper_id)
            cycle = [entry_token for _, entry_token in self.stack[start:]] + [token]
            raise CircularDependencyError(cycle, container_id)
        self.stack.append((wrapper_id, token))

    def pop(self) -> None:
        """Remove the last (most recent) wrapper from the chain."""
        if self.stack:
            self.stack.pop()

    def fork(self) -> "ResolutionContext":
        """Independent copy for a concurrently resolved branch."""
        return ResolutionContext(stack=list(self.stack))

    def tokens(self) -> List[str]:
        return [token for _, token in self.stack]

    def clear(self) -> None:
        """Clear the entire resolution chain."""
        self.stack.clear()

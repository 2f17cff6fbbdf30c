"""Application layer - Per-class injection metadata.

Injection requests and lifecycle hooks are recorded by ordinary function
calls made while a class is being defined (usually through the helpers in
``nestwire.application.decorators``), keyed by class identity.
"""

import inspect
import logging
from typing import Any, Dict, List, Optional, Tuple, get_type_hints

from nestwire.domain import (
    InjectOptions,
    InvalidProviderError,
    ModuleMetadata,
    ModuleMetadataError,
    ParameterInjection,
    PropertyInjection,
    build_provider,
    make_token,
    strip_token_namespace,
)

logger = logging.getLogger(__name__)

CONSTRUCTOR_INJECT_KEY = "CONSTRUCTOR_DEPENDENCY"
PROPERTY_INJECT_KEY = "PROPERTY_DEPENDENCY"
ON_INIT_HOOK_KEY = "ON_INIT_HOOK"
DI_MODULE_KEY = "DI_MODULE"


class MetadataStore:
    """Metadata keyed by class identity and an optional member name.

    Attributes:
        _metadata: Mapping of class to its (key, member) -> value entries.
    """

    def __init__(self) -> None:
        self._metadata: Dict[type, Dict[Tuple[str, Optional[str]], Any]] = {}

    def define(self, target: type, key: str, value: Any, member: Optional[str] = None) -> None:
        self._metadata.setdefault(target, {})[(key, member)] = value

    def get(self, target: type, key: str, member: Optional[str] = None, default: Any = None) -> Any:
        return self._metadata.get(target, {}).get((key, member), default)

    def has(self, target: type, key: str, member: Optional[str] = None) -> bool:
        return (key, member) in self._metadata.get(target, {})

    def forget(self, target: type) -> None:
        self._metadata.pop(target, None)

    def clear(self) -> None:
        self._metadata.clear()


DI_METADATA_STORE = MetadataStore()


def _inject_fields(token: Any, options: Dict[str, Any]) -> Dict[str, Any]:
    fields = dict(options)
    # Config paths stay raw; the config resolver matches them segment by segment.
    fields["token"] = token if fields.get("is_config") else make_token(token)
    return fields


def _declared_fields(options: InjectOptions) -> Dict[str, Any]:
    return {name: getattr(options, name) for name in options.model_fields_set}


def register_constructor_dependency(target: type, index: int, token: Any, **options: Any) -> ParameterInjection:
    """Declare the dependency injected into a constructor parameter.

    Args:
        target: Class whose constructor receives the dependency.
        index: Zero-based parameter position (``self`` excluded).
        token: Dependency identifier (or config path when ``is_config=True``).
        **options: InjectOptions fields (optional, default, is_config, tags, ...).

    Returns:
        The recorded injection request.
    """
    existing: List[Optional[ParameterInjection]] = list(
        DI_METADATA_STORE.get(target, CONSTRUCTOR_INJECT_KEY, default=[])
    )
    while len(existing) <= index:
        existing.append(None)

    injection = ParameterInjection(index=index, **_inject_fields(token, options))
    existing[index] = injection
    DI_METADATA_STORE.define(target, CONSTRUCTOR_INJECT_KEY, existing)
    return injection


def _store_property_dependency(target: type, injection: PropertyInjection) -> PropertyInjection:
    existing: List[PropertyInjection] = [
        dep
        for dep in DI_METADATA_STORE.get(target, PROPERTY_INJECT_KEY, default=[])
        if dep.property_name != injection.property_name
    ]
    existing.append(injection)
    DI_METADATA_STORE.define(target, PROPERTY_INJECT_KEY, existing)
    return injection


def register_property_dependency(target: type, property_name: str, token: Any, **options: Any) -> PropertyInjection:
    """Declare a dependency assigned to an attribute after construction."""
    return _store_property_dependency(
        target, PropertyInjection(property_name=property_name, **_inject_fields(token, options))
    )


class Inject:
    """Injection marker.

    Used as a constructor parameter default, a class attribute (property
    injection, recorded when the class body is executed) or an entry of a
    factory's ``deps``.

    Attributes:
        options: The injection request carried by the marker.

    Example:
        >>> class UserService:
        ...     audit = inject(AuditLog, optional=True)
        ...
        ...     def __init__(self, repo=inject("user-repository")):
        ...         self.repo = repo
    """

    def __init__(self, token: Any, **options: Any) -> None:
        self.options = InjectOptions(**_inject_fields(token, options))

    def __set_name__(self, owner: type, name: str) -> None:
        _store_property_dependency(
            owner, PropertyInjection(property_name=name, **_declared_fields(self.options))
        )

    def __repr__(self) -> str:
        return f"Inject({self.options.token!r})"


def register_on_init_hook(target: type, method_name: str) -> None:
    """Declare the method invoked once per instance after injection."""
    current = DI_METADATA_STORE.get(target, ON_INIT_HOOK_KEY)
    if current is not None and current != method_name:
        logger.warning(f"{target.__name__} already declares on-init hook {current!r}; replacing it with {method_name!r}")
    DI_METADATA_STORE.define(target, ON_INIT_HOOK_KEY, method_name)


def get_on_init_hook(target: type) -> Optional[str]:
    for cls in inspect.getmro(target):
        hook = DI_METADATA_STORE.get(cls, ON_INIT_HOOK_KEY)
        if hook is not None:
            return hook
    return None


def get_property_dependencies(target: type) -> List[PropertyInjection]:
    """Property injection requests of a class and its bases, base first."""
    merged: Dict[str, PropertyInjection] = {}
    for cls in reversed(inspect.getmro(target)):
        for dep in DI_METADATA_STORE.get(cls, PROPERTY_INJECT_KEY, default=[]):
            merged[dep.property_name] = dep
    return list(merged.values())


def _discover_constructor_dependencies(target: type) -> List[ParameterInjection]:
    init = target.__init__
    if init is object.__init__:
        return []

    signature = inspect.signature(init)
    try:
        type_hints = get_type_hints(init)
    except (NameError, TypeError):
        # Unresolvable forward references; fall back to raw annotations.
        type_hints = {}

    dependencies: List[ParameterInjection] = []
    position = 0
    for param_name, param in list(signature.parameters.items())[1:]:
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        keyword_only = param.kind is inspect.Parameter.KEYWORD_ONLY
        # Positional-only parameters are passed by position, everything else by name.
        name = None if param.kind is inspect.Parameter.POSITIONAL_ONLY else param_name

        if isinstance(param.default, Inject):
            fields = _declared_fields(param.default.options)
            dependencies.append(ParameterInjection(index=position, name=name, keyword_only=keyword_only, **fields))
        elif param.default is not inspect.Parameter.empty:
            # Plain defaults are left to Python.
            pass
        else:
            hint = type_hints.get(param_name, param.annotation)
            if hint is inspect.Parameter.empty or not inspect.isclass(hint):
                raise InvalidProviderError(
                    f"Parameter '{param_name}' of {target.__name__} has no injection token; "
                    "annotate it with a class or give it an inject(...) default"
                )
            dependencies.append(
                ParameterInjection(index=position, name=name, keyword_only=keyword_only, token=make_token(hint))
            )

        if not keyword_only:
            position += 1

    return dependencies


def get_constructor_dependencies(target: type) -> List[ParameterInjection]:
    """Constructor injection requests of a class.

    Explicit registrations on the class (or the nearest base declaring them)
    win; otherwise the ``__init__`` signature is inspected.
    """
    for cls in inspect.getmro(target):
        if cls is object:
            break
        declared = DI_METADATA_STORE.get(cls, CONSTRUCTOR_INJECT_KEY)
        if declared is not None:
            return [dep for dep in declared if dep is not None]
        if "__init__" in cls.__dict__:
            break

    return _discover_constructor_dependencies(target)


def register_module_metadata(target: type, **options: Any) -> ModuleMetadata:
    """Create or update the module descriptor of a class.

    Args:
        target: The module class.
        **options: imports, exports, providers and provided_by.

    Returns:
        The module descriptor.
    """
    identifier = make_token(target)
    metadata: Optional[ModuleMetadata] = DI_METADATA_STORE.get(target, DI_MODULE_KEY)

    if metadata is None:
        metadata = ModuleMetadata(identifier=identifier, **options)
        DI_METADATA_STORE.define(target, DI_MODULE_KEY, metadata)
        return metadata

    update_module_metadata(metadata, **options)
    return metadata


def update_module_metadata(
    metadata: ModuleMetadata,
    imports: Optional[List[Any]] = None,
    exports: Optional[List[Any]] = None,
    providers: Optional[List[Any]] = None,
    provided_by: Any = None,
    **unsupported: Any,
) -> None:
    """Merge imports, exports and providers into an existing module descriptor.

    Entries already present are skipped. When the module's container already
    exists the new entries are applied to it straight away.

    Raises:
        ModuleMetadataError: If the identifier, container or an already set
            provided_by would be replaced.
    """
    module_name = strip_token_namespace(metadata.identifier)
    container_id = metadata.container.container_id if metadata.container is not None else "-"

    if unsupported:
        raise ModuleMetadataError(
            module_name, container_id, f"Cannot update {', '.join(sorted(unsupported))} of module {module_name}"
        )

    if provided_by is not None and provided_by is not metadata.provided_by:
        if metadata.provided_by is not None or metadata.container is not None:
            raise ModuleMetadataError(module_name, container_id, f"Cannot change provided_by of module {module_name}")
        metadata.provided_by = provided_by

    for spec in providers or []:
        provider = build_provider(spec)
        if metadata.has_provider(provider):
            continue
        metadata.providers.append(provider)
        if metadata.container is not None:
            metadata.container.register(provider)

    for module in imports or []:
        if metadata.has_import(module):
            continue
        metadata.imports.append(module)
        if metadata.container is not None:
            metadata.container.module(module)

    for identifier in exports or []:
        if metadata.has_export(identifier):
            continue
        metadata.exports.append(identifier)
        if metadata.container is not None:
            metadata.container.export_providers_for(identifier)


def get_module_metadata(target: Any) -> Optional[ModuleMetadata]:
    if not inspect.isclass(target):
        return None
    return DI_METADATA_STORE.get(target, DI_MODULE_KEY)

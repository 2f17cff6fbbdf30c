"""Application layer - Dotted-path configuration providers."""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from nestwire.domain import (
    NoProviderFoundError,
    ProviderType,
    ResolutionCriteria,
    build_criteria,
    make_token,
    strip_token_namespace,
)

if TYPE_CHECKING:
    from nestwire.application.container import DIContainer

WILDCARD = "*"


def flatten_config(config: Any, base_path: str = "") -> Dict[str, Any]:
    """Flatten a nested configuration into leaf path -> value.

    Mappings are walked; every other value (lists included) is a leaf.

    Example:
        >>> flatten_config({"name": "A", "db": {"host": "h"}}, "app")
        {'app.name': 'A', 'app.db.host': 'h'}
    """
    entries: Dict[str, Any] = {}

    def walk(value: Any, path: str) -> None:
        if isinstance(value, Mapping):
            for key, child in value.items():
                walk(child, f"{path}.{key}" if path else str(key))
        else:
            entries[path] = value

    walk(config, base_path)
    return entries


def matches_pattern(path: str, pattern: str) -> bool:
    """True if path and pattern agree on every segment they share (``*`` matches any one segment).

    A path shorter than the pattern is a leaf the query reaches into, such as
    a list indexed by the rest of the pattern.

    Example:
        >>> matches_pattern("app.db.host", "app.*")
        True
        >>> matches_pattern("app.hosts", "app.hosts.1")
        True
        >>> matches_pattern("app.db.port", "app.*.host")
        False
    """
    if not pattern:
        return True

    path_segments = path.split(".")
    pattern_segments = pattern.split(".")

    return all(
        expected == WILDCARD or expected == actual for expected, actual in zip(pattern_segments, path_segments)
    )


def set_path_value(target: Dict[str, Any], path: str, value: Any) -> None:
    keys = path.split(".")
    current = target
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def get_path_value(source: Any, path: str) -> Any:
    """Extract a (possibly wildcarded) path from nested mappings and lists.

    Raises:
        KeyError: If a segment does not exist.
    """
    parts = path.split(".") if path else []
    current = source

    for index, part in enumerate(parts):
        rest = ".".join(parts[index + 1 :])

        if part == WILDCARD:
            if not isinstance(current, (Mapping, list)):
                raise KeyError(f"Cannot use '*' on non-container value at '{'.'.join(parts[:index])}'")
            if not rest:
                return current
            if isinstance(current, list):
                return [get_path_value(item, rest) for item in current]
            return {key: get_path_value(child, rest) for key, child in current.items()}

        if isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError) as e:
                raise KeyError(f"Index '{part}' out of range at '{'.'.join(parts[:index])}'") from e
        elif isinstance(current, Mapping):
            if part not in current:
                raise KeyError(f"Key '{part}' not found at '{'.'.join(parts[:index])}'")
            current = current[part]
        else:
            raise KeyError(f"Cannot access '{part}' on non-container value at '{'.'.join(parts[:index])}'")

    return current


class ConfigResolver:
    """Resolves configuration queries by merging config providers across a hierarchy.

    For every registered config path matching the query, the best config
    provider (same selection rule as regular resolution) supplies the value.
    The values are reassembled into one nested object from which the query
    path is extracted.
    """

    def collect_matching_paths(self, container: "DIContainer", query: str, include_descendants: bool = False) -> List[str]:
        """Tokens of every registered path matching the query, nearest container first."""
        matching: Dict[str, None] = {}

        def scan(tokens: Any) -> None:
            for token in tokens:
                if matches_pattern(strip_token_namespace(token), query):
                    matching.setdefault(token, None)

        for current in container.ancestry():
            scan(current.registry.providers.keys())
            for table in current.visible_child_tables(include_descendants):
                scan(table.keys())

        return list(matching)

    def resolve(self, container: "DIContainer", query: str = "", criteria: Optional[Any] = None) -> Any:
        """Resolve a configuration query.

        Args:
            container: Container the query starts from.
            query: Dotted path, ``*`` segments allowed; empty for the whole configuration.
            criteria: Tag and priority criteria applied to each path.

        Returns:
            The value (or nested mapping) at the query path.

        Raises:
            NoProviderFoundError: If no config provider matches the query.

        Example:
            >>> container.register_config_provider({"provide": "app", "use_config": {"name": "A"}})
            >>> ConfigResolver().resolve(container, "app")
            {'name': 'A'}
        """
        query = strip_token_namespace(query)
        config_criteria: ResolutionCriteria = build_criteria(criteria, type=ProviderType.CONFIG)

        merged: Dict[str, Any] = {}
        resolved_any = False

        for path in self.collect_matching_paths(container, query, config_criteria.include_descendants):
            best = container.collect_best_providers_for(path, config_criteria)
            if not best:
                continue
            set_path_value(merged, strip_token_namespace(path), container.resolve_provider_value(best[0]))
            resolved_any = True

        missing = NoProviderFoundError(make_token(query or "<config>"), container.container_id, config_criteria.describe())
        if not resolved_any:
            raise missing

        try:
            return get_path_value(merged, query)
        except KeyError as e:
            raise missing from e

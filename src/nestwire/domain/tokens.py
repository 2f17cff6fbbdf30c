"""Token normalization.

Every dependency identifier (a string, a class or a token produced earlier)
is turned into one namespaced string so that call sites may spell the same
dependency in different ways.
"""

import inspect
from typing import Any

from nestwire.domain.exceptions import InvalidTokenError

TOKEN_NAMESPACE = "nestwire.di.token"

# Attribute a class may define to pin the name its token is derived from.
TOKEN_NAME_ATTRIBUTE = "__di_name__"


def _identifier_name(identifier: Any) -> str:
    if isinstance(identifier, str):
        return identifier

    if inspect.isclass(identifier) or callable(identifier):
        explicit = identifier.__dict__.get(TOKEN_NAME_ATTRIBUTE) if inspect.isclass(identifier) else None
        name = explicit or getattr(identifier, "__name__", None)
        if not isinstance(name, str) or name == "<lambda>":
            raise InvalidTokenError(identifier, "callable has no usable name")
        return name

    raise InvalidTokenError(identifier, f"unsupported identifier type {type(identifier).__name__}")


def make_token(identifier: Any, namespace: str = TOKEN_NAMESPACE) -> str:
    """Normalize a dependency identifier into a namespaced token.

    Args:
        identifier: A string, a class (or named callable), or an existing token.
        namespace: Namespace prefix of the token.

    Returns:
        ``<namespace>:<name>``; an already namespaced token is returned unchanged.

    Raises:
        InvalidTokenError: If the identifier is empty, unnamed or of an unsupported type.

    Example:
        >>> make_token(UserService)
        'nestwire.di.token:UserService'
        >>> make_token(make_token("db")) == make_token("db")
        True
    """
    if identifier is None:
        raise InvalidTokenError(identifier, "identifier is None")

    name = _identifier_name(identifier)

    if not name.strip():
        raise InvalidTokenError(identifier, "identifier is empty")

    if name.startswith(f"{namespace}:"):
        return name

    return f"{namespace}:{name}"


def strip_token_namespace(token: str, namespace: str = TOKEN_NAMESPACE) -> str:
    """Remove the namespace prefix from a token, if present."""
    prefix = f"{namespace}:"
    if token.startswith(prefix):
        return token[len(prefix) :]
    return token


def is_token(value: Any, namespace: str = TOKEN_NAMESPACE) -> bool:
    """Return True if value is already a normalized token."""
    return isinstance(value, str) and value.startswith(f"{namespace}:")


DI_CONTAINER = make_token("CURRENT_DI_CONTAINER")

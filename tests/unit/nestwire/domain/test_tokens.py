"""Unit tests for token normalization."""

import pytest

from nestwire.domain.exceptions import InvalidTokenError
from nestwire.domain.tokens import DI_CONTAINER, TOKEN_NAMESPACE, is_token, make_token, strip_token_namespace


class TestMakeToken:
    """Test cases for make_token."""

    def test_string_is_namespaced(self):
        """Test that a plain string gets the namespace prefix."""
        assert make_token("cache") == f"{TOKEN_NAMESPACE}:cache"

    def test_class_uses_its_name(self):
        """Test that a class normalizes to its name."""

        class UserService:
            pass

        assert make_token(UserService) == f"{TOKEN_NAMESPACE}:UserService"

    def test_class_and_string_spellings_agree(self):
        """Test that a class and its name produce the same token."""

        class UserService:
            pass

        assert make_token(UserService) == make_token("UserService")

    def test_explicit_name_wins_over_class_name(self):
        """Test that __di_name__ pins the token name."""

        class Impl:
            __di_name__ = "user-repository"

        assert make_token(Impl) == make_token("user-repository")

    def test_explicit_name_is_not_inherited(self):
        """Test that a subclass does not reuse its base's explicit name."""

        class Base:
            __di_name__ = "base"

        class Child(Base):
            pass

        assert make_token(Child) == make_token("Child")

    def test_named_function(self):
        """Test that named callables are accepted."""

        def create_engine():
            return None

        assert make_token(create_engine) == make_token("create_engine")

    def test_idempotent(self):
        """Test that normalizing a token returns it unchanged."""
        token = make_token("cache")

        assert make_token(token) == token
        assert make_token(make_token(token)) == token

    def test_custom_namespace(self):
        """Test that another namespace can be used."""
        assert make_token("cache", namespace="app") == "app:cache"

    @pytest.mark.parametrize("identifier", [None, "", "   "])
    def test_empty_identifiers_raise(self, identifier):
        """Test that None and blank strings are rejected."""
        with pytest.raises(InvalidTokenError):
            make_token(identifier)

    def test_lambda_raises(self):
        """Test that an unnamed callable is rejected."""
        with pytest.raises(InvalidTokenError, match="callable has no usable name"):
            make_token(lambda: None)

    @pytest.mark.parametrize("identifier", [42, 1.5, object(), ["cache"]])
    def test_unsupported_types_raise(self, identifier):
        """Test that other object types are rejected."""
        with pytest.raises(InvalidTokenError, match="unsupported identifier type"):
            make_token(identifier)


class TestTokenHelpers:
    """Test cases for the token helpers."""

    def test_strip_namespace(self):
        """Test that the namespace prefix is removed."""
        assert strip_token_namespace(make_token("app.name")) == "app.name"

    def test_strip_namespace_leaves_plain_strings(self):
        """Test that strings without the prefix are returned unchanged."""
        assert strip_token_namespace("app.name") == "app.name"

    def test_is_token(self):
        """Test detection of normalized tokens."""
        assert is_token(make_token("cache"))
        assert not is_token("cache")
        assert not is_token(None)

    def test_container_token(self):
        """Test the well-known container token."""
        assert DI_CONTAINER == f"{TOKEN_NAMESPACE}:CURRENT_DI_CONTAINER"

"""Tests for declared values, placeholders, and identifier validation."""

from __future__ import annotations

import pytest

from client_api_builder.exceptions import ConfigurationError
from client_api_builder.values import (
    ComputedValue,
    LiteralValue,
    MethodValue,
    Param,
    as_value,
    from_method,
    resolve_value,
    validate_identifier,
)


class _Client:
    token = "abc"

    def authorization(self) -> str:
        return f"Bearer {self.token}"


class TestAsValue:
    def test_plain_value_is_literal(self) -> None:
        assert as_value("json") == LiteralValue("json")

    def test_callable_is_computed(self) -> None:
        func = lambda client: 1  # noqa: E731
        assert as_value(func) == ComputedValue(func)

    def test_tagged_values_pass_through(self) -> None:
        value = from_method("authorization")
        assert as_value(value) is value


class TestResolveValue:
    def test_literal(self) -> None:
        assert resolve_value(LiteralValue(5), _Client()) == 5

    def test_method_is_called(self) -> None:
        assert resolve_value(MethodValue("authorization"), _Client()) == "Bearer abc"

    def test_attribute_is_read(self) -> None:
        assert resolve_value(MethodValue("token"), _Client()) == "abc"

    def test_computed_receives_client(self) -> None:
        value = ComputedValue(lambda client: client.token.upper())
        assert resolve_value(value, _Client()) == "ABC"

    def test_missing_method_raises(self) -> None:
        with pytest.raises(AttributeError):
            resolve_value(MethodValue("missing"), _Client())


class TestValidation:
    @pytest.mark.parametrize("name", ["get_user", "_private", "a1"])
    def test_valid_identifiers(self, name: str) -> None:
        assert validate_identifier(name) == name

    @pytest.mark.parametrize("name", ["1abc", "get-user", "", "class", "with space"])
    def test_invalid_identifiers(self, name: str) -> None:
        with pytest.raises(ConfigurationError):
            validate_identifier(name)

    def test_param_rejects_bad_name(self) -> None:
        with pytest.raises(ConfigurationError):
            Param("not valid")

    def test_from_method_rejects_bad_name(self) -> None:
        with pytest.raises(ConfigurationError):
            from_method("no-dashes")

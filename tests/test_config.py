"""Tests for the configuration registry and its immutable snapshots."""

from __future__ import annotations

import json

import pytest

from client_api_builder import config as registry
from client_api_builder.compiler import compile_route
from client_api_builder.exceptions import ConfigurationError
from client_api_builder.models import ClientConfig, RetryPolicy
from client_api_builder.values import LiteralValue, MethodValue, from_method


class TestValidateBaseUrl:
    @pytest.mark.parametrize(
        "url",
        ["http://api.example.com", "https://api.example.com/v1", "http://localhost:8080"],
    )
    def test_accepts_http_urls(self, url: str) -> None:
        assert registry.validate_base_url(url) == url

    @pytest.mark.parametrize(
        "url",
        ["ftp://example.com", "file:///etc/passwd", "javascript:alert(1)", "example.com", "http://"],
    )
    def test_rejects_other_urls(self, url: str) -> None:
        with pytest.raises(ConfigurationError):
            registry.validate_base_url(url)

    def test_rejects_malformed_port(self) -> None:
        with pytest.raises(ConfigurationError):
            registry.validate_base_url("http://example.com:notaport")

    def test_rejects_non_strings(self) -> None:
        with pytest.raises(ConfigurationError):
            registry.validate_base_url(None)  # type: ignore[arg-type]


class TestAccumulation:
    def test_updates_return_new_snapshots(self) -> None:
        original = ClientConfig()
        updated = registry.add_header(original, "Accept", "application/json")
        assert original.headers == {}
        assert updated.headers == {"Accept": LiteralValue("application/json")}

    def test_last_header_wins(self) -> None:
        config = registry.add_header(ClientConfig(), "Accept", "text/plain")
        config = registry.add_header(config, "Accept", "application/json")
        assert config.headers["Accept"] == LiteralValue("application/json")

    def test_query_param_values_are_tagged(self) -> None:
        config = registry.add_query_param(ClientConfig(), "token", "x")
        assert config.query_params["token"] == LiteralValue("x")

    def test_method_values_are_kept(self) -> None:
        config = registry.add_header(ClientConfig(), "Authorization", from_method("authorization"))
        assert config.headers["Authorization"] == MethodValue("authorization")

    def test_connection_options_are_stored_raw(self) -> None:
        config = registry.set_connection_option(ClientConfig(), "read_timeout", 5)
        assert config.connection_options == {"read_timeout": 5}

    def test_builder_must_be_identifier_or_callable(self) -> None:
        assert registry.set_body_builder(ClientConfig(), "query_params").body_builder == "query_params"
        assert registry.set_body_builder(ClientConfig(), "my_encoder").body_builder == "my_encoder"
        with pytest.raises(ConfigurationError):
            registry.set_body_builder(ClientConfig(), 42)
        with pytest.raises(ConfigurationError):
            registry.set_query_builder(ClientConfig(), "not valid")

    def test_retry_policy_keeps_omitted_values(self) -> None:
        config = registry.set_retry_policy(ClientConfig(), max_retries=3)
        config = registry.set_retry_policy(config, sleep=0.5)
        assert config.retry_policy == RetryPolicy(max_retries=3, sleep=0.5)

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            registry.set_retry_policy(ClientConfig(), max_retries=-1)

    def test_routes_are_keyed_by_name(self) -> None:
        compiled = compile_route("get_user", "/users/:id")
        config = registry.add_route(ClientConfig(), compiled)
        assert config.routes == {"get_user": compiled}


class TestSealing:
    def test_sealed_snapshot_rejects_changes(self) -> None:
        sealed = registry.seal(ClientConfig())
        assert sealed.sealed
        with pytest.raises(ConfigurationError, match="sealed"):
            registry.add_header(sealed, "X-Late", "1")
        with pytest.raises(ConfigurationError):
            registry.set_base_url(sealed, "http://example.com")

    def test_seal_is_idempotent(self) -> None:
        sealed = registry.seal(ClientConfig())
        assert registry.seal(sealed) is sealed


class _Encoders:
    def upper(self, value):
        return json.dumps(value).upper()


class TestEncodeWith:
    def test_json(self) -> None:
        assert registry.encode_with("json", {"a": 1}, None) == '{"a": 1}'

    def test_query_params(self) -> None:
        assert registry.encode_with("query_params", {"a": [1, 2]}, None) == "a[]=1&a[]=2"

    def test_client_method(self) -> None:
        assert registry.encode_with("upper", {"a": "b"}, _Encoders()) == '{"A": "B"}'

    def test_callable(self) -> None:
        assert registry.encode_with(lambda value: "custom", {"a": 1}, None) == "custom"

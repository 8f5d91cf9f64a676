"""Configuration registry: set-once accumulation over immutable snapshots.

Every client class owns a :class:`~client_api_builder.models.ClientConfig`.
The functions in this module never mutate a snapshot; each returns an
updated copy which the caller stores back on the class.  This keeps
subclasses and sections isolated from later declarations on their parents:
a subclass starts from whatever snapshot its parent held when it was
created.

A snapshot becomes *sealed* when its client sends its first request.  Any
further accumulation raises :class:`~client_api_builder.exceptions.ConfigurationError`.

Encoding strategies
-------------------

``body_builder`` and ``query_builder`` accept:

* ``"json"`` -- :func:`json.dumps`.
* ``"query_params"`` -- bracket-notation form encoding via
  :func:`client_api_builder.query_params.to_query`.
* any other identifier string -- the client method of that name is called
  with the value.
* a callable ``(value) -> str``.
"""

from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import urlsplit

from client_api_builder.exceptions import ConfigurationError
from client_api_builder.models import ClientConfig, CompiledRoute, RetryPolicy
from client_api_builder.query_params import to_query
from client_api_builder.values import as_value, validate_identifier

JSON_BUILDER = "json"
QUERY_PARAMS_BUILDER = "query_params"

DEFAULT_BODY_BUILDER = JSON_BUILDER
DEFAULT_QUERY_BUILDER = QUERY_PARAMS_BUILDER

_ALLOWED_SCHEMES = ("http", "https")


# --- Validation ---


def validate_base_url(url: str) -> str:
    """Return *url* unchanged if it is an absolute http(s) URL.

    Raises:
        ConfigurationError: If the URL cannot be parsed, has no host, or
            uses a scheme other than ``http``/``https``.
    """
    if not isinstance(url, str):
        raise ConfigurationError(f"Invalid base_url: {url!r}")
    try:
        parts = urlsplit(url)
        # Accessing the port forces validation of bracketed hosts.
        parts.port
    except ValueError as exc:
        raise ConfigurationError(f"Invalid base_url {url!r}: {exc}") from exc
    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise ConfigurationError(
            f"Invalid base_url scheme {parts.scheme or '(none)'!r} in {url!r}; "
            "expected http or https"
        )
    if not parts.netloc:
        raise ConfigurationError(f"Invalid base_url {url!r}: missing host")
    return url


def validate_builder(builder: Any, kind: str) -> Any:
    """Check an encoding strategy is a known name, an identifier, or a callable."""
    if callable(builder):
        return builder
    if isinstance(builder, str):
        return validate_identifier(builder, kind)
    raise ConfigurationError(f"Invalid {kind}: {builder!r}")


def _ensure_mutable(config: ClientConfig) -> None:
    if config.sealed:
        raise ConfigurationError(
            "Client configuration is sealed; declare everything before the first request"
        )


# --- Accumulation ---


def set_base_url(config: ClientConfig, url: str) -> ClientConfig:
    _ensure_mutable(config)
    return config.model_copy(update={"base_url": validate_base_url(url)})


def add_header(config: ClientConfig, name: str, value: Any) -> ClientConfig:
    _ensure_mutable(config)
    headers = dict(config.headers)
    headers[str(name)] = as_value(value)
    return config.model_copy(update={"headers": headers})


def add_query_param(config: ClientConfig, name: str, value: Any) -> ClientConfig:
    _ensure_mutable(config)
    query_params = dict(config.query_params)
    query_params[str(name)] = as_value(value)
    return config.model_copy(update={"query_params": query_params})


def set_connection_option(config: ClientConfig, name: str, value: Any) -> ClientConfig:
    _ensure_mutable(config)
    options = dict(config.connection_options)
    options[str(name)] = value
    return config.model_copy(update={"connection_options": options})


def set_body_builder(config: ClientConfig, builder: Any) -> ClientConfig:
    _ensure_mutable(config)
    return config.model_copy(update={"body_builder": validate_builder(builder, "body_builder")})


def set_query_builder(config: ClientConfig, builder: Any) -> ClientConfig:
    _ensure_mutable(config)
    return config.model_copy(update={"query_builder": validate_builder(builder, "query_builder")})


def set_retry_policy(
    config: ClientConfig,
    max_retries: Optional[int] = None,
    sleep: Optional[float] = None,
) -> ClientConfig:
    """Set the attempt budget and/or the delay, keeping whichever is omitted."""
    _ensure_mutable(config)
    current = config.retry_policy or RetryPolicy()
    values = current.model_dump()
    if max_retries is not None:
        values["max_retries"] = max_retries
    if sleep is not None:
        values["sleep"] = sleep
    try:
        policy = RetryPolicy(**values)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid retry policy: {exc}") from exc
    return config.model_copy(update={"retry_policy": policy})


def add_route(config: ClientConfig, route: CompiledRoute) -> ClientConfig:
    _ensure_mutable(config)
    routes = dict(config.routes)
    routes[route.name] = route
    return config.model_copy(update={"routes": routes})


def seal(config: ClientConfig) -> ClientConfig:
    if config.sealed:
        return config
    return config.model_copy(update={"sealed": True})


# --- Encoding ---


def encode_with(builder: Any, value: Any, client: Any) -> str:
    """Encode *value* with an encoding strategy, evaluated against *client*."""
    if builder == JSON_BUILDER:
        return json.dumps(value)
    if builder == QUERY_PARAMS_BUILDER:
        return to_query(value)
    if isinstance(builder, str):
        return getattr(client, builder)(value)
    return builder(value)

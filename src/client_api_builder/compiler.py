"""Compile route declarations into cached routes and generated methods.

:func:`compile_route` analyses a declaration once, when the client class is
created, and produces a frozen :class:`~client_api_builder.models.CompiledRoute`:

1. The verb is the explicit ``method`` option or is inferred from the
   method name prefix (see :func:`infer_http_method`).
2. ``:name`` path tokens become required keyword arguments.
3. Query and body templates are walked depth-first; every placeholder
   becomes a required keyword argument.
4. ``POST``/``PUT``/``PATCH`` routes without a body template get a
   required ``body`` argument passed through verbatim (``has_body`` and
   ``no_body`` override the inference).
5. Argument names are de-duplicated keeping the first occurrence across
   path, query, and body.

:func:`build_route_methods` then turns a compiled route into two plain
functions that the router installs on the class: ``<name>`` (retry,
validation, decoding) and ``<name>_raw_response`` (a single unvalidated
attempt).  Both accept keyword arguments only.
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Mapping
from typing import Any, Callable, Optional

from pydantic import ValidationError

from client_api_builder.exceptions import ConfigurationError
from client_api_builder.executor import RequestExecutor
from client_api_builder.models import (
    BODY_HTTP_METHODS,
    CompiledRoute,
    HTTPMethod,
    ReturnMode,
    RouteOptions,
    StreamMode,
)
from client_api_builder.templates import extract_arguments, extract_path_parameters
from client_api_builder.values import validate_identifier

_HTTP_METHOD_PREFIXES: tuple[tuple[re.Pattern[str], HTTPMethod], ...] = (
    (re.compile(r"^(?:post|create|add|insert)", re.IGNORECASE), HTTPMethod.POST),
    (re.compile(r"^(?:put|update|modify|change)", re.IGNORECASE), HTTPMethod.PUT),
    (re.compile(r"^(?:delete|remove)", re.IGNORECASE), HTTPMethod.DELETE),
)

CALL_OPTIONS = ("query", "body", "headers", "connection_options", "callback", "file", "io")
"""Keyword arguments a generated method may accept besides its required parameters."""

_DESTINATION_OPTIONS = ("file", "io")

_STREAM_PARAMETERS = {
    StreamMode.FILE: "file",
    StreamMode.IO: "io",
    StreamMode.BLOCK: "callback",
}


def infer_http_method(method_name: str) -> HTTPMethod:
    """Guess the verb from the method name; ``GET`` when no prefix matches.

    Example::

        >>> infer_http_method("create_user")
        <HTTPMethod.POST: 'post'>
        >>> infer_http_method("fetch_user")
        <HTTPMethod.GET: 'get'>
    """
    for pattern, http_method in _HTTP_METHOD_PREFIXES:
        if pattern.match(method_name):
            return http_method
    return HTTPMethod.GET


def requires_body(http_method: HTTPMethod, options: RouteOptions) -> bool:
    if options.no_body is not None:
        return not options.no_body
    if options.has_body is not None:
        return options.has_body
    return http_method in BODY_HTTP_METHODS


def parse_route_options(options: Optional[Mapping[str, Any]]) -> RouteOptions:
    """Validate declaration options, ignoring unknown keys."""
    if isinstance(options, RouteOptions):
        return options
    try:
        parsed = RouteOptions.model_validate(dict(options or {}))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid route options: {exc}") from exc
    if parsed.query is not None and not isinstance(parsed.query, Mapping):
        raise ConfigurationError(f"Route query template must be a mapping, got {type(parsed.query).__name__}")
    return parsed


def parse_stream_mode(value: Any) -> StreamMode:
    if value is None or value is False:
        return StreamMode.NONE
    if value is True:
        return StreamMode.FILE
    return StreamMode(value)


def call_options(route: CompiledRoute) -> tuple[str, ...]:
    """The call options *route* accepts; ``file`` and ``io`` only on routes streaming there."""
    return tuple(
        name for name in CALL_OPTIONS
        if name not in _DESTINATION_OPTIONS or name == route.stream_parameter
    )


def parse_expected_codes(options: RouteOptions) -> tuple[str, ...]:
    if options.expected_response_codes is not None:
        codes = options.expected_response_codes
    elif options.expected_response_code is not None:
        codes = [options.expected_response_code]
    else:
        codes = []
    return tuple(dict.fromkeys(str(code) for code in codes))


def join_path(prefix: str, path: str) -> str:
    """Concatenate a namespace prefix and a path without doubling the slash."""
    if not prefix:
        return path
    if prefix.endswith("/") and path.startswith("/"):
        return prefix + path[1:]
    return prefix + path


def compile_route(
    method_name: str,
    path: str,
    options: Optional[Mapping[str, Any]] = None,
    prefix: str = "",
) -> CompiledRoute:
    """Compile one route declaration.

    Args:
        method_name: Name of the method to generate.
        path: Path template, relative to the namespace *prefix*.
        options: Declaration options (see :class:`~client_api_builder.models.RouteOptions`).
        prefix: Concatenated prefixes of every enclosing namespace.

    Raises:
        ConfigurationError: On an invalid method name, parameter name, or option.
    """
    validate_identifier(method_name, "method name")
    route_options = parse_route_options(options)
    full_path = join_path(prefix, path)

    http_method = route_options.method or infer_http_method(method_name)

    path_arguments = extract_path_parameters(full_path)
    query_arguments = extract_arguments(route_options.query)
    has_body_param = route_options.body is None and requires_body(http_method, route_options)
    body_arguments = extract_arguments(route_options.body)
    if has_body_param:
        body_arguments.append("body")

    required = tuple(dict.fromkeys(path_arguments + query_arguments + body_arguments))
    for name in required:
        validate_identifier(name, "parameter name")
        if name == "self":
            raise ConfigurationError(f"Route {method_name!r} cannot take a parameter named 'self'")

    stream_mode = parse_stream_mode(route_options.stream)
    stream_parameter = _STREAM_PARAMETERS.get(stream_mode)
    if stream_parameter is not None and stream_parameter in required:
        raise ConfigurationError(
            f"Route {method_name!r} streams to {stream_parameter!r}, "
            f"which is also one of its parameters"
        )

    return CompiledRoute(
        name=method_name,
        path=full_path,
        http_method=http_method,
        query_template=route_options.query,
        body_template=route_options.body,
        path_parameters=tuple(dict.fromkeys(path_arguments)),
        required_parameters=required,
        has_body_param=has_body_param,
        expected_response_codes=parse_expected_codes(route_options),
        stream_mode=stream_mode,
        stream_parameter=stream_parameter,
        return_mode=route_options.returns or ReturnMode.DECODED,
        response_callback=route_options.response,
    )


# ---------------------------------------------------------------------------
# Method synthesis
# ---------------------------------------------------------------------------


def split_call_arguments(
    route: CompiledRoute,
    kwargs: dict[str, Any],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate bound parameters from call-time options.

    A required parameter shadows a call option of the same name.

    Raises:
        TypeError: When a required argument is missing or an unknown
            keyword is passed, mirroring a normal Python call.
    """
    missing = [name for name in route.signature_parameters if name not in kwargs]
    if missing:
        names = ", ".join(repr(name) for name in missing)
        raise TypeError(f"{route.name}() missing required keyword argument(s): {names}")

    arguments = {name: kwargs[name] for name in route.required_parameters}
    options = {key: value for key, value in kwargs.items() if key not in arguments}
    accepted = call_options(route)
    unknown = [key for key in options if key not in accepted]
    if unknown:
        names = ", ".join(repr(name) for name in unknown)
        raise TypeError(f"{route.name}() got unexpected keyword argument(s): {names}")
    return arguments, options


def _signature(route: CompiledRoute) -> inspect.Signature:
    parameters = [inspect.Parameter("self", inspect.Parameter.POSITIONAL_OR_KEYWORD)]
    for name in route.signature_parameters:
        parameters.append(inspect.Parameter(name, inspect.Parameter.KEYWORD_ONLY))
    for name in call_options(route):
        if name not in route.signature_parameters:
            parameters.append(inspect.Parameter(name, inspect.Parameter.KEYWORD_ONLY, default=None))
    return inspect.Signature(parameters)


def _describe(route: CompiledRoute) -> str:
    lines = [f"{route.http_method.verb} {route.path}"]
    if route.required_parameters:
        lines.append(f"Parameters: {', '.join(route.required_parameters)}")
    if route.expected_response_codes:
        lines.append(f"Expected status: {', '.join(route.expected_response_codes)}")
    if route.is_streaming:
        lines.append(f"Streams to: {route.stream_parameter}")
    return "\n".join(lines)


def build_route_methods(route: CompiledRoute) -> tuple[Callable[..., Any], Callable[..., Any]]:
    """Create the ``<name>`` and ``<name>_raw_response`` methods for *route*."""

    def route_method(self: Any, **kwargs: Any) -> Any:
        arguments, options = split_call_arguments(route, kwargs)
        return RequestExecutor(self).execute(route, arguments, options)

    def raw_response_method(self: Any, **kwargs: Any) -> Any:
        arguments, options = split_call_arguments(route, kwargs)
        return RequestExecutor(self).execute_raw(route, arguments, options)

    signature = _signature(route)
    description = _describe(route)
    for function, name in (
        (route_method, route.name),
        (raw_response_method, f"{route.name}_raw_response"),
    ):
        function.__name__ = name
        function.__qualname__ = name
        function.__doc__ = description
        function.__signature__ = signature  # type: ignore[attr-defined]
        function.compiled_route = route  # type: ignore[attr-defined]
    return route_method, raw_response_method

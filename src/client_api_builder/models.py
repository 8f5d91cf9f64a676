"""Canonical Pydantic models shared across client_api_builder.

**Configuration models** -- immutable snapshots owned by each client class:
    :class:`RetryPolicy` and :class:`ClientConfig`.  Every registry function
    in :mod:`client_api_builder.config` returns a new snapshot built with
    ``model_copy(update=...)``; a snapshot is never mutated in place.

**Route models** -- produced by the route compiler:
    :class:`HTTPMethod`, :class:`StreamMode`, :class:`ReturnMode`,
    :class:`RouteOptions` (the validated keyword options of a declaration)
    and :class:`CompiledRoute` (the cached artifact every call reuses).

Header and query values, as well as query/body templates, hold arbitrary
Python objects (callables, :class:`~client_api_builder.values.Param`
placeholders), so those fields are typed ``Any`` and are stored untouched.
"""

from __future__ import annotations

import enum
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HTTPMethod(str, enum.Enum):
    """HTTP verbs a route may use, including the WebDAV extensions."""

    GET = "get"
    POST = "post"
    PUT = "put"
    PATCH = "patch"
    DELETE = "delete"
    HEAD = "head"
    OPTIONS = "options"
    TRACE = "trace"
    COPY = "copy"
    LOCK = "lock"
    UNLOCK = "unlock"
    MKCOL = "mkcol"
    MOVE = "move"
    PROPFIND = "propfind"
    PROPPATCH = "proppatch"

    @property
    def verb(self) -> str:
        """Upper-case form sent on the wire (``"GET"``)."""
        return self.value.upper()


BODY_HTTP_METHODS = frozenset({HTTPMethod.POST, HTTPMethod.PUT, HTTPMethod.PATCH})
"""Verbs that get a synthesized ``body`` parameter when no body template is declared."""


class StreamMode(str, enum.Enum):
    """How a route delivers its response body."""

    NONE = "none"
    FILE = "file"
    IO = "io"
    BLOCK = "block"


class ReturnMode(str, enum.Enum):
    """What a non-streaming route returns to the caller."""

    DECODED = "decoded"
    BODY = "body"
    RESPONSE = "response"


# --- Configuration ---


class RetryPolicy(BaseModel):
    """Bounded retry settings for transient transport failures.

    ``max_retries`` is the total number of attempts, so the default of ``1``
    means a request is sent once and never retried.
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=1, ge=0, description="Total attempts per call")
    sleep: float = Field(default=0.05, ge=0, description="Seconds to wait between attempts")


DEFAULT_RETRY_POLICY = RetryPolicy()


class ClientConfig(BaseModel):
    """Immutable configuration snapshot of one client class.

    ``None`` in ``base_url``, ``body_builder``, ``query_builder`` or
    ``retry_policy`` means "not declared here": a root client falls back to
    the library defaults while a section falls back to its parent.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    base_url: Optional[str] = None
    headers: dict[str, Any] = Field(default_factory=dict)
    query_params: dict[str, Any] = Field(default_factory=dict)
    connection_options: dict[str, Any] = Field(default_factory=dict)
    body_builder: Any = None
    query_builder: Any = None
    retry_policy: Optional[RetryPolicy] = None
    routes: dict[str, "CompiledRoute"] = Field(default_factory=dict)
    sealed: bool = False

    @property
    def response_hooks(self) -> dict[str, Callable[..., Any]]:
        """Declaration-time response callbacks keyed by route name."""
        return {
            name: route.response_callback
            for name, route in self.routes.items()
            if route.response_callback is not None
        }


# --- Routes ---


class RouteOptions(BaseModel):
    """Validated keyword options of a route declaration.

    Unknown keys are ignored so that declarations written for newer versions
    keep working.
    """

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    method: Optional[HTTPMethod] = None
    query: Any = None
    body: Any = None
    has_body: Optional[bool] = None
    no_body: Optional[bool] = None
    expected_response_code: Optional[Union[int, str]] = None
    expected_response_codes: Optional[list[Union[int, str]]] = None
    stream: Optional[Union[bool, StreamMode]] = None
    returns: Optional[ReturnMode] = None
    response: Optional[Callable[..., Any]] = None

    @field_validator("method", mode="before")
    @classmethod
    def _lower_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value

    @field_validator("stream", mode="before")
    @classmethod
    def _lower_stream(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value


class CompiledRoute(BaseModel):
    """Everything a generated route method needs at call time.

    Attributes:
        name: Name of the generated method.
        path: Path template including any namespace prefixes.
        http_method: Verb sent on the wire.
        query_template: Declared query structure (may contain placeholders).
        body_template: Declared body structure (may contain placeholders).
        path_parameters: Names of ``:name`` tokens, in path order.
        required_parameters: Keyword arguments the method requires: path
            parameters, then query placeholders, then body placeholders,
            then the synthesized ``body`` parameter, without duplicates.
        has_body_param: Whether a raw ``body`` argument replaces a template.
        expected_response_codes: Stringified acceptable statuses; empty
            means any 2xx.
        stream_mode: Streaming delivery, :attr:`StreamMode.NONE` if none.
        stream_parameter: ``"file"`` or ``"io"`` for streaming routes that
            need a destination argument.
        return_mode: What non-streaming calls return.
        response_callback: Declaration-time callback for decoded data.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    path: str
    http_method: HTTPMethod
    query_template: Any = None
    body_template: Any = None
    path_parameters: tuple[str, ...] = ()
    required_parameters: tuple[str, ...] = ()
    has_body_param: bool = False
    expected_response_codes: tuple[str, ...] = ()
    stream_mode: StreamMode = StreamMode.NONE
    stream_parameter: Optional[str] = None
    return_mode: ReturnMode = ReturnMode.DECODED
    response_callback: Optional[Callable[..., Any]] = None

    @property
    def is_streaming(self) -> bool:
        return self.stream_mode is not StreamMode.NONE

    @property
    def signature_parameters(self) -> tuple[str, ...]:
        """Required parameters plus the streaming destination argument, if any."""
        if self.stream_parameter and self.stream_parameter not in self.required_parameters:
            return self.required_parameters + (self.stream_parameter,)
        return self.required_parameters


ClientConfig.model_rebuild()

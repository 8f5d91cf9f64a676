"""Declarative API client base class.

Subclass :class:`Router` and describe the API in the class body; every
route becomes a method when the class is created::

    class UsersClient(Router):
        base_url = "https://api.example.com"
        headers = {
            "Accept": "application/json",
            "Authorization": from_method("authorization"),
        }
        query_params = {"cache_buster": lambda client: int(time.time() * 1000)}

        get_user = route("/users/:id", query={"app_id": Param("app_id")})
        create_user = route("/users", expected_response_code=201)

        admin = namespace(
            "/admin",
            delete_user=route("/users/:id"),
        )

        def authorization(self):
            return f"Bearer {self.token}"

    client = UsersClient()
    client.get_user(id=1, app_id=7)       # GET /users/1?app_id=7
    client.create_user(body={"name": "x"})

Recognised class attributes are ``base_url``, ``headers``,
``query_params``, ``connection_options``, ``body_builder``,
``query_builder``, ``max_retries`` and ``retry_sleep``, together with
:func:`route`, :func:`namespace` and
:func:`~client_api_builder.section.section` declarations.  Each one is fed
through the configuration registry (:mod:`client_api_builder.config`), and
the same registry is reachable through classmethods (:meth:`Router.add_header`,
:meth:`Router.add_route`, :meth:`Router.namespace`, ...) for declarations
made after the class body.

The instance methods below are the building blocks the
:class:`~client_api_builder.executor.RequestExecutor` calls; override any of
them to customise a single step.
"""

from __future__ import annotations

import json
import os
import socket
from collections.abc import Mapping
from typing import Any, Callable, ClassVar, Optional

import httpx

from client_api_builder import config as registry
from client_api_builder.compiler import build_route_methods, compile_route, join_path
from client_api_builder.exceptions import (
    ConfigurationError,
    TransientTransportError,
    UnexpectedResponseError,
)
from client_api_builder.executor import RequestContext, resolve_stream_path
from client_api_builder.instrumentation import format_request_log
from client_api_builder.models import DEFAULT_RETRY_POLICY, ClientConfig, CompiledRoute, RetryPolicy
from client_api_builder.transport import TRANSIENT_HTTPX_ERRORS, Body, ChunkHandler, HttpxTransport, Transport
from client_api_builder.values import as_value, resolve_value, validate_identifier

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    TransientTransportError,
    *TRANSIENT_HTTPX_ERRORS,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
    EOFError,
)
"""Failures :meth:`Router.retry_request` treats as transient."""

ALLOWED_FILE_MODES = ("w", "wb", "a", "ab", "w+", "wb+", "a+", "ab+")

_BINARY_FILE_MODES = {"w": "wb", "a": "ab", "w+": "wb+", "a+": "ab+"}


# ---------------------------------------------------------------------------
# Class-body declarations
# ---------------------------------------------------------------------------


class Declaration:
    """Base for objects placed in a class body and applied on subclass creation."""

    def declare(self, owner: type[Router], name: str, prefix: str = "") -> None:
        raise NotImplementedError


class RouteDeclaration(Declaration):
    """A pending :func:`route`; also usable as a decorator for a response callback."""

    def __init__(self, path: str, options: dict[str, Any]) -> None:
        self.path = path
        self.options = options
        self.name: Optional[str] = None

    def __call__(self, callback: Callable[..., Any]) -> RouteDeclaration:
        self.options["response"] = callback
        self.name = callback.__name__
        return self

    def declare(self, owner: type[Router], name: str, prefix: str = "") -> None:
        owner._register_route(self.name or name, self.path, self.options, prefix)


class NamespaceDeclaration(Declaration):
    """A pending :func:`namespace` grouping routes under a path prefix."""

    def __init__(self, prefix: str, members: dict[str, Declaration]) -> None:
        self.prefix = prefix
        self.members = members

    def declare(self, owner: type[Router], name: str, prefix: str = "") -> None:
        scope = join_path(prefix, self.prefix)
        for member_name, member in self.members.items():
            if not isinstance(member, (RouteDeclaration, NamespaceDeclaration)):
                raise ConfigurationError(
                    f"Namespace {self.prefix!r} may only contain routes and namespaces, "
                    f"got {member_name}={member!r}"
                )
            member.declare(owner, member_name, scope)


def route(path: str, **options: Any) -> RouteDeclaration:
    """Declare a route in a class body.

    Used as a decorator, the decorated function becomes the response
    callback: it is called with the root client and the decoded body, and
    its return value is returned to the caller::

        @route("/sessions", body={"user": Param("user")}, expected_response_code=201)
        def create_session(self, data):
            self.token = data["token"]
            return self.token
    """
    return RouteDeclaration(path, options)


def namespace(prefix: str, **members: Declaration) -> NamespaceDeclaration:
    """Group route declarations under a common path prefix; namespaces nest."""
    return NamespaceDeclaration(prefix, members)


class RouteScope:
    """Explicit namespace scope for declarations made outside a class body.

    Example::

        v2 = UsersClient.namespace("/v2")
        v2.route("get_widget", "/widgets/:id")
        v2.namespace("/admin").route("delete_widget", "/widgets/:id")
    """

    def __init__(self, owner: type[Router], prefix: str) -> None:
        self.owner = owner
        self.prefix = prefix

    def route(self, method_name: str, path: str, **options: Any) -> CompiledRoute:
        return self.owner._register_route(method_name, path, options, self.prefix)

    def namespace(self, prefix: str) -> RouteScope:
        return RouteScope(self.owner, join_path(self.prefix, prefix))


def _header_text(value: Any) -> str:
    if isinstance(value, (str, bytes)):
        return value
    return str(value)


def _join_url(base_url: Optional[str], path: str) -> str:
    if not base_url:
        return path
    if not path:
        return base_url
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


class Router:
    """Base class for declared API clients.

    Args:
        transport: Transport used to send requests.  Defaults to a
            :class:`~client_api_builder.transport.HttpxTransport`, created
            lazily.

    Attributes:
        response: Last response received by this client.
        request_context: State of the last request (URI, headers, body...).
        total_request_time: Duration in seconds of the last attempt.
    """

    _config: ClassVar[ClientConfig] = ClientConfig()

    _transport: Optional[Transport] = None
    response: Optional[httpx.Response] = None
    request_context: Optional[RequestContext] = None
    total_request_time: Optional[float] = None

    def __init__(self, transport: Optional[Transport] = None) -> None:
        self._transport = transport

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._config = cls._config.model_copy(update={"sealed": False})
        body = dict(cls.__dict__)

        if "base_url" in body and body["base_url"] is not None:
            cls.set_base_url(body["base_url"])
        for attribute, add in (
            ("headers", cls.add_header),
            ("query_params", cls.add_query_param),
            ("connection_options", cls.set_connection_option),
        ):
            declared = body.get(attribute)
            if isinstance(declared, Mapping):
                for name, value in declared.items():
                    add(name, value)
        if body.get("body_builder") is not None:
            cls.set_body_builder(body["body_builder"])
        if body.get("query_builder") is not None:
            cls.set_query_builder(body["query_builder"])
        if "max_retries" in body or "retry_sleep" in body:
            cls.configure_retries(body.get("max_retries"), body.get("retry_sleep"))

        for name, value in body.items():
            if isinstance(value, NamespaceDeclaration):
                delattr(cls, name)
            if isinstance(value, Declaration):
                value.declare(cls, name)

    # ------------------------------------------------------------------ #
    # Configuration registry
    # ------------------------------------------------------------------ #

    @classmethod
    def configuration(cls) -> ClientConfig:
        """Current configuration snapshot of this client class."""
        return cls._config

    @classmethod
    def set_base_url(cls, url: str) -> ClientConfig:
        cls._config = registry.set_base_url(cls._config, url)
        return cls._config

    @classmethod
    def add_header(cls, name: str, value: Any) -> ClientConfig:
        cls._config = registry.add_header(cls._config, name, value)
        return cls._config

    @classmethod
    def add_query_param(cls, name: str, value: Any) -> ClientConfig:
        cls._config = registry.add_query_param(cls._config, name, value)
        return cls._config

    @classmethod
    def set_connection_option(cls, name: str, value: Any) -> ClientConfig:
        cls._config = registry.set_connection_option(cls._config, name, value)
        return cls._config

    @classmethod
    def set_body_builder(cls, builder: Any) -> ClientConfig:
        cls._config = registry.set_body_builder(cls._config, builder)
        return cls._config

    @classmethod
    def set_query_builder(cls, builder: Any) -> ClientConfig:
        cls._config = registry.set_query_builder(cls._config, builder)
        return cls._config

    @classmethod
    def configure_retries(
        cls,
        max_retries: Optional[int] = None,
        sleep: Optional[float] = None,
    ) -> ClientConfig:
        """Set the total attempts per call and the delay between attempts."""
        cls._config = registry.set_retry_policy(cls._config, max_retries, sleep)
        return cls._config

    @classmethod
    def add_route(cls, method_name: str, path: str, **options: Any) -> CompiledRoute:
        """Compile a route and install ``method_name`` and ``<method_name>_raw_response``."""
        return cls._register_route(method_name, path, options, "")

    @classmethod
    def namespace(cls, prefix: str) -> RouteScope:
        return RouteScope(cls, prefix)

    @classmethod
    def add_section(
        cls,
        name: str,
        section_class: type,
        ignore_headers: bool = False,
        ignore_query: bool = False,
    ) -> type:
        """Attach *section_class* as a nested client reachable as ``instance.<name>``."""
        from client_api_builder.section import SectionDeclaration

        SectionDeclaration(section_class, ignore_headers, ignore_query).declare(cls, name)
        return getattr(cls, f"{name}_router")

    @classmethod
    def get_route(cls, method_name: str) -> CompiledRoute:
        try:
            return cls._config.routes[method_name]
        except KeyError:
            raise KeyError(f"{cls.__name__} has no route {method_name!r}") from None

    @classmethod
    def check_member_name(cls, name: str, kind: str = "method name") -> str:
        """Reject invalid identifiers and names of library-provided members."""
        validate_identifier(name, kind)
        for klass in cls.__mro__:
            if not klass.__module__.startswith("client_api_builder."):
                continue
            for candidate in (name, f"{name}_raw_response"):
                if candidate in klass.__dict__:
                    raise ConfigurationError(
                        f"Invalid {kind}: {name!r} clashes with {klass.__name__}.{candidate}"
                    )
        return name

    @classmethod
    def _register_route(
        cls,
        method_name: str,
        path: str,
        options: Optional[Mapping[str, Any]],
        prefix: str,
    ) -> CompiledRoute:
        cls.check_member_name(method_name)
        compiled = compile_route(method_name, path, options, prefix)
        cls._config = registry.add_route(cls._config, compiled)
        method, raw_response_method = build_route_methods(compiled)
        setattr(cls, method_name, method)
        setattr(cls, f"{method_name}_raw_response", raw_response_method)
        return compiled

    @classmethod
    def _seal(cls) -> None:
        cls._config = registry.seal(cls._config)

    def seal_configuration(self) -> None:
        """Freeze the configuration of this client's class."""
        type(self)._seal()

    # ------------------------------------------------------------------ #
    # Instance context
    # ------------------------------------------------------------------ #

    @property
    def root_router(self) -> Router:
        """The top-most client; instance state and dispatch live here."""
        return self

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            self._transport = HttpxTransport()
        return self._transport

    @transport.setter
    def transport(self, value: Transport) -> None:
        self._transport = value

    def resolve(self, value: Any) -> Any:
        """Resolve a declared value against the root client."""
        return resolve_value(as_value(value), self.root_router)

    # ------------------------------------------------------------------ #
    # Effective configuration
    # ------------------------------------------------------------------ #

    def resolve_base_url(self, options: dict[str, Any]) -> Optional[str]:
        return type(self)._config.base_url

    def effective_body_builder(self) -> Any:
        return type(self)._config.body_builder or registry.DEFAULT_BODY_BUILDER

    def effective_query_builder(self) -> Any:
        return type(self)._config.query_builder or registry.DEFAULT_QUERY_BUILDER

    def retry_policy(self) -> RetryPolicy:
        return type(self)._config.retry_policy or DEFAULT_RETRY_POLICY

    def default_headers(self) -> dict[str, Any]:
        root = self.root_router
        return {name: resolve_value(value, root) for name, value in type(self)._config.headers.items()}

    def default_query_params(self) -> dict[str, Any]:
        root = self.root_router
        return {name: resolve_value(value, root) for name, value in type(self)._config.query_params.items()}

    def default_connection_options(self) -> dict[str, Any]:
        return dict(type(self)._config.connection_options)

    # ------------------------------------------------------------------ #
    # Request building
    # ------------------------------------------------------------------ #

    def build_headers(self, options: dict[str, Any]) -> dict[str, str]:
        headers = self.default_headers()
        for name, value in (options.get("headers") or {}).items():
            headers[name] = self.resolve(value)
        return {name: _header_text(value) for name, value in headers.items() if value is not None}

    def build_connection_options(self, options: dict[str, Any]) -> dict[str, Any]:
        connection_options = self.default_connection_options()
        connection_options.update(options.get("connection_options") or {})
        return connection_options

    def build_query(self, query: Optional[Mapping[str, Any]], options: dict[str, Any]) -> Optional[str]:
        """Merge default, call-time, and template query values and encode them.

        Returns ``None`` when there is nothing to send, so no ``?`` is added.
        """
        params = self.default_query_params()
        for name, value in (options.get("query") or {}).items():
            params[name] = self.resolve(value)
        if query:
            params.update(query)
        if not params:
            return None
        encoded = registry.encode_with(self.effective_query_builder(), params, self.root_router)
        return encoded or None

    def build_body(self, body: Any, options: dict[str, Any]) -> Body:
        """Apply a call-time ``body`` override and encode the result.

        Mapping bodies are merged with a mapping override; any other
        override replaces the body.  Strings and bytes are sent unencoded.
        """
        if "body" in options:
            override = options["body"]
            if isinstance(body, Mapping) and isinstance(override, Mapping):
                body = {**body, **override}
            else:
                body = override
        if body is None or isinstance(body, (str, bytes)):
            return body
        return registry.encode_with(self.effective_body_builder(), body, self.root_router)

    def build_uri(self, path: str, query: Optional[Mapping[str, Any]], options: dict[str, Any]) -> str:
        uri = _join_url(self.resolve_base_url(options), path)
        query_string = self.build_query(query, options)
        return f"{uri}?{query_string}" if query_string else uri

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def request(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
    ) -> httpx.Response:
        return self.transport.request(method, uri, body, headers, connection_options)

    def stream(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
        on_chunk: ChunkHandler,
    ) -> httpx.Response:
        return self.transport.stream(method, uri, body, headers, connection_options, on_chunk)

    def stream_to_io(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
        io: Any,
    ) -> httpx.Response:
        return self.stream(
            method=method,
            uri=uri,
            body=body,
            headers=headers,
            connection_options=connection_options,
            on_chunk=lambda response, chunk: io.write(chunk),
        )

    def stream_to_file(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
        file: Any,
    ) -> httpx.Response:
        """Stream the response body into *file*, closing it on every exit path.

        The file mode comes from the ``file_mode`` connection option (default
        ``wb``) and must be one of :data:`ALLOWED_FILE_MODES`; files are
        always opened in binary mode.

        Raises:
            ValueError: On a disallowed mode or a path containing ``..``.
        """
        transport_options = dict(connection_options)
        mode = transport_options.pop("file_mode", None) or "wb"
        if str(mode) not in ALLOWED_FILE_MODES:
            raise ValueError(
                f"Invalid file mode: {mode!r}. Allowed modes: {', '.join(ALLOWED_FILE_MODES)}"
            )
        path = os.fspath(file)
        if ".." in path or "\0" in path:
            raise ValueError("Invalid file path: potential path traversal detected")
        path = resolve_stream_path(path)

        with open(path, _BINARY_FILE_MODES.get(mode, mode)) as io:
            return self.stream_to_io(
                method=method,
                uri=uri,
                body=body,
                headers=headers,
                connection_options=transport_options,
                io=io,
            )

    def retry_request(self, exc: BaseException, options: dict[str, Any]) -> bool:
        """Whether *exc* is a transient failure worth another attempt."""
        return isinstance(exc, RETRYABLE_ERRORS)

    # ------------------------------------------------------------------ #
    # Response handling
    # ------------------------------------------------------------------ #

    def expected_response(
        self,
        response: httpx.Response,
        expected_response_codes: tuple[str, ...],
        options: dict[str, Any],
    ) -> None:
        """Raise :class:`UnexpectedResponseError` unless the status is acceptable."""
        if not expected_response_codes and response.is_success:
            return
        if str(response.status_code) in expected_response_codes:
            return
        raise UnexpectedResponseError(f"unexpected response code {response.status_code}", response)

    def parse_response(self, response: httpx.Response, options: dict[str, Any]) -> Any:
        """Decode a JSON body; empty bodies decode to ``None``."""
        if not response.content:
            return None
        try:
            return json.loads(response.text)
        except json.JSONDecodeError as exc:
            raise UnexpectedResponseError(f"Invalid JSON in response: {exc}", response) from exc

    def handle_response(
        self,
        response: httpx.Response,
        options: dict[str, Any],
        callback: Optional[Callable[..., Any]] = None,
    ) -> Any:
        data = self.parse_response(response, options)
        if callback is None:
            return data
        return callback(self.root_router, data)

    def request_log_message(self) -> str:
        """One-line summary of the last request, e.g. ``GET http://host/users[200] took 5ms``."""
        return format_request_log(self.request_context, self.total_request_time)

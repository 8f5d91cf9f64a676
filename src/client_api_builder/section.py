"""Nested sub-clients ("sections") sharing a root client's state.

A section groups the routes of one area of an API under an attribute of
its parent client::

    class LoginSection(Section):
        base_url = "https://login.example.com"
        headers = {"X-AuthType": "JSON"}

        @route("/sessions", body={"username": Param("username")}, expected_response_code=201)
        def create_session(self, data):
            self.auth_token = data["session"]["token"]
            return self.auth_token

    class Api(Router):
        base_url = "https://api.example.com"
        headers = {"Content-Type": "application/json"}

        login = section(LoginSection)

    api = Api()
    api.login.create_session(username="me")   # POST https://login.example.com/sessions
    api.auth_token                             # set by the callback on the root client

Configuration is resolved through the parent chain at call time:

* ``base_url``, the encoding strategies and the retry policy fall back to
  the parent when the section does not declare its own.
* Headers and query parameters are the parent's overlaid with the
  section's, unless the section is attached with ``ignore_headers`` /
  ``ignore_query``.
* Connection options are the parent's overlaid with the section's.

Dispatch, streaming, status validation, and response handling are
delegated to the root client, and every value, ``{name}`` path member and
response callback is evaluated against the root client, so state stored by
one section is visible to the root and to sibling sections.

Sections may declare their own sections without limit.
"""

from __future__ import annotations

from typing import Any, Callable, ClassVar, Optional

import httpx

from client_api_builder.exceptions import ConfigurationError
from client_api_builder.executor import RequestContext
from client_api_builder.models import RetryPolicy
from client_api_builder.router import Declaration, Router
from client_api_builder.transport import Body, ChunkHandler, Transport


class Section(Router):
    """Base class for nested clients.

    Instances are created lazily by the owning client on first attribute
    access and cached on it.

    Args:
        parent: The client instance owning this section.
        ignore_headers: Send only the section's own default headers.
        ignore_query: Send only the section's own default query parameters.
    """

    parent_type: ClassVar[Optional[type[Router]]] = None

    parent: Optional[Router] = None
    ignore_headers: bool = False
    ignore_query: bool = False

    def __init__(self, parent: Router, ignore_headers: bool = False, ignore_query: bool = False) -> None:
        self.parent = parent
        self.ignore_headers = ignore_headers
        self.ignore_query = ignore_query

    def _parent(self) -> Router:
        if self.parent is None:
            raise RuntimeError(f"{type(self).__name__} is not attached to a parent client")
        return self.parent

    @property
    def root_router(self) -> Router:
        return self._parent().root_router

    @property
    def transport(self) -> Transport:
        return self.root_router.transport

    @property
    def response(self) -> Optional[httpx.Response]:  # type: ignore[override]
        return self.root_router.response

    @property
    def request_context(self) -> Optional[RequestContext]:  # type: ignore[override]
        return self.root_router.request_context

    @property
    def total_request_time(self) -> Optional[float]:  # type: ignore[override]
        return self.root_router.total_request_time

    def seal_configuration(self) -> None:
        type(self)._seal()
        self._parent().seal_configuration()

    # --- configuration inherited from the parent ---

    def resolve_base_url(self, options: dict[str, Any]) -> Optional[str]:
        return type(self)._config.base_url or self._parent().resolve_base_url(options)

    def effective_body_builder(self) -> Any:
        return type(self)._config.body_builder or self._parent().effective_body_builder()

    def effective_query_builder(self) -> Any:
        return type(self)._config.query_builder or self._parent().effective_query_builder()

    def retry_policy(self) -> RetryPolicy:
        return type(self)._config.retry_policy or self._parent().retry_policy()

    def default_headers(self) -> dict[str, Any]:
        headers = {} if self.ignore_headers else self._parent().default_headers()
        headers.update(super().default_headers())
        return headers

    def default_query_params(self) -> dict[str, Any]:
        params = {} if self.ignore_query else self._parent().default_query_params()
        params.update(super().default_query_params())
        return params

    def default_connection_options(self) -> dict[str, Any]:
        connection_options = self._parent().default_connection_options()
        connection_options.update(super().default_connection_options())
        return connection_options

    # --- behaviour delegated to the parent, and through it to the root ---

    def request(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
    ) -> httpx.Response:
        return self._parent().request(
            method=method,
            uri=uri,
            body=body,
            headers=headers,
            connection_options=connection_options,
        )

    def stream(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
        on_chunk: ChunkHandler,
    ) -> httpx.Response:
        return self._parent().stream(
            method=method,
            uri=uri,
            body=body,
            headers=headers,
            connection_options=connection_options,
            on_chunk=on_chunk,
        )

    def stream_to_io(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
        io: Any,
    ) -> httpx.Response:
        return self._parent().stream_to_io(
            method=method,
            uri=uri,
            body=body,
            headers=headers,
            connection_options=connection_options,
            io=io,
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
        return self._parent().stream_to_file(
            method=method,
            uri=uri,
            body=body,
            headers=headers,
            connection_options=connection_options,
            file=file,
        )

    def retry_request(self, exc: BaseException, options: dict[str, Any]) -> bool:
        return self.root_router.retry_request(exc, options)

    def expected_response(
        self,
        response: httpx.Response,
        expected_response_codes: tuple[str, ...],
        options: dict[str, Any],
    ) -> None:
        self.root_router.expected_response(response, expected_response_codes, options)

    def parse_response(self, response: httpx.Response, options: dict[str, Any]) -> Any:
        return self.root_router.parse_response(response, options)

    def handle_response(
        self,
        response: httpx.Response,
        options: dict[str, Any],
        callback: Optional[Callable[..., Any]] = None,
    ) -> Any:
        return self.root_router.handle_response(response, options, callback)


class SectionAccessor:
    """Descriptor creating a section instance on first access and caching it."""

    def __init__(self, name: str, section_type: type[Section], ignore_headers: bool, ignore_query: bool) -> None:
        self.name = name
        self.section_type = section_type
        self.ignore_headers = ignore_headers
        self.ignore_query = ignore_query

    def __get__(self, instance: Optional[Router], owner: type) -> Any:
        if instance is None:
            return self.section_type
        cache_key = f"_section_{self.name}"
        cached = instance.__dict__.get(cache_key)
        if cached is None:
            cached = self.section_type(
                instance,
                ignore_headers=self.ignore_headers,
                ignore_query=self.ignore_query,
            )
            instance.__dict__[cache_key] = cached
        return cached


class SectionDeclaration(Declaration):
    """A pending :func:`section` in a class body."""

    def __init__(self, section_class: type, ignore_headers: bool = False, ignore_query: bool = False) -> None:
        if not (isinstance(section_class, type) and issubclass(section_class, Section)):
            raise ConfigurationError(f"Sections must subclass Section, got {section_class!r}")
        self.section_class = section_class
        self.ignore_headers = ignore_headers
        self.ignore_query = ignore_query

    def declare(self, owner: type[Router], name: str, prefix: str = "") -> None:
        owner.check_member_name(name, "section name")
        owner.check_member_name(f"{name}_router", "section name")
        camel_name = "".join(part.capitalize() for part in name.split("_"))
        bound = type(
            f"{owner.__name__}{camel_name}Section",
            (self.section_class,),
            {
                "parent_type": owner,
                "__module__": owner.__module__,
                "__qualname__": f"{owner.__qualname__}.{name}_router",
                "__doc__": self.section_class.__doc__,
            },
        )
        setattr(owner, f"{name}_router", bound)
        setattr(owner, name, SectionAccessor(name, bound, self.ignore_headers, self.ignore_query))


def section(
    section_class: Optional[type] = None,
    *,
    ignore_headers: bool = False,
    ignore_query: bool = False,
) -> Any:
    """Declare a nested section in a class body.

    Works as a plain call or as a class decorator::

        login = section(LoginSection, ignore_headers=True)

        @section(ignore_query=True)
        class reports(Section):
            get_report = route("/reports/:id")
    """
    if section_class is None:
        return lambda cls: SectionDeclaration(cls, ignore_headers, ignore_query)
    return SectionDeclaration(section_class, ignore_headers, ignore_query)

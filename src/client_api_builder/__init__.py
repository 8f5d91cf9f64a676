"""client_api_builder -- declarative HTTP API clients.

Describe an API as a :class:`Router` subclass (base URL, headers, query
parameters, routes, nested sections) and every route becomes a method that
builds the request, sends it through a transport, retries transient
failures, validates the status, and decodes the JSON response::

    from client_api_builder import Param, Router, route

    class UsersClient(Router):
        base_url = "https://api.example.com"
        headers = {"Content-Type": "application/json"}

        get_user = route("/users/:id", query={"app_id": Param("app_id")})

    UsersClient().get_user(id=1, app_id=7)

Modules:
    router: The :class:`Router` base class and class-body declarations.
    section: Nested sub-clients (:class:`Section`, :func:`section`).
    compiler: Route declaration -> compiled route -> generated methods.
    executor: Per-call orchestration (:class:`RequestExecutor`).
    config: Configuration registry over immutable snapshots.
    query_params: Bracket-notation query string encoding.
    transport: httpx-backed transport collaborator.
    instrumentation: Request timing, events, and request logging.
    exceptions: Exception hierarchy with exit-code mapping.
"""

from client_api_builder.exceptions import (
    ClientApiBuilderError,
    ConfigurationError,
    TransientTransportError,
    UnexpectedResponseError,
)
from client_api_builder.instrumentation import LogSubscriber, subscribe, unsubscribe
from client_api_builder.models import HTTPMethod, ReturnMode, StreamMode
from client_api_builder.query_params import QueryParams, to_query
from client_api_builder.router import Router, namespace, route
from client_api_builder.section import Section, section
from client_api_builder.transport import HttpxTransport, Transport
from client_api_builder.values import Param, from_method

__version__ = "0.4.0"

__all__ = [
    "ClientApiBuilderError",
    "ConfigurationError",
    "HTTPMethod",
    "HttpxTransport",
    "LogSubscriber",
    "Param",
    "QueryParams",
    "ReturnMode",
    "Router",
    "Section",
    "StreamMode",
    "TransientTransportError",
    "Transport",
    "UnexpectedResponseError",
    "from_method",
    "namespace",
    "route",
    "section",
    "subscribe",
    "to_query",
    "unsubscribe",
]

"""Transport collaborators that put requests on the wire.

The router never talks to the network directly; it calls a
:class:`Transport`:

* :meth:`Transport.request` -- one request, one fully-read response.
* :meth:`Transport.stream` -- one request whose body is handed to
  ``on_chunk(response, chunk)`` as it arrives.

:class:`HttpxTransport` is the default implementation.  It opens a fresh
:class:`httpx.Client` for every request (there is no connection pooling)
and maps connection options onto httpx settings:

=================== ====================================================
option              effect
=================== ====================================================
``timeout``         overall timeout, overrides the two below
``open_timeout``    connect timeout in seconds (default 30)
``read_timeout``    read/write/pool timeout in seconds (default 60)
``verify``          TLS verification flag, CA bundle path or SSL context
``follow_redirects`` follow 3xx responses (default ``False``)
``cert``            client certificate
``trust_env``       honour proxy/CA environment variables
``proxy``           proxy URL
``max_redirects``   redirect limit when following redirects
=================== ====================================================

Network failures (timeouts, connection errors, unexpected disconnects) are
re-raised as :class:`~client_api_builder.exceptions.TransientTransportError`
with the original httpx exception chained as ``__cause__``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Union

import httpx

from client_api_builder.exceptions import TransientTransportError

logger = logging.getLogger(__name__)

Body = Optional[Union[str, bytes]]
ChunkHandler = Callable[[httpx.Response, bytes], Any]

DEFAULT_OPEN_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 60.0

_PASSTHROUGH_OPTIONS = ("cert", "trust_env", "proxy", "max_redirects")
_TIMEOUT_OPTIONS = ("timeout", "open_timeout", "read_timeout")
_KNOWN_OPTIONS = frozenset(
    _PASSTHROUGH_OPTIONS + _TIMEOUT_OPTIONS + ("verify", "follow_redirects")
)

TRANSIENT_HTTPX_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)
"""httpx failures that are safe to retry."""


class Transport(ABC):
    """Interface the request executor dispatches through."""

    @abstractmethod
    def request(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
    ) -> httpx.Response:
        """Send one request and return the fully-read response."""

    @abstractmethod
    def stream(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
        on_chunk: ChunkHandler,
    ) -> httpx.Response:
        """Send one request, feeding each received body chunk to *on_chunk*."""


class HttpxTransport(Transport):
    """Default :class:`Transport` backed by :class:`httpx.Client`.

    Args:
        httpx_transport: Optional low-level httpx transport, e.g.
            :class:`httpx.MockTransport` in tests.
    """

    def __init__(self, httpx_transport: Optional[httpx.BaseTransport] = None) -> None:
        self._httpx_transport = httpx_transport

    def request(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
    ) -> httpx.Response:
        try:
            with self._client(connection_options) as client:
                return client.request(method, uri, content=body, headers=headers)
        except TRANSIENT_HTTPX_ERRORS as exc:
            raise TransientTransportError(f"{method} {uri} failed: {exc}") from exc

    def stream(
        self,
        method: str,
        uri: str,
        body: Body,
        headers: dict[str, str],
        connection_options: dict[str, Any],
        on_chunk: ChunkHandler,
    ) -> httpx.Response:
        try:
            with self._client(connection_options) as client:
                with client.stream(method, uri, content=body, headers=headers) as response:
                    for chunk in response.iter_bytes():
                        on_chunk(response, chunk)
                    return response
        except TRANSIENT_HTTPX_ERRORS as exc:
            raise TransientTransportError(f"{method} {uri} failed: {exc}") from exc

    def _client(self, connection_options: dict[str, Any]) -> httpx.Client:
        kwargs: dict[str, Any] = {
            "timeout": build_timeout(connection_options),
            "verify": connection_options.get("verify", True),
            "follow_redirects": connection_options.get("follow_redirects", False),
        }
        for key in _PASSTHROUGH_OPTIONS:
            if key in connection_options:
                kwargs[key] = connection_options[key]
        ignored = sorted(key for key in connection_options if key not in _KNOWN_OPTIONS)
        if ignored:
            logger.debug("Ignoring unsupported connection options: %s", ", ".join(ignored))
        if self._httpx_transport is not None:
            kwargs["transport"] = self._httpx_transport
        return httpx.Client(**kwargs)


def build_timeout(connection_options: dict[str, Any]) -> httpx.Timeout:
    """Build an :class:`httpx.Timeout` from connection options."""
    timeout = connection_options.get("timeout")
    if isinstance(timeout, httpx.Timeout):
        return timeout
    if timeout is not None:
        return httpx.Timeout(timeout)
    read_timeout = connection_options.get("read_timeout", DEFAULT_READ_TIMEOUT)
    open_timeout = connection_options.get("open_timeout", DEFAULT_OPEN_TIMEOUT)
    return httpx.Timeout(read_timeout, connect=open_timeout)

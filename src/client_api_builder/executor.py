"""Run one invocation of a compiled route.

:class:`RequestExecutor` is created per call by the generated route
methods.  It drives the per-call state machine::

    resolve request -> dispatch -> (retry -> dispatch)* -> validate status
        -> decode | return raw

All the building blocks it calls (``build_uri``, ``build_body``,
``build_headers``, ``build_connection_options``, ``request``/``stream*``,
``expected_response``, ``handle_response``, ``retry_request``,
``retry_policy``) are methods of the client, so sections and user
subclasses can override any single step.

Only dispatch is retried.  Status validation, decoding, and response
callbacks run once, after the last attempt, and their errors reach the
caller untouched.

A streaming attempt that fails after writing part of the body is retried
only when its destination can be rewound: append-mode files are truncated
back to their size before the call, seekable writers are rewound to their
starting position.  Callbacks and non-seekable writers that already
received bytes make the failure final.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx

from client_api_builder.instrumentation import instrument_request
from client_api_builder.models import CompiledRoute, ReturnMode, StreamMode
from client_api_builder.templates import bind_template, render_path

logger = logging.getLogger(__name__)

RestorePoint = Callable[[], None]


def resolve_stream_path(file: Any) -> str:
    return os.path.abspath(os.path.expanduser(os.fspath(file)))


def _is_seekable(io: Any) -> bool:
    seekable = getattr(io, "seekable", None)
    return bool(seekable is not None and seekable())


@dataclass
class RequestContext:
    """Mutable per-call state, kept on the root client as ``request_context``.

    Attributes:
        route: The compiled route being executed.
        method: Upper-case verb sent on the wire.
        uri: Fully resolved URI including the query string.
        body: Encoded request body, if any.
        headers: Resolved request headers.
        connection_options: Resolved transport options.
        expected_response_codes: Statuses accepted by validation.
        attempt: 1-based number of the current dispatch attempt.
        elapsed: Seconds spent in the last attempt.
        response: Last response received.
        error: Error raised by the last attempt, if it failed.
        bytes_received: Body bytes handed to a callback or non-seekable
            writer during the current attempt.
    """

    route: CompiledRoute
    method: str = ""
    uri: Optional[str] = None
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    connection_options: dict[str, Any] = field(default_factory=dict)
    expected_response_codes: tuple[str, ...] = ()
    attempt: int = 0
    elapsed: Optional[float] = None
    response: Optional[httpx.Response] = None
    error: Optional[BaseException] = None
    bytes_received: int = 0


class RequestExecutor:
    """Executes compiled routes on behalf of a client instance.

    Args:
        client: The router or section instance the route was called on.
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._root = client.root_router

    def execute(
        self,
        route: CompiledRoute,
        arguments: dict[str, Any],
        options: dict[str, Any],
    ) -> Any:
        """Dispatch with retries, validate the status, and produce the result."""
        context = RequestContext(
            route=route,
            expected_response_codes=route.expected_response_codes,
        )
        response = self._dispatch_with_retries(route, arguments, options, context)
        self._client.expected_response(response, route.expected_response_codes, options)

        if route.is_streaming or route.return_mode is ReturnMode.RESPONSE:
            return response
        if route.return_mode is ReturnMode.BODY:
            return response.text

        callback = options.get("callback") or route.response_callback
        return self._client.handle_response(response, options, callback)

    def execute_raw(
        self,
        route: CompiledRoute,
        arguments: dict[str, Any],
        options: dict[str, Any],
        context: Optional[RequestContext] = None,
    ) -> httpx.Response:
        """Build the request and send it once, without validation or retries."""
        client = self._client
        root = self._root
        if context is None:
            context = RequestContext(
                route=route,
                expected_response_codes=route.expected_response_codes,
            )

        path = render_path(route.path, arguments, root)
        query = None
        if route.query_template is not None:
            query = bind_template(route.query_template, arguments)
        if route.has_body_param:
            body = arguments["body"]
        else:
            body = bind_template(route.body_template, arguments)

        context.method = route.http_method.verb
        context.uri = client.build_uri(path, query, options)
        context.body = client.build_body(body, options)
        context.headers = client.build_headers(options)
        context.connection_options = client.build_connection_options(options)
        root.request_context = context

        client.seal_configuration()
        response = self._send(route, context, options)
        context.response = response
        root.response = response
        return response

    def _send(
        self,
        route: CompiledRoute,
        context: RequestContext,
        options: dict[str, Any],
    ) -> httpx.Response:
        request_kwargs: dict[str, Any] = {
            "method": context.method,
            "uri": context.uri,
            "body": context.body,
            "headers": context.headers,
            "connection_options": context.connection_options,
        }
        client = self._client
        if route.stream_mode is StreamMode.FILE:
            return client.stream_to_file(file=options["file"], **request_kwargs)
        if route.stream_mode is StreamMode.IO:
            destination = options["io"]
            if not _is_seekable(destination):
                destination = _CountingWriter(destination, context)
            return client.stream_to_io(io=destination, **request_kwargs)
        if route.stream_mode is StreamMode.BLOCK:
            callback = options["callback"]

            def on_chunk(response: httpx.Response, chunk: bytes) -> None:
                context.bytes_received += len(chunk)
                callback(response, chunk)

            return client.stream(on_chunk=on_chunk, **request_kwargs)
        return client.request(**request_kwargs)

    def _restore_point(
        self,
        route: CompiledRoute,
        options: dict[str, Any],
        context: RequestContext,
    ) -> Optional[RestorePoint]:
        """Capture the destination state so a failed attempt can be undone."""
        if route.stream_mode is StreamMode.FILE:
            path = resolve_stream_path(options["file"])
            size = os.path.getsize(path) if os.path.isfile(path) else 0

            def truncate() -> None:
                # write modes truncate on reopen
                mode = str(context.connection_options.get("file_mode") or "wb")
                if mode.startswith("a") and os.path.isfile(path):
                    os.truncate(path, size)

            return truncate
        if route.stream_mode is StreamMode.IO and _is_seekable(options["io"]):
            destination = options["io"]
            position = destination.tell()

            def rewind() -> None:
                destination.seek(position)
                destination.truncate()

            return rewind
        return None

    def _dispatch_with_retries(
        self,
        route: CompiledRoute,
        arguments: dict[str, Any],
        options: dict[str, Any],
        context: RequestContext,
    ) -> httpx.Response:
        policy = self._client.retry_policy()
        attempts = max(policy.max_retries, 1)
        restore = self._restore_point(route, options, context) if attempts > 1 else None
        while True:
            context.attempt += 1
            context.bytes_received = 0
            try:
                with instrument_request(self._root, context):
                    return self.execute_raw(route, arguments, options, context)
            except Exception as exc:
                if context.attempt >= attempts or not self._client.retry_request(exc, options):
                    raise
                if restore is not None:
                    restore()
                elif context.bytes_received:
                    logger.debug(
                        "%s failed after streaming %d bytes to a destination that cannot be rewound",
                        route.name,
                        context.bytes_received,
                    )
                    raise
                logger.debug(
                    "%s failed on attempt %d/%d (%r), retrying in %.3fs",
                    route.name,
                    context.attempt,
                    attempts,
                    exc,
                    policy.sleep,
                )
                time.sleep(policy.sleep)


class _CountingWriter:
    """Forwards writes to a non-seekable destination, counting the bytes."""

    def __init__(self, target: Any, context: RequestContext) -> None:
        self._target = target
        self._context = context

    def write(self, chunk: bytes) -> Any:
        self._context.bytes_received += len(chunk)
        return self._target.write(chunk)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._target, name)

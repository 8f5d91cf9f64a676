"""Request timing and publish/subscribe instrumentation.

Every dispatch attempt runs inside :func:`instrument_request`, which times
the attempt, stores the duration on the client (``total_request_time``, in
seconds) and publishes a :class:`RequestEvent` to every subscriber.

Subscribers are plain callables registered with :func:`subscribe`.
:class:`LogSubscriber` is the bundled one; it writes one line per attempt::

    GET https://api.example.com/users[200] took 42ms

Exceptions raised by a subscriber propagate to the caller, except while
the attempt itself is failing: the original failure is never masked, and
the subscriber error is logged instead.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from client_api_builder.executor import RequestContext

logger = logging.getLogger(__name__)


@dataclass
class RequestEvent:
    """One finished (or failed) dispatch attempt.

    Attributes:
        client: The root client instance that sent the request.
        context: Per-call request state (method, URI, response, error).
        duration: Wall-clock seconds spent in the attempt.
    """

    client: Any
    context: RequestContext
    duration: float

    @property
    def error(self) -> Optional[BaseException]:
        return self.context.error


Subscriber = Callable[[RequestEvent], Any]

_subscribers: list[Subscriber] = []


def subscribe(subscriber: Subscriber) -> Subscriber:
    """Register *subscriber* for every request event; usable as a decorator."""
    if subscriber not in _subscribers:
        _subscribers.append(subscriber)
    return subscriber


def unsubscribe(subscriber: Subscriber) -> None:
    if subscriber in _subscribers:
        _subscribers.remove(subscriber)


def publish(event: RequestEvent) -> None:
    for subscriber in list(_subscribers):
        subscriber(event)


@contextmanager
def instrument_request(client: Any, context: RequestContext) -> Iterator[RequestContext]:
    """Time the enclosed dispatch and publish a :class:`RequestEvent`."""
    start = time.monotonic()
    context.error = None
    try:
        yield context
    except BaseException as exc:
        context.error = exc
        _finish(client, context, start, failing=True)
        raise
    _finish(client, context, start, failing=False)


def _finish(client: Any, context: RequestContext, start: float, failing: bool) -> None:
    duration = time.monotonic() - start
    context.elapsed = duration
    client.total_request_time = duration
    event = RequestEvent(client=client, context=context, duration=duration)
    if not failing:
        publish(event)
        return
    try:
        publish(event)
    except Exception:
        logger.exception("Request subscriber failed while reporting %s", context.error)


def format_request_log(context: Optional[RequestContext], duration: Optional[float]) -> str:
    """Render the one-line summary used by :class:`LogSubscriber`.

    Returns ``""`` without a request and ``"GET [no URI]"`` before a URI
    was resolved.
    """
    if context is None:
        return ""
    method = (context.method or "").upper()
    if not context.uri:
        return f"{method} [no URI]"
    parts = urlsplit(context.uri)
    status = context.response.status_code if context.response is not None else "UNKNOWN"
    millis = int((duration or 0) * 1000)
    return f"{method} {parts.scheme}://{parts.netloc}{parts.path}[{status}] took {millis}ms"


class LogSubscriber:
    """Log every request attempt through the standard :mod:`logging` module.

    Example::

        LogSubscriber(logging.getLogger("myapp.http")).subscribe()
    """

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self.logger = logger or logging.getLogger("client_api_builder.requests")
        self.level = level

    def subscribe(self) -> LogSubscriber:
        subscribe(self)
        return self

    def unsubscribe(self) -> None:
        unsubscribe(self)

    def __call__(self, event: RequestEvent) -> None:
        message = format_request_log(event.context, event.duration)
        if event.error is not None:
            message = f"{message} failed: {event.error!r}"
        self.logger.log(self.level, message)

"""Tests for request events, subscribers, and request log lines."""

from __future__ import annotations

import logging

import httpx
import pytest

from client_api_builder import LogSubscriber, Router, TransientTransportError, route, subscribe, unsubscribe
from client_api_builder.compiler import compile_route
from client_api_builder.executor import RequestContext
from client_api_builder.instrumentation import RequestEvent, format_request_log


def _context(**kwargs) -> RequestContext:
    return RequestContext(route=compile_route("get_user", "/users/:id"), **kwargs)


class TestFormatRequestLog:
    def test_no_request(self) -> None:
        assert format_request_log(None, None) == ""

    def test_no_uri(self) -> None:
        assert format_request_log(_context(method="GET"), None) == "GET [no URI]"

    def test_query_is_dropped(self) -> None:
        context = _context(
            method="GET",
            uri="http://api.example.com/users/1?token=secret",
            response=httpx.Response(200),
        )
        assert format_request_log(context, 0.123) == "GET http://api.example.com/users/1[200] took 123ms"

    def test_missing_duration_and_response(self) -> None:
        context = _context(method="post", uri="http://api.example.com/users")
        assert format_request_log(context, None) == "POST http://api.example.com/users[UNKNOWN] took 0ms"


class TestSubscribers:
    def test_event_per_request(self, client, network) -> None:
        events: list[RequestEvent] = []
        subscribe(events.append)
        client.get_user(id=1)
        assert len(events) == 1
        event = events[0]
        assert event.client is client
        assert event.context.uri == "http://api.example.com/users/1"
        assert event.error is None
        assert event.duration >= 0

    def test_unsubscribe(self, client, network) -> None:
        events: list[RequestEvent] = []
        subscribe(events.append)
        unsubscribe(events.append)
        client.get_user(id=1)
        assert events == []

    def test_event_per_attempt(self, network, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("client_api_builder.executor.time.sleep", lambda seconds: None)

        class RetryingClient(Router):
            base_url = "http://retry.example.com"
            max_retries = 2
            get_status = route("/status")

        events: list[RequestEvent] = []
        subscribe(lambda event: events.append((event.context.attempt, event.error)))
        network.queue(httpx.ConnectError("refused"))
        RetryingClient(transport=network.transport()).get_status()
        assert events[0][0] == 1
        assert isinstance(events[0][1], TransientTransportError)
        assert events[1] == (2, None)

    def test_subscriber_error_does_not_mask_failure(
        self, network, caplog: pytest.LogCaptureFixture
    ) -> None:
        class FailingClient(Router):
            base_url = "http://failing.example.com"
            get_status = route("/status")

        def broken(event: RequestEvent) -> None:
            raise RuntimeError("subscriber bug")

        subscribe(broken)
        network.queue(httpx.ConnectError("refused"))
        with caplog.at_level(logging.ERROR, logger="client_api_builder.instrumentation"):
            with pytest.raises(TransientTransportError):
                FailingClient(transport=network.transport()).get_status()
        assert "subscriber failed" in caplog.text


class TestLogSubscriber:
    def test_logs_each_request(
        self, client, network, caplog: pytest.LogCaptureFixture
    ) -> None:
        LogSubscriber(logging.getLogger("tests.http")).subscribe()
        with caplog.at_level(logging.INFO, logger="tests.http"):
            client.get_user(id=1)
        assert "GET http://api.example.com/users/1[200] took" in caplog.text

    def test_logs_failures(self, network, caplog: pytest.LogCaptureFixture) -> None:
        class DownClient(Router):
            base_url = "http://down.example.com"
            get_status = route("/status")

        subscriber = LogSubscriber(level=logging.WARNING).subscribe()
        network.queue(httpx.ConnectError("refused"))
        with caplog.at_level(logging.WARNING, logger="client_api_builder.requests"):
            with pytest.raises(TransientTransportError):
                DownClient(transport=network.transport()).get_status()
        subscriber.unsubscribe()
        assert "GET http://down.example.com/status[UNKNOWN]" in caplog.text
        assert "failed" in caplog.text

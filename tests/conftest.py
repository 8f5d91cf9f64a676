"""Shared test fixtures for client_api_builder.

Provides a recording fake network built on :class:`httpx.MockTransport`, a
ready-made client hierarchy mirroring a typical JSON API, and isolation of
the global instrumentation subscribers.  These fixtures are discovered by
pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from client_api_builder import Param, Router, Section, from_method, route, section
from client_api_builder import instrumentation
from client_api_builder.transport import HttpxTransport


# ---------------------------------------------------------------------------
# Fake network
# ---------------------------------------------------------------------------


Reply = Union[httpx.Response, BaseException, Callable[[httpx.Request], httpx.Response]]


class FakeNetwork:
    """Replays queued replies and records every request it receives.

    When the queue is empty the default reply (``200`` with ``{}``) is used.
    Exceptions in the queue are raised from inside the httpx transport, the
    way a real network failure would be.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.replies: list[Reply] = []

    def queue(self, *replies: Reply) -> FakeNetwork:
        self.replies.extend(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.replies:
            return httpx.Response(200, json={})
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return reply(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last.content)

    def transport(self) -> HttpxTransport:
        return HttpxTransport(httpx.MockTransport(self.handler))

    @staticmethod
    def json_response(data: Any, status_code: int = 200) -> httpx.Response:
        return httpx.Response(status_code, json=data)

    @staticmethod
    def broken_body(*chunks: bytes, error: Optional[Exception] = None) -> httpx.Response:
        """A ``200`` whose body yields *chunks* and then fails mid-transfer."""

        def body():
            yield from chunks
            raise error or httpx.ReadError("connection dropped")

        return httpx.Response(200, content=body())


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture(autouse=True)
def _isolate_subscribers():
    """Restore the global instrumentation subscribers after every test."""
    saved = list(instrumentation._subscribers)
    yield
    instrumentation._subscribers[:] = saved


# ---------------------------------------------------------------------------
# Sample clients
# ---------------------------------------------------------------------------


class LoginSection(Section):
    base_url = "http://login.example.com"
    headers = {"X-AuthType": "JSON"}
    connection_options = {"open_timeout": 1000}

    @route(
        "/sessions",
        body={"username": Param("username"), "password": Param("password")},
        expected_response_code=201,
    )
    def create_session(self, data):
        self.auth_token = data["session"]["token"]
        return self.auth_token


class UsersSection(Section):
    headers = {"X-Section": "users"}

    get_users = route("/users")
    get_user = route("/users/:id")


class ExampleClient(Router):
    base_url = "http://api.example.com"
    headers = {
        "Content-Type": "application/json",
        "Authorization": from_method("authorization"),
    }
    connection_options = {"open_timeout": 100}

    auth_token: Optional[str] = None

    get_users = route("/users", query={"app_id": Param("app_id")})
    get_user = route("/users/:id")
    create_user = route("/users", expected_response_code=201)
    update_user = route("/users/:id", body={"name": Param("name")})
    delete_user = route("/users/:id")

    login = section(LoginSection)
    users = section(UsersSection, ignore_headers=True)

    def authorization(self):
        if self.auth_token is None:
            return None
        return f"Bearer {self.auth_token}"


@pytest.fixture
def client(network: FakeNetwork) -> ExampleClient:
    return ExampleClient(transport=network.transport())

"""Header/query values and template placeholders.

Default headers and query parameters are declared with one of three value
kinds, resolved against a client instance on every request:

* :class:`LiteralValue` -- sent as-is.
* :class:`MethodValue` -- the named attribute of the client is looked up
  and, when callable, called with no arguments.
* :class:`ComputedValue` -- a function receiving the client instance.

:func:`as_value` converts the shorthand used in class bodies (plain values,
lambdas, :func:`from_method`) into one of these kinds, and
:func:`resolve_value` is the single place they are evaluated.

:class:`Param` marks a slot in a query or body template that is filled from
a keyword argument of the generated route method.
"""

from __future__ import annotations

import keyword
import re
from dataclasses import dataclass
from typing import Any, Callable, Union

from client_api_builder.exceptions import ConfigurationError

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(name: str, kind: str = "name") -> str:
    """Return *name* if it is a usable Python identifier, else raise ConfigurationError."""
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name) or keyword.iskeyword(name):
        raise ConfigurationError(f"Invalid {kind}: {name!r}")
    return name


@dataclass(frozen=True)
class LiteralValue:
    value: Any


@dataclass(frozen=True)
class MethodValue:
    name: str


@dataclass(frozen=True)
class ComputedValue:
    func: Callable[[Any], Any]


DeclaredValue = Union[LiteralValue, MethodValue, ComputedValue]


def from_method(name: str) -> MethodValue:
    """Declare a value produced by the client attribute or method *name*."""
    return MethodValue(validate_identifier(name, "method name"))


def as_value(raw: Any) -> DeclaredValue:
    """Normalise a declared header/query value into its tagged form."""
    if isinstance(raw, (LiteralValue, MethodValue, ComputedValue)):
        return raw
    if callable(raw):
        return ComputedValue(raw)
    return LiteralValue(raw)


def call_instance_member(client: Any, name: str) -> Any:
    """Look up *name* on *client* and call it if it is callable."""
    member = getattr(client, name)
    return member() if callable(member) else member


def resolve_value(value: DeclaredValue, client: Any) -> Any:
    """Evaluate a declared value in the context of *client*."""
    if isinstance(value, LiteralValue):
        return value.value
    if isinstance(value, MethodValue):
        return call_instance_member(client, value.name)
    return value.func(client)


@dataclass(frozen=True)
class Param:
    """Placeholder for a required keyword argument inside a query/body template.

    Example::

        route("/users", query={"app_id": Param("app_id")})
    """

    name: str

    def __post_init__(self) -> None:
        validate_identifier(self.name, "parameter name")

"""Nested query-string encoding with bracket notation.

:class:`QueryParams` serialises arbitrarily nested mappings and sequences
into a URL query string the way Rails/Rack style APIs expect it::

    >>> QueryParams().to_query({"user": {"id": 4, "tags": ["a", "b"]}})
    'user[id]=4&user[tags][]=a&user[tags][]=b'

Mapping keys are visited in insertion order and sequence elements in
index order, so the same input always produces the same string.
Escaping uses form encoding (space becomes ``+``) unless a custom escape
function is supplied.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Optional
from urllib.parse import quote_plus


def stringify(value: Any) -> str:
    """Render a scalar the way it appears in a query string.

    ``None`` becomes the empty string and booleans are lowercased so that
    ``True`` encodes as ``true``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


class QueryParams:
    """Stateless bracket-notation query encoder.

    Args:
        name_value_separator: Placed between a name and its value.
        param_separator: Placed between two ``name=value`` pairs.
        custom_escape: Optional replacement for :func:`urllib.parse.quote_plus`.
    """

    def __init__(
        self,
        name_value_separator: str = "=",
        param_separator: str = "&",
        custom_escape: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.name_value_separator = name_value_separator
        self.param_separator = param_separator
        self.custom_escape = custom_escape

    def to_query(self, data: Any, namespace: Optional[str] = None) -> str:
        """Encode *data* as a query string, optionally nested under *namespace*."""
        if isinstance(data, Mapping):
            pairs = self._from_mapping(data, self.escape(namespace) if namespace else None)
        elif _is_sequence(data):
            pairs = self._from_sequence(data, f"{self.escape(namespace)}[]" if namespace else "[]")
        elif namespace:
            return f"{self.escape(namespace)}{self.name_value_separator}{self.escape(stringify(data))}"
        else:
            return self.escape(stringify(data))
        return self.param_separator.join(pairs)

    def escape(self, text: str) -> str:
        if self.custom_escape is not None:
            return self.custom_escape(text)
        return quote_plus(text)

    def _from_mapping(self, data: Mapping[Any, Any], namespace: Optional[str]) -> list[str]:
        pairs: list[str] = []
        for key, value in data.items():
            escaped_key = self.escape(stringify(key))
            name = f"{namespace}[{escaped_key}]" if namespace else escaped_key
            if isinstance(value, Mapping):
                pairs.extend(self._from_mapping(value, name))
            elif _is_sequence(value):
                pairs.extend(self._from_sequence(value, f"{name}[]"))
            else:
                pairs.append(f"{name}{self.name_value_separator}{self.escape(stringify(value))}")
        return pairs

    def _from_sequence(self, data: Any, namespace: str) -> list[str]:
        pairs: list[str] = []
        for value in data:
            if isinstance(value, Mapping):
                pairs.extend(self._from_mapping(value, namespace))
            elif _is_sequence(value):
                pairs.extend(self._from_sequence(value, f"{namespace}[]"))
            else:
                pairs.append(f"{namespace}{self.name_value_separator}{self.escape(stringify(value))}")
        return pairs


_DEFAULT_ENCODER = QueryParams()


def to_query(data: Any, namespace: Optional[str] = None) -> str:
    """Encode *data* with the default separators and form escaping."""
    return _DEFAULT_ENCODER.to_query(data, namespace)

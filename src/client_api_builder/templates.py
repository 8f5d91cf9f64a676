"""Static analysis and binding of path, query, and body templates.

Paths use two placeholder forms:

* ``:name`` -- a required keyword argument of the generated method.
* ``{name}`` -- an attribute or method of the client, evaluated per call.

Both are percent-encoded (no safe characters) when substituted.

Query and body templates are nested mappings/sequences.  A
:class:`~client_api_builder.values.Param` leaf, or a string containing
``{name}``, refers to a keyword argument.  A string that consists of a
single ``{name}`` is replaced by the argument itself (not its string form)
so that numbers and nested structures survive JSON encoding.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from client_api_builder.query_params import stringify
from client_api_builder.values import Param, call_instance_member

PATH_TOKEN_RE = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)|\{([A-Za-z_][A-Za-z0-9_]*)\}")
STRING_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def extract_path_parameters(path: str) -> list[str]:
    """Return the ``:name`` parameters of *path* in order of appearance."""
    return [match.group(1) for match in PATH_TOKEN_RE.finditer(path) if match.group(1)]


def extract_path_members(path: str) -> list[str]:
    """Return the ``{name}`` client members referenced by *path*."""
    return [match.group(2) for match in PATH_TOKEN_RE.finditer(path) if match.group(2)]


def extract_arguments(template: Any) -> list[str]:
    """Collect placeholder names depth-first, in declaration order.

    Duplicates are kept; the compiler de-duplicates across all templates.

    Example::

        >>> extract_arguments({"foo": "bar", "name": Param("name"),
        ...                    "nested": [1, {"x": Param("x"), "name": Param("name")}]})
        ['name', 'x', 'name']
    """
    if isinstance(template, Param):
        return [template.name]
    if isinstance(template, str):
        return STRING_PLACEHOLDER_RE.findall(template)
    if isinstance(template, Mapping):
        names: list[str] = []
        for value in template.values():
            names.extend(extract_arguments(value))
        return names
    if isinstance(template, (list, tuple)):
        names = []
        for value in template:
            names.extend(extract_arguments(value))
        return names
    return []


def bind_template(template: Any, arguments: Mapping[str, Any]) -> Any:
    """Return a fresh copy of *template* with placeholders replaced by *arguments*.

    The declared template is never modified, so one compiled route can be
    bound concurrently by independent calls.
    """
    if isinstance(template, Param):
        return arguments[template.name]
    if isinstance(template, str):
        whole = STRING_PLACEHOLDER_RE.fullmatch(template)
        if whole:
            return arguments[whole.group(1)]
        return STRING_PLACEHOLDER_RE.sub(lambda m: stringify(arguments[m.group(1)]), template)
    if isinstance(template, Mapping):
        return {key: bind_template(value, arguments) for key, value in template.items()}
    if isinstance(template, list):
        return [bind_template(value, arguments) for value in template]
    if isinstance(template, tuple):
        return tuple(bind_template(value, arguments) for value in template)
    return template


def render_path(path: str, arguments: Mapping[str, Any], client: Any) -> str:
    """Substitute path parameters and client members into *path*."""

    def _replace(match: re.Match[str]) -> str:
        argument, member = match.groups()
        if argument:
            value = arguments[argument]
        else:
            value = call_instance_member(client, member)
        return quote(stringify(value), safe="")

    return PATH_TOKEN_RE.sub(_replace, path)

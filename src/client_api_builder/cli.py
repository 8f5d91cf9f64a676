"""``client-api-builder`` command line: inspect and call declared clients.

Clients are referenced as ``MODULE:CLASS`` (for example
``myapp.clients:UsersClient``).  Routes inside sections are addressed with
dots: ``login.create_session``.

Example::

    client-api-builder routes myapp.clients:UsersClient
    client-api-builder call myapp.clients:UsersClient get_user -p id=1 -p app_id=7
    client-api-builder call myapp.clients:UsersClient get_user -p id=1 -p app_id=7 --raw

Parameter values are parsed as JSON when possible (``-p ids=[1,2]``) and
passed as strings otherwise.  Library errors exit with the code of the
raised :class:`~client_api_builder.exceptions.ClientApiBuilderError`.
"""

from __future__ import annotations

import importlib
import json
import logging
from typing import Any, Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from client_api_builder import __version__
from client_api_builder.exceptions import ClientApiBuilderError
from client_api_builder.exit_codes import EXIT_CONFIGURATION_ERROR, EXIT_INVALID_USAGE
from client_api_builder.instrumentation import LogSubscriber
from client_api_builder.models import CompiledRoute
from client_api_builder.router import Router
from client_api_builder.section import SectionAccessor

app = typer.Typer(
    name="client-api-builder",
    help="Inspect and call declarative API clients.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

stdout = Console()
stderr = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"client-api-builder {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log every request to stderr."
    ),
) -> None:
    """Root callback executed before every sub-command."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
        LogSubscriber().subscribe()


def load_client(target: str) -> type[Router]:
    """Import ``MODULE:CLASS`` and check it is a :class:`Router` subclass."""
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        stderr.print(f"[red]Expected MODULE:CLASS, got {target!r}[/red]")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    try:
        obj: Any = importlib.import_module(module_name)
        for part in attribute.split("."):
            obj = getattr(obj, part)
    except (ImportError, AttributeError) as exc:
        stderr.print(f"[red]Cannot load {target}: {exc}[/red]")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if not (isinstance(obj, type) and issubclass(obj, Router)):
        stderr.print(f"[red]{target} is not a Router subclass[/red]")
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)
    return obj


def iter_routes(client_class: type[Router], prefix: str = "") -> Iterator[tuple[str, CompiledRoute]]:
    """Yield ``(dotted name, route)`` for the client and all of its sections."""
    for name, compiled in client_class.configuration().routes.items():
        yield f"{prefix}{name}", compiled
    seen: set[str] = set()
    for klass in client_class.__mro__:
        for name, value in vars(klass).items():
            if isinstance(value, SectionAccessor) and name not in seen:
                seen.add(name)
                yield from iter_routes(value.section_type, f"{prefix}{name}.")


def parse_params(params: list[str]) -> dict[str, Any]:
    parsed: dict[str, Any] = {}
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key:
            stderr.print(f"[red]Expected key=value, got {item!r}[/red]")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        try:
            parsed[key] = json.loads(value)
        except json.JSONDecodeError:
            parsed[key] = value
    return parsed


@app.command("routes")
def routes_command(
    target: str = typer.Argument(..., help="Client class as MODULE:CLASS."),
) -> None:
    """List every route of a client, including its sections."""
    client_class = load_client(target)
    table = Table(title=f"{client_class.__name__} -- Routes")
    for column in ("Method", "Verb", "Path", "Parameters", "Expected", "Mode"):
        table.add_column(column)

    count = 0
    for name, compiled in iter_routes(client_class):
        mode = compiled.stream_mode.value if compiled.is_streaming else compiled.return_mode.value
        table.add_row(
            name,
            compiled.http_method.verb,
            compiled.path,
            ", ".join(compiled.signature_parameters) or "-",
            ", ".join(compiled.expected_response_codes) or "2xx",
            mode,
        )
        count += 1

    if not count:
        stderr.print("No routes declared.")
        return
    stdout.print(table)


@app.command("call")
def call_command(
    target: str = typer.Argument(..., help="Client class as MODULE:CLASS."),
    route_name: str = typer.Argument(..., help="Route to call, e.g. get_user or login.create_session."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-p", help="Route argument as key=value (repeatable)."
    ),
    raw: bool = typer.Option(
        False, "--raw", help="Send once and print the raw response body."
    ),
) -> None:
    """Instantiate a client and call one of its routes."""
    client_class = load_client(target)
    target_obj: Any = client_class()
    *section_names, method_name = route_name.split(".")
    try:
        for section_name in section_names:
            target_obj = getattr(target_obj, section_name)
        method = getattr(target_obj, f"{method_name}_raw_response" if raw else method_name)
    except AttributeError:
        stderr.print(f"[red]Unknown route {route_name!r}[/red]")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    arguments = parse_params(param or [])
    try:
        result = method(**arguments)
    except TypeError as exc:
        stderr.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    except ClientApiBuilderError as exc:
        stderr.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=exc.exit_code) from None

    if raw:
        stdout.print(result.text, markup=False, highlight=False)
    else:
        stdout.print_json(json.dumps(result, default=str))


def main() -> None:
    """Console-script entry point."""
    app()

"""Exception hierarchy for client_api_builder.

All exceptions inherit from :class:`ClientApiBuilderError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`client_api_builder.exit_codes`.  Library callers catch the specific
subclasses; the CLI catches the base class and exits with its code.

Subclass hierarchy::

    ClientApiBuilderError        (exit 1)
    +-- ConfigurationError       (exit 7)
    +-- UnexpectedResponseError  (exit 5)
    +-- TransientTransportError  (exit 6)

``ConfigurationError`` is only ever raised while a client type is being
declared.  ``TransientTransportError`` is the only category the retry loop
recovers from.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from client_api_builder.exit_codes import (
    EXIT_CONFIGURATION_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_UNEXPECTED_RESPONSE,
)

if TYPE_CHECKING:
    import httpx


class ClientApiBuilderError(Exception):
    """Base exception for all client_api_builder errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(ClientApiBuilderError):
    """Raised for invalid declarations: bad base URL scheme, bad route names, bad options."""

    exit_code = EXIT_CONFIGURATION_ERROR


class UnexpectedResponseError(ClientApiBuilderError):
    """Raised when a response has an unexpected status or a body that is not valid JSON.

    The raw transport response is kept on :attr:`response` so callers can
    inspect the status, headers, and body.

    Args:
        message: Human-readable error description.
        response: The :class:`httpx.Response` that failed validation.
    """

    exit_code = EXIT_UNEXPECTED_RESPONSE

    def __init__(self, message: str, response: Optional[httpx.Response] = None):
        super().__init__(message)
        self.response = response

    @property
    def status_code(self) -> Optional[int]:
        """Status code of the offending response, if one was received."""
        return self.response.status_code if self.response is not None else None


class TransientTransportError(ClientApiBuilderError):
    """Raised on network-level failures (reset, refused, timeout, DNS, unexpected EOF).

    These failures are retried by the request executor up to the configured
    attempt budget and re-raised unchanged once the budget is exhausted.
    """

    exit_code = EXIT_CONNECTION_ERROR

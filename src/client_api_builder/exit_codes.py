"""Numeric process exit codes used by the ``client-api-builder`` CLI.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~client_api_builder.exceptions.ClientApiBuilderError`
subclass.  Shell wrappers can inspect the exit code to tell a bad client
declaration apart from a failing API without parsing stderr.

Example::

    $ client-api-builder call myapp.clients:UsersClient get_user -p id=1
    $ echo $?
    5   # EXIT_UNEXPECTED_RESPONSE -- the API answered with an unexpected status
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing route parameters."""

EXIT_UNEXPECTED_RESPONSE = 5
"""The API returned an unexpected status code or an undecodable body."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CONFIGURATION_ERROR = 7
"""A client declaration (base URL, route name, route options) was invalid."""

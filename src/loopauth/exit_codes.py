"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~loopauth.exceptions.LoopauthError` subclass or by
the ``login`` command when it turns a
:class:`~loopauth.models.LoginResult` into a process status.

Example::

    $ loopauth login https://id.example.com
    $ echo $?
    4   # EXIT_TIMEOUT -- nobody completed the login in the browser
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The login finished without a usable identity (provider error, bad token, empty response)."""

EXIT_TIMEOUT = 4
"""No authorization response reached the loopback endpoint in time."""

EXIT_RESOURCE_ERROR = 5
"""A local port could not be allocated or bound."""

EXIT_BROWSER_ERROR = 7
"""The system browser could not be launched."""

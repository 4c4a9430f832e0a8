"""Exception hierarchy for loopauth.

All exceptions inherit from :class:`LoopauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`loopauth.exit_codes`.
The top-level error handler in :func:`loopauth.app.main` catches
``LoopauthError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Only setup failures are raised out of a login. Everything that can go
wrong once the browser has been opened (timeouts, empty responses,
provider errors, token validation) is reported as a
:class:`~loopauth.models.LoginResult` instead.

Subclass hierarchy::

    LoopauthError (exit 1)
    +-- InvalidUsageError     (exit 2)
    +-- ConfigError           (exit 1)
    +-- AuthError             (exit 3)
    |   +-- DiscoveryError    (exit 3)
    |   +-- IdentityTokenError (exit 3)
    +-- ResourceError         (exit 5)
    |   +-- BindError         (exit 5)
    +-- BrowserLaunchError    (exit 7)
"""

from loopauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_BROWSER_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_RESOURCE_ERROR,
)


class LoopauthError(Exception):
    """Base exception for all loopauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`loopauth.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(LoopauthError):
    """Raised for invalid CLI arguments or missing required settings."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(LoopauthError):
    """Raised for configuration problems (invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthError(LoopauthError):
    """Raised when the identity provider cannot be used for a login."""

    exit_code = EXIT_AUTH_FAILURE


class DiscoveryError(AuthError):
    """Raised when the provider's OpenID Connect metadata cannot be loaded."""


class IdentityTokenError(AuthError):
    """Raised when an ID token fails signature or claim validation."""


class ResourceError(LoopauthError):
    """Raised when a local port cannot be allocated.

    This is fatal for a login: it happens before any browser interaction
    and is never converted into a :class:`~loopauth.models.LoginResult`.
    """

    exit_code = EXIT_RESOURCE_ERROR


class BindError(ResourceError):
    """Raised when the loopback endpoint cannot bind its port.

    Usually a race: another local process grabbed the port between
    :func:`~loopauth.loopback.ports.allocate_port` and
    :meth:`~loopauth.loopback.listener.CallbackListener.start`.
    """


class BrowserLaunchError(LoopauthError):
    """Raised when the system browser cannot be started."""

    exit_code = EXIT_BROWSER_ERROR

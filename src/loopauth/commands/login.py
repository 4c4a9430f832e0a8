"""Login command -- sign in through the system browser.

``loopauth login`` resolves settings (flags > ``LOOPAUTH_*`` environment
> saved settings > defaults), runs one :class:`~loopauth.flow.LoginFlow`
and prints the result. The process exit status reflects the outcome::

    0  signed in
    3  the provider or token validation rejected the login
    4  nobody completed the login in time
    5  no loopback port could be bound
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from loopauth.exceptions import InvalidUsageError, LoopauthError
from loopauth.exit_codes import EXIT_AUTH_FAILURE, EXIT_TIMEOUT
from loopauth.models import LoginResult, LoginResultType
from loopauth.output import (
    OutputFormat,
    error,
    format_response,
    get_output,
    print_table,
    progress,
    success,
    suggest,
)


def login_command(
    authority: Optional[str] = typer.Argument(
        None, help="Base URL of the OpenID Connect provider."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", "-c", help="OAuth2 client identifier."
    ),
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Requested scope (repeatable)."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Loopback port; 0 picks a free one."
    ),
    path: Optional[str] = typer.Option(
        None, "--path", help="Path for the loopback redirect URI."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the browser."
    ),
    no_profile: bool = typer.Option(
        False, "--no-profile", help="Skip the userinfo endpoint."
    ),
) -> None:
    """Sign in through the system browser and print the identity.

    Example::

        loopauth login https://id.example.com --client-id desktop
        loopauth --json login --scope openid --scope offline_access
    """
    from loopauth.config import resolve_settings
    from loopauth.flow import LoginFlow

    try:
        settings = resolve_settings(
            authority=authority,
            client_id=client_id,
            scopes=scope or None,
            port=port,
            callback_path=path,
            timeout=timeout,
            load_profile=False if no_profile else None,
        )
        if not settings.authority:
            raise InvalidUsageError(
                "No authority given. Pass one as an argument, set LOOPAUTH_AUTHORITY, "
                "or run 'loopauth config set authority <url>'."
            )
        progress(f"Signing in at {settings.authority} ...")
        result = asyncio.run(LoginFlow(settings).signin())
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    _report(result)


def _report(result: LoginResult) -> None:
    """Print *result* and exit non-zero for anything but a successful login."""
    if result.is_error:
        message = result.error or result.result_type.value
        if result.error_description:
            message = f"{message}: {result.error_description}"
        error(message)
        if result.result_type is LoginResultType.TIMEOUT:
            suggest("Run the command again and complete the login in the browser.")
            raise typer.Exit(code=EXIT_TIMEOUT)
        raise typer.Exit(code=EXIT_AUTH_FAILURE)

    subject = result.claims.get("name") or result.claims.get("sub", "unknown user")
    success(f"Signed in as {subject}")

    output = get_output()
    if output.format is OutputFormat.RICH:
        rows = [[name, str(value)] for name, value in sorted(result.claims.items())]
        print_table(["Claim", "Value"], rows, title="Identity")
        return

    data = result.model_dump(mode="json", exclude_none=True)
    if not output.is_verbose:
        data.pop("raw_response", None)
    format_response(data)

"""Config commands -- view and modify saved login settings.

Provides the ``loopauth config`` sub-command group for reading, updating,
and resetting the user's settings file
(:class:`~loopauth.models.LoginSettings`). Saved values are the lowest
precedence layer: environment variables and ``login`` flags override them.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from loopauth.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the saved settings.

    Example::

        loopauth config show
        loopauth --json config show
    """
    from loopauth.config import get_config_dir, load_settings

    settings = load_settings()
    info(f"Config directory: {get_config_dir()}")
    format_response(settings.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name, e.g. 'authority' or 'timeout'."),
    value: str = typer.Argument(help="Value to set. Use an empty string to clear."),
) -> None:
    """Set a saved setting.

    The value is coerced to the field's type: ``true``/``false`` for flags,
    a space or comma separated list for ``scopes``, and ``name=value``
    pairs (comma separated) for ``extra_parameters``. The result is
    validated against :class:`~loopauth.models.LoginSettings` before it is
    written.

    Raises:
        typer.Exit: With code 2 for an unknown key or an invalid value.

    Example::

        loopauth config set authority https://id.example.com
        loopauth config set scopes "openid profile offline_access"
        loopauth config set timeout 120
    """
    from loopauth.config import load_settings, save_settings
    from loopauth.models import LoginSettings

    settings = load_settings()
    data = settings.model_dump(mode="json")

    if key not in data:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    try:
        coerced = _coerce(data[key], value)
    except ValueError as exc:
        error(f"Invalid value for {key}: {exc}")
        raise typer.Exit(code=2) from None
    data[key] = coerced

    try:
        new_settings = LoginSettings.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_settings(new_settings)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset all saved settings to their defaults."""
    from loopauth.config import save_settings
    from loopauth.models import LoginSettings

    if not force:
        confirmed = typer.confirm("Reset all settings to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_settings(LoginSettings())
    success("Settings reset to defaults.")


def _coerce(current: Any, value: str) -> Any:
    """Convert the CLI string *value* to the type of the *current* setting."""
    if isinstance(current, bool):
        if value.lower() in ("true", "1", "yes", "on"):
            return True
        if value.lower() in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"expected true or false, got {value!r}")
    if isinstance(current, list):
        return [item for item in value.replace(",", " ").split() if item]
    if isinstance(current, dict):
        pairs: dict[str, str] = {}
        for item in filter(None, (part.strip() for part in value.split(","))):
            name, sep, val = item.partition("=")
            if not sep or not name:
                raise ValueError(f"expected name=value, got {item!r}")
            pairs[name] = val
        return pairs
    if current is None or isinstance(current, str):
        return value or None
    # Numbers are left as strings; pydantic validates and converts them.
    return value

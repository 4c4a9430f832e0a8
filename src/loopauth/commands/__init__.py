"""Built-in CLI sub-commands for loopauth.

* :mod:`~loopauth.commands.login` -- run an interactive browser login.
* :mod:`~loopauth.commands.config` -- view and modify saved settings.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``config``) or a plain callback function
registered directly on the root app (for single commands like ``login``).
"""

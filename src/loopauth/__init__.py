"""loopauth -- OAuth2/OIDC login for desktop and CLI apps over a loopback redirect.

The package opens the user's system browser at the identity provider,
receives the authorization response on a short-lived HTTP endpoint bound
to ``127.0.0.1``, and exchanges it for tokens with PKCE.

Typical usage::

    import asyncio
    from loopauth.flow import signin

    result = asyncio.run(signin("https://id.example.com", client_id="desktop"))
    if not result.is_error:
        print(result.claims["sub"])

Modules:
    app: Typer application and CLI entry point.
    flow: Login orchestration (:func:`~loopauth.flow.signin`).
    loopback: Port allocation, browser launching, and the callback listener.
    oidc: Discovery, PKCE, token exchange, and ID-token validation.
    models: Pydantic models shared across the package.
    config: XDG-aware settings file and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    log: Rich logging handler installed by the CLI.
"""

__version__ = "0.1.0"

"""Shared test fixtures for loopauth.

Provides isolated config environments, output state management, a CLI
runner, a session-wide RSA signing key, and :class:`FakeProvider`, an
in-memory OpenID Connect provider served through ``httpx.MockTransport``.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qs

import httpx
import pytest
from authlib.jose import JsonWebKey, jwt

from loopauth.models import LoginSettings
from loopauth.output import OutputFormat, OutputManager, reset_output, set_output


ISSUER = "https://id.example.com"
CLIENT_ID = "loopauth"
KEY_ID = "test-key"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams the
    cached references go stale, so a fresh manager is created on next use.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _reset_logging_between_tests() -> None:
    """Undo :func:`~loopauth.log.configure_logging` so caplog sees records again."""
    yield
    logger = logging.getLogger("loopauth")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME at subdirectories of
    tmp_path and clears all LOOPAUTH_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "LOOPAUTH_AUTHORITY",
        "LOOPAUTH_CLIENT_ID",
        "LOOPAUTH_TIMEOUT",
        "LOOPAUTH_PORT",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN-format OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager for the test."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Signing keys and tokens
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def signing_key() -> Any:
    """A 2048-bit RSA key shared by the whole session (generation is slow)."""
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": KEY_ID}, is_private=True)


@pytest.fixture(scope="session")
def jwks(signing_key: Any) -> dict[str, Any]:
    """Public JWKS containing :func:`signing_key`."""
    public = signing_key.as_dict(is_private=False)
    public["kid"] = KEY_ID
    public["use"] = "sig"
    public["alg"] = "RS256"
    return {"keys": [public]}


def sign_id_token(key: Any, claims: dict[str, Any], kid: str = KEY_ID) -> str:
    """Sign *claims* as an RS256 JWT."""
    header = {"alg": "RS256", "kid": kid}
    return jwt.encode(header, claims, key).decode("ascii")


def id_token_claims(nonce: str, /, **overrides: Any) -> dict[str, Any]:
    """Claims for a valid ID token issued by :data:`ISSUER`.

    Overrides set to ``None`` remove the claim.
    """
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": ISSUER,
        "sub": "user-1",
        "aud": CLIENT_ID,
        "iat": now,
        "exp": now + 300,
        "auth_time": now - 10,
        "nonce": nonce,
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


# ---------------------------------------------------------------------------
# Fake OpenID Connect provider
# ---------------------------------------------------------------------------


class FakeProvider:
    """In-memory provider behind ``httpx.MockTransport``.

    Serves discovery, JWKS, token and userinfo endpoints. The token
    endpoint signs an ID token for :attr:`nonce`, which tests set from the
    authorization URL the client built.
    """

    def __init__(self, key: Any, jwks: dict[str, Any]) -> None:
        self.key = key
        self.jwks = jwks
        self.nonce: Optional[str] = None
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_extra: dict[str, Any] = {}
        self.claim_overrides: dict[str, Any] = {}
        self.include_id_token = True
        self.userinfo: dict[str, Any] = {
            "sub": "user-1",
            "name": "Ada Lovelace",
            "email": "ada@example.com",
        }
        self.metadata: dict[str, Any] = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "jwks_uri": f"{ISSUER}/jwks",
            "userinfo_endpoint": f"{ISSUER}/userinfo",
        }

    def token_requests(self) -> list[dict[str, str]]:
        """Form fields of every request made to the token endpoint."""
        return [
            {k: v[0] for k, v in parse_qs(r.content.decode()).items()}
            for r in self.requests
            if r.url.path == "/token"
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/.well-known/openid-configuration":
            return httpx.Response(200, json=self.metadata)
        if path == "/jwks":
            return httpx.Response(200, json=self.jwks)
        if path == "/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            body: dict[str, Any] = {
                "access_token": "access-123",
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": "refresh-456",
            }
            if self.include_id_token:
                claims = id_token_claims(self.nonce or "", **self.claim_overrides)
                body["id_token"] = sign_id_token(self.key, claims)
            body.update(self.token_extra)
            return httpx.Response(200, json=body)
        if path == "/userinfo":
            return httpx.Response(200, json=self.userinfo)
        return httpx.Response(404)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def provider(signing_key: Any, jwks: dict[str, Any]) -> FakeProvider:
    return FakeProvider(signing_key, jwks)


@pytest.fixture
def settings() -> LoginSettings:
    """Login settings pointed at the fake provider, with no grace delay."""
    return LoginSettings(authority=ISSUER, client_id=CLIENT_ID, timeout=5, grace_delay=0)


@pytest.fixture
def make_id_token(signing_key: Any):
    """Factory: ``make_id_token(nonce, key=None, kid=..., **claim_overrides)``."""

    def _make(nonce: str, /, key: Any = None, kid: str = KEY_ID, **overrides: Any) -> str:
        return sign_id_token(key or signing_key, id_token_claims(nonce, **overrides), kid)

    return _make

"""Canonical Pydantic models shared across all loopauth modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration models** -- serialised as JSON in the user's config directory
or built per login:
    :class:`LoginSettings` and :class:`ListenerConfig`.

**Loopback models** -- what the local callback endpoint receives and
produces:
    :class:`CallbackRequest`, :class:`OutcomeKind`, and
    :class:`CallbackOutcome`.

**Login models** -- produced by the OIDC layer and the login flow:
    :class:`ProviderMetadata`, :class:`AuthorizeState`,
    :class:`LoginResultType`, and :class:`LoginResult`.

All models use Pydantic v2. Values that must not change once created
(requests, outcomes, listener configuration) are frozen.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_CALLBACK_TIMEOUT = 300.0
"""Seconds a listener waits for the browser redirect before giving up."""

DEFAULT_GRACE_DELAY = 0.5
"""Seconds a listener keeps its socket open after answering the browser."""

DEFAULT_SCOPES = ["openid", "profile", "email"]


# --- Configuration ---


class LoginSettings(BaseModel):
    """User-level login settings persisted at ``~/.config/loopauth/config.json``.

    Loaded and saved by :func:`~loopauth.config.load_settings` and
    :func:`~loopauth.config.save_settings`. Fields here have the lowest
    precedence and can be overridden by environment variables or CLI flags.
    See :func:`~loopauth.config.resolve_settings` for the full chain.

    Example::

        LoginSettings(
            authority="https://id.example.com",
            client_id="desktop-app",
            timeout=120,
        )
    """

    authority: Optional[str] = Field(
        default=None, description="Base URL of the OpenID Connect provider"
    )
    client_id: str = Field(default="loopauth", description="OAuth2 client identifier")
    client_secret_source: Optional[str] = Field(
        default=None,
        description="Credential source for confidential clients: env:VAR or file:/path",
    )
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    port: int = Field(
        default=0, ge=0, le=65535, description="Loopback port; 0 picks a free one"
    )
    callback_path: Optional[str] = Field(
        default=None, description="Path appended to the loopback redirect URI"
    )
    timeout: float = Field(
        default=DEFAULT_CALLBACK_TIMEOUT,
        gt=0,
        description="Seconds to wait for the browser redirect",
    )
    grace_delay: float = Field(
        default=DEFAULT_GRACE_DELAY,
        ge=0,
        description="Seconds to keep the endpoint open after answering the browser",
    )
    filter_claims: bool = Field(
        default=False, description="Drop protocol claims (iss, aud, nonce, ...)"
    )
    load_profile: bool = Field(
        default=True, description="Merge claims from the userinfo endpoint"
    )
    extra_parameters: dict[str, str] = Field(
        default_factory=dict,
        description="Additional authorization request parameters",
    )


class ListenerConfig(BaseModel):
    """Settings for one :class:`~loopauth.loopback.listener.CallbackListener`.

    Immutable for the lifetime of the listener it configures.
    """

    model_config = ConfigDict(frozen=True)

    port: int = Field(ge=1, le=65535)
    path_suffix: Optional[str] = None
    timeout: float = Field(default=DEFAULT_CALLBACK_TIMEOUT, gt=0)
    grace_delay: float = Field(default=DEFAULT_GRACE_DELAY, ge=0)

    @property
    def path(self) -> str:
        """The URL path the endpoint answers on, always starting with ``/``."""
        return "/" + (self.path_suffix or "").strip("/")


# --- Loopback ---


class CallbackRequest(BaseModel):
    """The raw data a browser delivered to the loopback endpoint."""

    model_config = ConfigDict(frozen=True)

    method: str
    content_type: Optional[str] = None
    query_string: str = ""
    body: str = ""

    @property
    def payload(self) -> str:
        """The authorization response carried by this request.

        For ``GET`` this is the query string including its leading ``?``
        (or an empty string when there is none); for ``POST`` it is the
        form-encoded body.
        """
        if self.method.upper() == "GET":
            return f"?{self.query_string}" if self.query_string else ""
        return self.body


class OutcomeKind(str, enum.Enum):
    """How a listener's single wait ended."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    PROTOCOL_ERROR = "protocol_error"
    EMPTY_RESPONSE = "empty_response"


class CallbackOutcome(BaseModel):
    """Result of waiting on a loopback endpoint.

    Exactly one outcome is produced per listener. Use the classmethod
    constructors rather than building instances by hand::

        CallbackOutcome.success("?code=abc&state=xyz")
        CallbackOutcome.timeout()
    """

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    payload: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, payload: str) -> CallbackOutcome:
        return cls(kind=OutcomeKind.SUCCESS, payload=payload)

    @classmethod
    def timeout(cls, reason: str = "Timed out waiting for the browser.") -> CallbackOutcome:
        return cls(kind=OutcomeKind.TIMEOUT, reason=reason)

    @classmethod
    def protocol_error(cls, reason: str) -> CallbackOutcome:
        return cls(kind=OutcomeKind.PROTOCOL_ERROR, reason=reason)

    @classmethod
    def empty_response(cls) -> CallbackOutcome:
        return cls(kind=OutcomeKind.EMPTY_RESPONSE, reason="Empty response.")

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


# --- Login ---


class ProviderMetadata(BaseModel):
    """The subset of an OpenID Connect discovery document loopauth uses.

    Unknown keys from the provider are kept in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: Optional[str] = None
    userinfo_endpoint: Optional[str] = None
    end_session_endpoint: Optional[str] = None


class AuthorizeState(BaseModel):
    """Per-attempt secrets and the URL the browser is sent to.

    Created by :meth:`~loopauth.oidc.client.OidcClient.prepare_login` and
    handed back to
    :meth:`~loopauth.oidc.client.OidcClient.process_response` once the
    browser has been redirected.
    """

    model_config = ConfigDict(frozen=True)

    state: str
    nonce: str
    code_verifier: str
    redirect_uri: str
    start_url: str


class LoginResultType(str, enum.Enum):
    """Classification of a finished login."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    UNKNOWN_ERROR = "unknown_error"
    AUTHORIZATION_ERROR = "authorization_error"
    TOKEN_ERROR = "token_error"


class LoginResult(BaseModel):
    """Final structured output of a login attempt.

    A result is an error when ``result_type`` is anything other than
    :attr:`LoginResultType.SUCCESS`; ``error`` then holds a short code or
    message and ``error_description`` optional detail from the provider.
    On success the token fields and ``claims`` are populated.
    """

    result_type: LoginResultType
    error: Optional[str] = None
    error_description: Optional[str] = None
    raw_response: Optional[str] = None
    access_token: Optional[str] = None
    identity_token: Optional[str] = None
    refresh_token: Optional[str] = None
    access_token_expiration: Optional[datetime] = None
    authentication_time: Optional[datetime] = None
    claims: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.result_type != LoginResultType.SUCCESS

    @classmethod
    def failure(
        cls,
        result_type: LoginResultType,
        error: str,
        error_description: Optional[str] = None,
        raw_response: Optional[str] = None,
    ) -> LoginResult:
        """Build an error result of the given type."""
        return cls(
            result_type=result_type,
            error=error,
            error_description=error_description,
            raw_response=raw_response,
        )

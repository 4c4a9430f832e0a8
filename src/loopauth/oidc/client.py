"""OpenID Connect client for the authorization code flow with PKCE.

This module provides :class:`OidcClient`, the collaborator the login flow
delegates protocol work to. It has two halves that bracket the browser
round trip:

1. :meth:`OidcClient.prepare_login` discovers the provider's endpoints
   and builds the authorization URL (with ``state``, ``nonce`` and a PKCE
   ``code_challenge``).
2. :meth:`OidcClient.process_response` takes the raw authorization
   response captured on the loopback endpoint, exchanges the code for
   tokens, validates the ID token, optionally loads the userinfo
   endpoint, and returns a :class:`~loopauth.models.LoginResult`.

Everything after the browser redirect is reported as data: provider
errors, token endpoint failures, and invalid ID tokens all come back as
error results rather than exceptions.

See Also:
    :mod:`loopauth.oidc.discovery` for endpoint discovery.
    :mod:`loopauth.oidc.id_token` for ID token validation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode

import httpx

from loopauth.config import resolve_credential
from loopauth.exceptions import AuthError, InvalidUsageError
from loopauth.models import (
    AuthorizeState,
    LoginResult,
    LoginResultType,
    LoginSettings,
    ProviderMetadata,
)
from loopauth.oidc.discovery import discover, fetch_jwks
from loopauth.oidc.id_token import filter_protocol_claims, validate_identity_token
from loopauth.oidc.pkce import generate_nonce, generate_pkce_pair, generate_state

logger = logging.getLogger(__name__)


class OidcClient:
    """Authorization code + PKCE client for a single provider.

    The discovery document is loaded on first use and cached for the
    lifetime of the instance.

    Args:
        settings: Login settings; ``authority`` and ``client_id`` are
            required.
        http_client: Client used for discovery, token, JWKS and userinfo
            requests. The caller owns its lifetime.

    Raises:
        InvalidUsageError: If ``settings.authority`` is not set.
        ConfigError: If the client secret source cannot be resolved.

    Example::

        async with httpx.AsyncClient() as http:
            client = OidcClient(settings, http)
            state = await client.prepare_login("http://127.0.0.1:53121")
            ...  # send the browser to state.start_url
            result = await client.process_response(raw_payload, state)
    """

    def __init__(self, settings: LoginSettings, http_client: httpx.AsyncClient) -> None:
        if not settings.authority:
            raise InvalidUsageError("An authority URL is required to sign in")
        self._settings = settings
        self._authority: str = settings.authority
        self._http = http_client
        self._metadata: Optional[ProviderMetadata] = None
        self._client_secret: Optional[str] = None
        if settings.client_secret_source:
            self._client_secret = resolve_credential(settings.client_secret_source)

    @property
    def settings(self) -> LoginSettings:
        return self._settings

    async def provider_metadata(self) -> ProviderMetadata:
        """Return the provider's discovery document, loading it once.

        Raises:
            DiscoveryError: If the document cannot be loaded.
        """
        if self._metadata is None:
            self._metadata = await discover(self._authority, self._http)
        return self._metadata

    async def prepare_login(self, redirect_uri: str) -> AuthorizeState:
        """Build the authorization request for one login attempt.

        Args:
            redirect_uri: The loopback URI the provider redirects back to.

        Returns:
            An :class:`~loopauth.models.AuthorizeState` holding the
            per-attempt secrets and the URL to open in the browser.

        Raises:
            DiscoveryError: If the provider metadata cannot be loaded.
        """
        metadata = await self.provider_metadata()
        code_verifier, code_challenge = generate_pkce_pair()
        state = generate_state()
        nonce = generate_nonce()

        params: dict[str, str] = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(self._settings.scopes),
            "state": state,
            "nonce": nonce,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        params.update(self._settings.extra_parameters)

        separator = "&" if "?" in metadata.authorization_endpoint else "?"
        start_url = f"{metadata.authorization_endpoint}{separator}{urlencode(params)}"

        return AuthorizeState(
            state=state,
            nonce=nonce,
            code_verifier=code_verifier,
            redirect_uri=redirect_uri,
            start_url=start_url,
        )

    async def process_response(self, raw_response: str, state: AuthorizeState) -> LoginResult:
        """Turn the raw authorization response into a login result.

        Args:
            raw_response: Query string (with or without ``?``) or
                form-encoded body captured by the loopback endpoint.
            state: The value returned by :meth:`prepare_login` for this
                attempt.

        Returns:
            A successful :class:`~loopauth.models.LoginResult` with tokens
            and claims, or an error result describing what went wrong.
        """
        params = dict(parse_qsl(raw_response.lstrip("?"), keep_blank_values=True))

        if "error" in params:
            logger.info("Provider returned authorization error: %s", params["error"])
            return LoginResult.failure(
                LoginResultType.AUTHORIZATION_ERROR,
                params["error"],
                params.get("error_description"),
                raw_response,
            )
        if params.get("state") != state.state:
            return LoginResult.failure(
                LoginResultType.UNKNOWN_ERROR,
                "invalid_state",
                "The state parameter does not match the authorization request.",
                raw_response,
            )
        code = params.get("code")
        if not code:
            return LoginResult.failure(
                LoginResultType.UNKNOWN_ERROR,
                "missing_code",
                "The authorization response has no code.",
                raw_response,
            )

        try:
            metadata = await self.provider_metadata()
            token_data = await self._exchange_code(metadata, code, state)
            expiration = _expiration(token_data.get("expires_in"))
        except AuthError as exc:
            return LoginResult.failure(
                LoginResultType.TOKEN_ERROR, "token_exchange_failed", str(exc), raw_response
            )

        access_token: str = token_data["access_token"]
        id_token = token_data.get("id_token")
        if not id_token:
            return LoginResult.failure(
                LoginResultType.TOKEN_ERROR,
                "missing_id_token",
                "Token response missing 'id_token' field",
                raw_response,
            )

        try:
            jwks = await fetch_jwks(metadata, self._http)
            claims = validate_identity_token(
                id_token,
                jwks,
                issuer=metadata.issuer,
                client_id=self._settings.client_id,
                nonce=state.nonce,
                access_token=access_token,
            )
        except AuthError as exc:
            return LoginResult.failure(
                LoginResultType.TOKEN_ERROR, "invalid_id_token", str(exc), raw_response
            )

        if self._settings.load_profile and metadata.userinfo_endpoint:
            try:
                userinfo = await self._load_userinfo(metadata.userinfo_endpoint, access_token)
            except AuthError as exc:
                return LoginResult.failure(
                    LoginResultType.TOKEN_ERROR, "userinfo_failed", str(exc), raw_response
                )
            if userinfo.get("sub") != claims.get("sub"):
                return LoginResult.failure(
                    LoginResultType.TOKEN_ERROR,
                    "invalid_userinfo",
                    "Userinfo subject does not match the identity token",
                    raw_response,
                )
            for key, value in userinfo.items():
                claims.setdefault(key, value)

        authentication_time = _timestamp(claims.get("auth_time"))
        if self._settings.filter_claims:
            claims = filter_protocol_claims(claims)

        return LoginResult(
            result_type=LoginResultType.SUCCESS,
            raw_response=raw_response,
            access_token=access_token,
            identity_token=id_token,
            refresh_token=token_data.get("refresh_token"),
            access_token_expiration=expiration,
            authentication_time=authentication_time,
            claims=claims,
        )

    async def _exchange_code(
        self,
        metadata: ProviderMetadata,
        code: str,
        state: AuthorizeState,
    ) -> dict[str, Any]:
        """Exchange the authorization code for tokens.

        Args:
            metadata: Provider metadata with ``token_endpoint``.
            code: The authorization code received from the callback.
            state: The attempt's PKCE verifier and redirect URI.

        Returns:
            The parsed JSON token response containing at least
            ``access_token``.

        Raises:
            AuthError: On HTTP errors or if ``access_token`` is missing
                from the response.
        """
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": state.redirect_uri,
            "code_verifier": state.code_verifier,
            "client_id": self._settings.client_id,
        }
        if self._client_secret:
            data["client_secret"] = self._client_secret

        try:
            response = await self._http.post(
                metadata.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            token_data: dict[str, Any] = response.json()
        except httpx.HTTPStatusError as exc:
            raise AuthError(
                f"Token exchange failed with status {exc.response.status_code}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AuthError(f"Token exchange failed: {exc}") from exc
        except ValueError as exc:
            raise AuthError(f"Token endpoint returned invalid JSON: {exc}") from exc

        if not isinstance(token_data, dict):
            raise AuthError("Token endpoint returned a JSON value that is not an object")
        if "access_token" not in token_data:
            raise AuthError("Token response missing 'access_token' field")

        return token_data

    async def _load_userinfo(self, endpoint: str, access_token: str) -> dict[str, Any]:
        try:
            response = await self._http.get(
                endpoint,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {access_token}",
                },
            )
            response.raise_for_status()
            userinfo: dict[str, Any] = response.json()
        except httpx.HTTPError as exc:
            raise AuthError(f"Userinfo request failed: {exc}") from exc
        except ValueError as exc:
            raise AuthError(f"Userinfo endpoint returned invalid JSON: {exc}") from exc
        if not isinstance(userinfo, dict):
            raise AuthError("Userinfo endpoint returned a JSON value that is not an object")
        return userinfo


def _expiration(expires_in: Any) -> Optional[datetime]:
    if expires_in is None:
        return None
    try:
        return datetime.now(timezone.utc) + timedelta(seconds=float(expires_in))
    except (TypeError, ValueError, OverflowError) as exc:
        raise AuthError(f"Token response has an invalid 'expires_in': {expires_in!r}") from exc


def _timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return None

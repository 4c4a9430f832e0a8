"""OpenID Connect collaborator used by the login flow.

Exports:
    :class:`OidcClient` -- builds the authorization request and turns the
    captured response into a :class:`~loopauth.models.LoginResult`.
    :func:`discover` -- loads a provider's discovery document.
    :func:`generate_pkce_pair` -- PKCE ``code_verifier`` /
    ``code_challenge`` pair (S256).
    :func:`validate_identity_token` -- verifies an ID token.
"""

from loopauth.oidc.client import OidcClient
from loopauth.oidc.discovery import discover
from loopauth.oidc.id_token import validate_identity_token
from loopauth.oidc.pkce import generate_pkce_pair

__all__ = [
    "OidcClient",
    "discover",
    "generate_pkce_pair",
    "validate_identity_token",
]

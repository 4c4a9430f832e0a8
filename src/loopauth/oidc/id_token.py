"""ID token validation.

Signature verification and claim checks are delegated to authlib's JOSE
implementation; this module only wires the provider's key set and the
per-login expectations (issuer, audience, nonce) into it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from authlib.jose import JsonWebKey, jwt
from authlib.jose.errors import JoseError
from authlib.oidc.core import CodeIDToken
from joserfc.errors import JoseError as JoserfcError

from loopauth.exceptions import IdentityTokenError

logger = logging.getLogger(__name__)

DEFAULT_LEEWAY = 300
"""Clock skew tolerated on ``exp``/``iat``/``nbf``, in seconds."""

PROTOCOL_CLAIMS = frozenset(
    {
        "iss",
        "aud",
        "exp",
        "nbf",
        "iat",
        "nonce",
        "c_hash",
        "at_hash",
        "azp",
        "amr",
        "auth_time",
        "acr",
        "sid",
    }
)
"""Claims that describe the token rather than the user."""


def validate_identity_token(
    id_token: str,
    jwks: dict[str, Any],
    *,
    issuer: str,
    client_id: str,
    nonce: str,
    access_token: Optional[str] = None,
    leeway: int = DEFAULT_LEEWAY,
) -> dict[str, Any]:
    """Verify *id_token* and return its claims.

    Checks the signature against *jwks*, then ``iss``, ``aud``, ``exp``,
    ``iat``, ``nonce``, ``azp`` and, when both are present, ``at_hash``
    against *access_token*.

    Args:
        id_token: The compact-serialised JWT from the token response.
        jwks: The provider's JSON Web Key Set.
        issuer: Expected ``iss`` (from the discovery document).
        client_id: Expected audience.
        nonce: The nonce sent in the authorization request.
        access_token: Access token issued alongside, for ``at_hash``.
        leeway: Allowed clock skew in seconds.

    Returns:
        The validated claims as a plain dict.

    Raises:
        IdentityTokenError: If the token is malformed, signed by an unknown
            key, or any claim check fails.
    """
    params: dict[str, Any] = {"nonce": nonce, "client_id": client_id}
    if access_token:
        params["access_token"] = access_token

    try:
        key_set = JsonWebKey.import_key_set(jwks)
        claims = jwt.decode(
            id_token,
            key_set,
            claims_cls=CodeIDToken,
            claims_options={
                "iss": {"essential": True, "value": issuer},
                "aud": {"essential": True, "value": client_id},
            },
            claims_params=params,
        )
        claims.validate(leeway=leeway)
    # authlib.jose runs on joserfc in newer authlib releases and raises its errors.
    except (JoseError, JoserfcError, ValueError) as exc:
        raise IdentityTokenError(f"Identity token validation failed: {exc}") from exc

    logger.debug("Identity token validated for subject %s", claims.get("sub"))
    return dict(claims)


def filter_protocol_claims(claims: dict[str, Any]) -> dict[str, Any]:
    """Return *claims* without the token-level entries in :data:`PROTOCOL_CLAIMS`."""
    return {k: v for k, v in claims.items() if k not in PROTOCOL_CLAIMS}

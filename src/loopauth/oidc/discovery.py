"""OpenID Connect provider discovery.

Fetches ``{authority}/.well-known/openid-configuration`` and the JSON Web
Key Set it points to. Both are fetched per login; caching across logins is
left to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from loopauth.exceptions import DiscoveryError
from loopauth.models import ProviderMetadata

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def discovery_url(authority: str) -> str:
    """Return the discovery document URL for *authority*.

    An authority that already ends in the well-known path is used as is.
    """
    authority = authority.rstrip("/")
    if authority.endswith(WELL_KNOWN_PATH):
        return authority
    return authority + WELL_KNOWN_PATH


async def discover(authority: str, http_client: httpx.AsyncClient) -> ProviderMetadata:
    """Fetch and validate the provider's discovery document.

    Args:
        authority: Base URL of the provider (e.g. ``https://id.example.com``).
        http_client: Client used for the request.

    Returns:
        The parsed :class:`~loopauth.models.ProviderMetadata`.

    Raises:
        DiscoveryError: If the document cannot be fetched, is not JSON, or
            lacks ``issuer``, ``authorization_endpoint`` or ``token_endpoint``.
    """
    url = discovery_url(authority)
    logger.debug("Loading discovery document from %s", url)
    doc = await _get_json(http_client, url, "OpenID discovery")

    for field in ("issuer", "authorization_endpoint", "token_endpoint"):
        if field not in doc:
            raise DiscoveryError(f"OpenID discovery document missing '{field}'")

    try:
        return ProviderMetadata.model_validate(doc)
    except ValidationError as exc:
        raise DiscoveryError(f"Invalid OpenID discovery document: {exc}") from exc


async def fetch_jwks(metadata: ProviderMetadata, http_client: httpx.AsyncClient) -> dict[str, Any]:
    """Fetch the provider's JSON Web Key Set.

    Raises:
        DiscoveryError: If the provider has no ``jwks_uri`` or the key set
            cannot be loaded.
    """
    if not metadata.jwks_uri:
        raise DiscoveryError("OpenID discovery document missing 'jwks_uri'")
    jwks = await _get_json(http_client, metadata.jwks_uri, "JWKS download")
    if not isinstance(jwks.get("keys"), list):
        raise DiscoveryError("JWKS document missing 'keys'")
    return jwks


async def _get_json(http_client: httpx.AsyncClient, url: str, what: str) -> dict[str, Any]:
    try:
        response = await http_client.get(url, headers={"Accept": "application/json"})
        response.raise_for_status()
        doc = response.json()
    except httpx.HTTPStatusError as exc:
        raise DiscoveryError(
            f"{what} failed with status {exc.response.status_code}: "
            f"{exc.response.text}"
        ) from exc
    except httpx.HTTPError as exc:
        raise DiscoveryError(f"{what} failed: {exc}") from exc
    except ValueError as exc:
        raise DiscoveryError(f"{what} returned invalid JSON: {exc}") from exc

    if not isinstance(doc, dict):
        raise DiscoveryError(f"{what} returned a non-object JSON document")
    return doc

"""Tests for loopauth.oidc.discovery -- provider metadata and JWKS loading."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from loopauth.exceptions import DiscoveryError
from loopauth.models import ProviderMetadata
from loopauth.oidc.discovery import discover, discovery_url, fetch_jwks

METADATA = {
    "issuer": "https://id.example.com",
    "authorization_endpoint": "https://id.example.com/authorize",
    "token_endpoint": "https://id.example.com/token",
    "jwks_uri": "https://id.example.com/jwks",
    "grant_types_supported": ["authorization_code"],
}


def _client(status: int = 200, body: Any = None, **kwargs: Any) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if "content" in kwargs:
            return httpx.Response(status, content=kwargs["content"])
        return httpx.Response(status, json=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDiscoveryUrl:
    @pytest.mark.parametrize(
        "authority",
        [
            "https://id.example.com",
            "https://id.example.com/",
            "https://id.example.com/.well-known/openid-configuration",
        ],
    )
    def test_normalises_authority(self, authority: str) -> None:
        assert discovery_url(authority) == "https://id.example.com/.well-known/openid-configuration"

    def test_keeps_tenant_path(self) -> None:
        assert (
            discovery_url("https://login.example.com/tenant-a")
            == "https://login.example.com/tenant-a/.well-known/openid-configuration"
        )


class TestDiscover:
    @pytest.mark.asyncio
    async def test_parses_metadata(self) -> None:
        async with _client(body=METADATA) as http:
            metadata = await discover("https://id.example.com", http)

        assert metadata.issuer == "https://id.example.com"
        assert metadata.token_endpoint.endswith("/token")
        assert metadata.userinfo_endpoint is None
        assert metadata.model_extra == {"grant_types_supported": ["authorization_code"]}

    @pytest.mark.asyncio
    async def test_requests_well_known_path(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=METADATA)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            await discover("https://id.example.com/", http)

        assert seen == ["https://id.example.com/.well-known/openid-configuration"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["issuer", "authorization_endpoint", "token_endpoint"])
    async def test_missing_required_field(self, missing: str) -> None:
        body = {k: v for k, v in METADATA.items() if k != missing}
        async with _client(body=body) as http:
            with pytest.raises(DiscoveryError, match=missing):
                await discover("https://id.example.com", http)

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        async with _client(status=503, body={"error": "down"}) as http:
            with pytest.raises(DiscoveryError, match="503"):
                await discover("https://id.example.com", http)

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        async with _client(content=b"<html>not json</html>") as http:
            with pytest.raises(DiscoveryError, match="invalid JSON"):
                await discover("https://id.example.com", http)

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            with pytest.raises(DiscoveryError, match="refused"):
                await discover("https://id.example.com", http)

    @pytest.mark.asyncio
    async def test_non_object_document(self) -> None:
        async with _client(body=["not", "an", "object"]) as http:
            with pytest.raises(DiscoveryError, match="non-object"):
                await discover("https://id.example.com", http)


class TestFetchJwks:
    @pytest.mark.asyncio
    async def test_returns_key_set(self) -> None:
        jwks = {"keys": [{"kty": "RSA", "kid": "k1", "n": "abc", "e": "AQAB"}]}
        async with _client(body=jwks) as http:
            result = await fetch_jwks(ProviderMetadata.model_validate(METADATA), http)
        assert result == jwks

    @pytest.mark.asyncio
    async def test_missing_jwks_uri(self) -> None:
        metadata = ProviderMetadata.model_validate(
            {k: v for k, v in METADATA.items() if k != "jwks_uri"}
        )
        async with _client(body={}) as http:
            with pytest.raises(DiscoveryError, match="jwks_uri"):
                await fetch_jwks(metadata, http)

    @pytest.mark.asyncio
    async def test_missing_keys(self) -> None:
        async with _client(body={"not_keys": []}) as http:
            with pytest.raises(DiscoveryError, match="keys"):
                await fetch_jwks(ProviderMetadata.model_validate(METADATA), http)

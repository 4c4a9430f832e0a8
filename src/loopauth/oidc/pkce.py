"""PKCE (:rfc:`7636`) and per-request random values."""

from __future__ import annotations

import base64
import hashlib
import secrets


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    return code_verifier, code_challenge_for(code_verifier)


def code_challenge_for(code_verifier: str) -> str:
    """Return the S256 code challenge for *code_verifier*."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_state() -> str:
    """Random opaque value tying a redirect to the request that started it."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Random value the provider echoes into the ID token."""
    return secrets.token_urlsafe(32)

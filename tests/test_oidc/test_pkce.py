"""Tests for loopauth.oidc.pkce."""

from __future__ import annotations

import base64
import hashlib
import re

from loopauth.oidc.pkce import (
    code_challenge_for,
    generate_nonce,
    generate_pkce_pair,
    generate_state,
)

_UNRESERVED = re.compile(r"^[A-Za-z0-9\-._~]+$")


def test_verifier_length_and_charset() -> None:
    verifier, _ = generate_pkce_pair()
    assert 43 <= len(verifier) <= 128
    assert _UNRESERVED.match(verifier)


def test_challenge_is_s256_of_verifier() -> None:
    verifier, challenge = generate_pkce_pair()
    expected = (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )
    assert challenge == expected
    assert "=" not in challenge


def test_known_vector() -> None:
    # RFC 7636, appendix B
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert code_challenge_for(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_random_values_differ() -> None:
    assert generate_state() != generate_state()
    assert generate_nonce() != generate_nonce()
    assert generate_pkce_pair()[0] != generate_pkce_pair()[0]

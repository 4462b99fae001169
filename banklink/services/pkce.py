"""PKCE (Proof Key for Code Exchange) verifier and challenge generation."""

from __future__ import annotations

import base64
import hashlib
import secrets
import uuid
from typing import NamedTuple


class PKCEPair(NamedTuple):
    code_verifier: str
    code_challenge: str


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def derive_code_challenge(code_verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    return _b64url(hashlib.sha256(code_verifier.encode("ascii")).digest())


def generate_pkce_pair() -> PKCEPair:
    """Generate a high-entropy verifier (43 chars) and its S256 challenge."""
    code_verifier = _b64url(secrets.token_bytes(32))
    return PKCEPair(code_verifier, derive_code_challenge(code_verifier))


def generate_nonce() -> str:
    return str(uuid.uuid4())


__all__ = ["PKCEPair", "derive_code_challenge", "generate_nonce", "generate_pkce_pair"]

"""Symmetric encryption for aggregator tokens held in the credential store."""

from __future__ import annotations

import base64
import hashlib
from typing import Iterable

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


def _fernet_for(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class TokenCipherService:
    """
    Fernet encryption keyed on a passphrase.

    New ciphertext is always produced with ``secret``. Ciphertext written under
    any of ``previous_secrets`` still decrypts, so the encryption secret can be
    rotated without forcing every user to re-link. Rows move to the new secret
    the next time their tokens are written.
    """

    def __init__(self, *, secret: str, previous_secrets: Iterable[str] = ()) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        keys = [_fernet_for(secret)]
        keys.extend(_fernet_for(old) for old in previous_secrets if old and old != secret)
        self._fernet = MultiFernet(keys)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Stored token could not be decrypted; the encryption secret may have changed."
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService"]

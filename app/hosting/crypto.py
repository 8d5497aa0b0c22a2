"""
Encryption of secrets at rest (SSH private keys, TLS keys, registry passwords).
"""
from __future__ import annotations

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app


class CryptoError(RuntimeError):
    pass


@lru_cache(maxsize=8)
def _fernet(secret: str) -> Fernet:
    if not secret:
        raise CryptoError("ENCRYPTION_KEY is not configured.")
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def _secret(secret: str | None) -> str:
    if secret is not None:
        return secret
    return current_app.config["ENCRYPTION_KEY"]


def encrypt(text: str | None, *, secret: str | None = None) -> str | None:
    """Encrypt ``text``; empty values pass through untouched."""
    if not text:
        return text
    return _fernet(_secret(secret)).encrypt(text.encode("utf-8")).decode("ascii")


def decrypt(token: str | None, *, secret: str | None = None) -> str | None:
    """Decrypt a value produced by :func:`encrypt`; empty values pass through untouched."""
    if not token:
        return token
    try:
        return _fernet(_secret(secret)).decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, ValueError) as e:
        raise CryptoError("Stored secret cannot be decrypted (was ENCRYPTION_KEY changed?).") from e

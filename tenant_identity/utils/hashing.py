from __future__ import annotations

import hashlib
import hmac
import secrets

from tenant_identity.config import get_settings


API_KEY_PREFIX = "wr_"


def _hash_secret() -> bytes:
    """
    Server-side secret used to hash API keys before storing them.
    """
    return get_settings().hash_secret.encode("utf-8")


def sha256_hmac_hex(value: str) -> str:
    return hmac.new(_hash_secret(), value.encode("utf-8"), hashlib.sha256).hexdigest()


def random_hex(nbytes: int = 24) -> str:
    return secrets.token_hex(nbytes)


def hash_api_key(plain: str) -> str:
    """
    Deterministic lookup hash for an API key. Never reversed; only compared.
    """
    return sha256_hmac_hex(plain or "")


def generate_plain_api_key() -> str:
    """
    Generates a new API key.

    Format: wr_<48 hex chars>
    The prefix identifies the credential type in logs without revealing the secret.
    """
    return f"{API_KEY_PREFIX}{random_hex(24)}"


def last_four(plain: str) -> str:
    return plain[-4:]

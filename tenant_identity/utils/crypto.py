"""Encryption of API key material at rest and password hashing.

Key material is sealed with AES-256-GCM; the key is the SHA-256 digest of
API_KEY_SECRET, so values stay decryptable for as long as the secret is stable.
Passwords are hashed with scrypt and stored as "<salt hex>:<hash hex>".
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from tenant_identity.config import get_settings
from tenant_identity.core.errors import CryptographicError

logger = structlog.get_logger()

_NONCE_BYTES = 12
_TAG_BYTES = 16

_SALT_BYTES = 16
_SCRYPT_N = 16384
_SCRYPT_R = 8
_SCRYPT_P = 1
_SCRYPT_DKLEN = 64


@dataclass(frozen=True)
class EncryptedValue:
    ciphertext: str  # base64
    iv: str  # base64
    auth_tag: str  # base64


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("utf-8")


def _b64decode(s: str) -> bytes:
    return base64.b64decode((s or "").encode("utf-8"), validate=True)


def derive_encryption_key() -> bytes:
    return hashlib.sha256(get_settings().key_secret.encode("utf-8")).digest()


def encrypt_value(plaintext: str) -> EncryptedValue:
    iv = secrets.token_bytes(_NONCE_BYTES)
    sealed = AESGCM(derive_encryption_key()).encrypt(iv, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext; it is stored separately.
    return EncryptedValue(
        ciphertext=_b64encode(sealed[:-_TAG_BYTES]),
        iv=_b64encode(iv),
        auth_tag=_b64encode(sealed[-_TAG_BYTES:]),
    )


def decrypt_value(ciphertext: str, iv: str, auth_tag: str) -> str:
    try:
        nonce = _b64decode(iv)
        sealed = _b64decode(ciphertext) + _b64decode(auth_tag)
    except (binascii.Error, ValueError) as e:
        raise CryptographicError(f"malformed encrypted value: {e}") from e
    if len(nonce) != _NONCE_BYTES:
        raise CryptographicError("malformed encrypted value: bad iv length")
    try:
        plain = AESGCM(derive_encryption_key()).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        logger.warning("decryption_failed", reason="authentication tag mismatch")
        raise CryptographicError("authentication tag mismatch") from e
    return plain.decode("utf-8")


def _scrypt(password: str, salt: bytes, dklen: int) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        dklen=dklen,
    )


def create_password_hash(password: str) -> str:
    salt = secrets.token_bytes(_SALT_BYTES)
    derived = _scrypt(password, salt, _SCRYPT_DKLEN)
    return f"{salt.hex()}:{derived.hex()}"


def verify_password(password: str, stored_hash: str) -> bool:
    # A malformed hash is indistinguishable from a wrong password.
    salt_hex, _, hash_hex = (stored_hash or "").partition(":")
    if not salt_hex or not hash_hex:
        return False
    try:
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    derived = _scrypt(password or "", salt, len(expected))
    return hmac.compare_digest(expected, derived)

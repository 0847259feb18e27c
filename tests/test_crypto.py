from __future__ import annotations

import base64

import pytest

from tenant_identity.config import reset_settings
from tenant_identity.core.errors import CryptographicError
from tenant_identity.utils.crypto import (
    create_password_hash,
    decrypt_value,
    derive_encryption_key,
    encrypt_value,
    verify_password,
)
from tenant_identity.utils.hashing import generate_plain_api_key, hash_api_key


@pytest.mark.parametrize("plain", ["wr_abc123", "", "ünïcödé secret", "x" * 4096])
def test_encrypt_decrypt_round_trip(plain):
    sealed = encrypt_value(plain)
    assert decrypt_value(sealed.ciphertext, sealed.iv, sealed.auth_tag) == plain


def test_each_encryption_uses_a_fresh_nonce():
    a = encrypt_value("same value")
    b = encrypt_value("same value")
    assert a.iv != b.iv
    assert a.ciphertext != b.ciphertext


def test_derived_key_is_stable_and_256_bits():
    assert derive_encryption_key() == derive_encryption_key()
    assert len(derive_encryption_key()) == 32


def test_tampered_auth_tag_is_rejected():
    sealed = encrypt_value("wr_secret")
    tag = bytearray(base64.b64decode(sealed.auth_tag))
    tag[0] ^= 0x01
    with pytest.raises(CryptographicError):
        decrypt_value(sealed.ciphertext, sealed.iv, base64.b64encode(bytes(tag)).decode())


def test_tampered_ciphertext_is_rejected():
    sealed = encrypt_value("wr_secret")
    raw = bytearray(base64.b64decode(sealed.ciphertext))
    raw[-1] ^= 0x01
    with pytest.raises(CryptographicError):
        decrypt_value(base64.b64encode(bytes(raw)).decode(), sealed.iv, sealed.auth_tag)


def test_missing_parts_are_rejected():
    sealed = encrypt_value("wr_secret")
    with pytest.raises(CryptographicError):
        decrypt_value(sealed.ciphertext, "", sealed.auth_tag)
    with pytest.raises(CryptographicError):
        decrypt_value(sealed.ciphertext, sealed.iv, "")
    with pytest.raises(CryptographicError):
        decrypt_value(sealed.ciphertext, "not base64!!", sealed.auth_tag)


def test_wrong_key_is_rejected(monkeypatch):
    sealed = encrypt_value("wr_secret")
    monkeypatch.setenv("API_KEY_SECRET", "another-secret")
    reset_settings()
    with pytest.raises(CryptographicError):
        decrypt_value(sealed.ciphertext, sealed.iv, sealed.auth_tag)


def test_lookup_hash_is_deterministic_and_keyed(monkeypatch):
    plain = generate_plain_api_key()
    h1 = hash_api_key(plain)
    assert h1 == hash_api_key(plain)
    assert plain not in h1
    assert len(h1) == 64

    monkeypatch.setenv("API_KEY_HASH_SECRET", "separate-hash-secret")
    reset_settings()
    assert hash_api_key(plain) != h1


def test_plain_key_format():
    key = generate_plain_api_key()
    assert key.startswith("wr_")
    assert len(key) == 3 + 48
    int(key[3:], 16)
    assert generate_plain_api_key() != key


def test_password_hash_verifies():
    stored = create_password_hash("correct horse")
    salt, _, digest = stored.partition(":")
    assert len(salt) == 32
    assert len(digest) == 128
    assert verify_password("correct horse", stored)
    assert not verify_password("correct horsf", stored)


def test_password_hash_is_salted():
    assert create_password_hash("pw") != create_password_hash("pw")


@pytest.mark.parametrize(
    "stored",
    ["", "nocolon", ":abcd", "abcd:", "zz:abcd", "abcd:not-hex", None],
)
def test_malformed_password_hash_returns_false(stored):
    assert verify_password("anything", stored) is False

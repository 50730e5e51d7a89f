from __future__ import annotations

import pytest

from automaton.core.crypto import NONCE_LENGTH, DecryptionError, aesgcm_decrypt_bytes, aesgcm_encrypt_bytes, derive_key, new_salt


def _key(passphrase: str = "pw", salt: bytes = b"0" * 16) -> bytes:
    return derive_key(passphrase, salt, iterations=1_000)


def test_aesgcm_round_trip_with_aad():
    key = _key()
    blob = aesgcm_encrypt_bytes(key, b"wallet bytes", aad=b"wallet.json")
    assert len(blob) == NONCE_LENGTH + len(b"wallet bytes") + 16
    assert aesgcm_decrypt_bytes(key, blob, aad=b"wallet.json") == b"wallet bytes"


def test_ciphertext_bound_to_path():
    key = _key()
    blob = aesgcm_encrypt_bytes(key, b"secret", aad=b"wallet.json")
    with pytest.raises(DecryptionError):
        aesgcm_decrypt_bytes(key, blob, aad=b"SOUL.md")


def test_wrong_key():
    blob = aesgcm_encrypt_bytes(_key("a"), b"secret", aad=b"x")
    with pytest.raises(DecryptionError):
        aesgcm_decrypt_bytes(_key("b"), blob, aad=b"x")


def test_short_blob():
    with pytest.raises(DecryptionError):
        aesgcm_decrypt_bytes(_key(), b"\x00" * 10)


def test_nonce_is_random():
    key = _key()
    assert aesgcm_encrypt_bytes(key, b"same") != aesgcm_encrypt_bytes(key, b"same")


def test_derive_key_depends_on_salt():
    assert _key(salt=b"a" * 16) == _key(salt=b"a" * 16)
    assert _key(salt=b"a" * 16) != _key(salt=b"b" * 16)
    assert len(_key()) == 32
    assert len(new_salt()) == 16


def test_empty_passphrase_rejected():
    with pytest.raises(ValueError):
        derive_key("", b"0" * 16)

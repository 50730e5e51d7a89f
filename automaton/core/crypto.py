from __future__ import annotations

import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


ALGORITHM = "AES-256-GCM"
KDF = "PBKDF2-HMAC-SHA256"
NONCE_LENGTH = 12
SALT_LENGTH = 16
KEY_LENGTH = 32
DEFAULT_KDF_ITERATIONS = 100_000


class DecryptionError(RuntimeError):
    pass


def new_salt() -> bytes:
    return secrets.token_bytes(SALT_LENGTH)


def derive_key(passphrase: str, salt: bytes, *, iterations: int = DEFAULT_KDF_ITERATIONS) -> bytes:
    """
    Stretch a caller-supplied passphrase into an AES-256 key.
    The salt is per-backup and stored alongside the ciphertext (in the manifest).
    """
    if not passphrase:
        raise ValueError("Encryption key must be a non-empty string.")
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=salt, iterations=int(iterations))
    return kdf.derive(passphrase.encode("utf-8"))


def aesgcm_encrypt_bytes(key: bytes, plaintext: bytes, aad: bytes = b"") -> bytes:
    """Returns nonce || ciphertext || tag."""
    aes = AESGCM(key)
    nonce = secrets.token_bytes(NONCE_LENGTH)
    return nonce + aes.encrypt(nonce, plaintext, aad or None)


def aesgcm_decrypt_bytes(key: bytes, blob: bytes, aad: bytes = b"") -> bytes:
    if len(blob) < NONCE_LENGTH + 16:
        raise DecryptionError("Ciphertext too short.")
    aes = AESGCM(key)
    try:
        return aes.decrypt(blob[:NONCE_LENGTH], blob[NONCE_LENGTH:], aad or None)
    except InvalidTag as e:
        raise DecryptionError("Authentication failed (wrong key or tampered data).") from e


def best_effort_restrict_permissions(path: str, mode: Optional[int] = None) -> None:
    """
    Best-effort permissions tightening.
    On Windows this is limited; on POSIX it sets 0o600 (0o700 for directories).
    """
    try:
        if os.name != "nt":
            if mode is None:
                mode = 0o700 if os.path.isdir(path) else 0o600
            os.chmod(path, mode)
    except OSError:
        return

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from automaton.core.backup.archiver import decompress_payload, load_manifest, read_payload, stored_slice
from automaton.core.backup.hasher import sha256_bytes
from automaton.core.errors import IntegrityError


@dataclass(frozen=True)
class VerifyResult:
    valid: bool
    errors: List[str]
    checked_files: int


def verify_backup_dir(backup_path: str) -> VerifyResult:
    """
    Recompute the seal from what is on disk. Never needs a decryption key:
    the checksum and stored_hash cover ciphertext, and plaintext hashes are
    only re-checked for unencrypted entries.
    """
    errors: List[str] = []
    checked = 0
    try:
        man = load_manifest(backup_path)
    except IntegrityError as e:
        return VerifyResult(valid=False, errors=[str(e)], checked_files=0)

    try:
        payload = read_payload(backup_path)
    except IntegrityError as e:
        return VerifyResult(valid=False, errors=[str(e)], checked_files=0)

    if man.compute_checksum(payload) != man.checksum:
        errors.append("Manifest checksum mismatch")

    try:
        raw = decompress_payload(payload)
    except IntegrityError as e:
        errors.append(str(e))
        return VerifyResult(valid=False, errors=errors, checked_files=0)

    expected_len = sum(e.length for e in man.files)
    if expected_len != len(raw):
        errors.append(f"Payload size mismatch: manifest addresses {expected_len} bytes, payload holds {len(raw)}")

    for ent in man.files:
        data = stored_slice(raw, ent)
        if data is None:
            errors.append(f"Missing data for: {ent.relative_path}")
            continue
        got = sha256_bytes(data)
        if got != ent.stored_hash:
            errors.append(f"Stored data hash mismatch: {ent.relative_path}")
        elif not ent.encrypted and got != ent.content_hash:
            errors.append(f"Checksum mismatch: {ent.relative_path}")
        checked += 1

    return VerifyResult(valid=(len(errors) == 0), errors=errors, checked_files=checked)

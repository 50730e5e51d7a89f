from __future__ import annotations

import base64
import gzip
import json
import os
import shutil
import zlib
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError

from automaton.core.backup.hasher import sha256_bytes
from automaton.core.backup.models import MANIFEST_NAME, PAYLOAD_NAME, BackupManifest, Category, EncryptionInfo, ManifestFileEntry
from automaton.core.crypto import ALGORITHM, KDF, aesgcm_encrypt_bytes, best_effort_restrict_permissions, derive_key, new_salt
from automaton.core.errors import IntegrityError


@dataclass(frozen=True)
class StagedFile:
    """One file as it will be stored in the payload (ciphertext when encrypted)."""

    relative_path: str
    category: Category
    content_hash: str
    size_bytes: int
    encrypted: bool
    stored: bytes
    modified_at: float = 0.0


def b64e(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    return base64.urlsafe_b64decode(s.encode("ascii"))


def new_encryption(passphrase: str, *, iterations: int) -> Tuple[EncryptionInfo, bytes]:
    salt = new_salt()
    info = EncryptionInfo(algorithm=ALGORITHM, kdf=KDF, iterations=iterations, salt=b64e(salt))
    return info, derive_key(passphrase, salt, iterations=iterations)


def key_for(info: EncryptionInfo, passphrase: str) -> bytes:
    return derive_key(passphrase, b64d(info.salt), iterations=info.iterations)


def stage_file(
    relative_path: str,
    category: Category,
    data: bytes,
    *,
    key: Optional[bytes],
    encrypt: bool,
    modified_at: float = 0.0,
) -> StagedFile:
    # the relative path is bound as associated data: ciphertext cannot be moved to another entry
    stored = aesgcm_encrypt_bytes(key, data, aad=relative_path.encode("utf-8")) if (encrypt and key) else data
    return StagedFile(
        relative_path=relative_path,
        category=category,
        content_hash=sha256_bytes(data),
        size_bytes=len(data),
        encrypted=bool(encrypt and key),
        stored=stored,
        modified_at=modified_at,
    )


def pack_payload(staged: Iterable[StagedFile], *, compress_level: int = 6) -> Tuple[List[ManifestFileEntry], bytes]:
    """
    Concatenate stored bytes and gzip them as one stream.
    Entries address their bytes by (offset, length) in the decompressed stream.
    """
    entries: List[ManifestFileEntry] = []
    chunks: List[bytes] = []
    offset = 0
    for s in staged:
        entries.append(
            ManifestFileEntry(
                relative_path=s.relative_path,
                category=s.category,
                content_hash=s.content_hash,
                stored_hash=sha256_bytes(s.stored),
                size_bytes=s.size_bytes,
                encrypted=s.encrypted,
                offset=offset,
                length=len(s.stored),
                modified_at=s.modified_at,
            )
        )
        chunks.append(s.stored)
        offset += len(s.stored)
    payload = gzip.compress(b"".join(chunks), compresslevel=int(compress_level), mtime=0)
    return entries, payload


def serialize_manifest(manifest: BackupManifest) -> bytes:
    return (json.dumps(manifest.model_dump(mode="json"), ensure_ascii=False, indent=2, sort_keys=True) + "\n").encode("utf-8")


def parse_manifest(raw: bytes, *, source: str = MANIFEST_NAME) -> BackupManifest:
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise IntegrityError(f"Malformed manifest ({source}): {e}", path=source) from e
    if not isinstance(obj, dict):
        raise IntegrityError(f"Malformed manifest ({source}): not an object", path=source)
    try:
        return BackupManifest.model_validate(obj)
    except ValidationError as e:
        raise IntegrityError(f"Malformed manifest ({source}): {e.error_count()} schema error(s)", path=source, error=str(e)) from e


def load_manifest(backup_path: str) -> BackupManifest:
    p = os.path.join(backup_path, MANIFEST_NAME)
    try:
        with open(p, "rb") as f:
            raw = f.read()
    except FileNotFoundError as e:
        raise IntegrityError(f"Missing manifest: {p}", path=p) from e
    except OSError as e:
        raise IntegrityError(f"Unreadable manifest: {p}: {e}", path=p) from e
    return parse_manifest(raw, source=p)


def read_manifest_bytes(backup_path: str) -> bytes:
    with open(os.path.join(backup_path, MANIFEST_NAME), "rb") as f:
        return f.read()


def read_payload(backup_path: str) -> bytes:
    p = os.path.join(backup_path, PAYLOAD_NAME)
    try:
        with open(p, "rb") as f:
            return f.read()
    except FileNotFoundError as e:
        raise IntegrityError(f"Missing payload: {p}", path=p) from e
    except OSError as e:
        raise IntegrityError(f"Unreadable payload: {p}: {e}", path=p) from e


def decompress_payload(payload: bytes) -> bytes:
    try:
        return gzip.decompress(payload)
    except (OSError, EOFError, zlib.error) as e:
        raise IntegrityError(f"Payload cannot be decompressed: {e}") from e


def stored_slice(raw: bytes, entry: ManifestFileEntry) -> Optional[bytes]:
    end = entry.offset + entry.length
    if end > len(raw):
        return None
    return raw[entry.offset : end]


def write_backup_dir(backups_root: str, manifest: BackupManifest, payload: bytes) -> str:
    """
    Seal manifest + payload into <backups_root>/<backup_id>/.
    Written into a hidden sibling first and renamed, so a failure never leaves
    a half-written backup that looks complete.
    """
    os.makedirs(backups_root, exist_ok=True)
    final = os.path.join(backups_root, manifest.backup_id)
    if os.path.exists(final):
        raise FileExistsError(final)
    tmp = os.path.join(backups_root, f".{manifest.backup_id}.tmp")
    try:
        os.makedirs(tmp, exist_ok=False)
        best_effort_restrict_permissions(tmp, 0o700)
        for name, data in ((PAYLOAD_NAME, payload), (MANIFEST_NAME, serialize_manifest(manifest))):
            p = os.path.join(tmp, name)
            with open(p, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            best_effort_restrict_permissions(p, 0o600)
        os.replace(tmp, final)
    except BaseException:
        shutil.rmtree(tmp, ignore_errors=True)
        raise
    return final


def dir_size(path: str) -> int:
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for fn in filenames:
            try:
                total += os.path.getsize(os.path.join(dirpath, fn))
            except OSError:
                continue
    return total

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Iterable, List


def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def canonical_json(obj: Any) -> bytes:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")


def seal_checksum(header: Dict[str, Any], entries: Iterable[Dict[str, Any]], payload: bytes) -> str:
    """
    Integrity digest of a backup.

    Covers the sealed manifest header, every file entry (sorted by path, so
    insertion order is irrelevant) and the compressed payload bytes.
    """
    ordered: List[Dict[str, Any]] = sorted(entries, key=lambda e: str(e.get("relative_path")))
    h = hashlib.sha256()
    h.update(canonical_json({"header": header, "files": ordered}))
    h.update(b"\n")
    h.update(hashlib.sha256(payload).digest())
    return h.hexdigest()

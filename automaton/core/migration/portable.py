from __future__ import annotations

"""
Portable bundle framing.

    offset 0..4   : manifest_length (uint32, big-endian)
    offset 4..4+N : manifest JSON (N = manifest_length)
    offset 4+N..  : gzip payload (rest of the stream)

No index and no trailer, so the stream can be produced and consumed in one
pass: read 4 bytes, read N bytes, read the rest.
"""

import io
import struct
from dataclasses import dataclass
from typing import BinaryIO, Tuple

from automaton.core.errors import IntegrityError


HEADER = struct.Struct(">I")
MAX_MANIFEST_BYTES = 64 * 1024 * 1024


@dataclass(frozen=True)
class PortableExport:
    file_path: str
    sandbox_id: str
    file_count: int
    size_bytes: int
    exported_at: str


def write_bundle(fp: BinaryIO, manifest_bytes: bytes, payload: bytes) -> int:
    if len(manifest_bytes) > MAX_MANIFEST_BYTES:
        raise ValueError("Manifest too large for a portable bundle.")
    fp.write(HEADER.pack(len(manifest_bytes)))
    fp.write(manifest_bytes)
    fp.write(payload)
    return HEADER.size + len(manifest_bytes) + len(payload)


def pack_bundle(manifest_bytes: bytes, payload: bytes) -> bytes:
    buf = io.BytesIO()
    write_bundle(buf, manifest_bytes, payload)
    return buf.getvalue()


def read_bundle(fp: BinaryIO) -> Tuple[bytes, bytes]:
    """Returns (manifest_bytes, payload). Framing errors are IntegrityError."""
    head = fp.read(HEADER.size)
    if len(head) != HEADER.size:
        raise IntegrityError("Portable bundle is truncated (no length header).")
    (n,) = HEADER.unpack(head)
    if n == 0 or n > MAX_MANIFEST_BYTES:
        raise IntegrityError(f"Portable bundle declares an invalid manifest length: {n}")
    manifest_bytes = fp.read(n)
    if len(manifest_bytes) != n:
        raise IntegrityError(f"Portable bundle is truncated: manifest needs {n} bytes, got {len(manifest_bytes)}")
    payload = fp.read()
    if not payload:
        raise IntegrityError("Portable bundle has no payload.")
    return manifest_bytes, payload


def unpack_bundle(data: bytes) -> Tuple[bytes, bytes]:
    return read_bundle(io.BytesIO(data))

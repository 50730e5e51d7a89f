from __future__ import annotations

import io
import os
import struct

import pytest

from automaton.core.errors import IntegrityError
from automaton.core.migration.portable import pack_bundle, read_bundle, unpack_bundle


def test_bundle_framing():
    blob = pack_bundle(b'{"a":1}', b"\x1f\x8bpayload")
    assert blob[:4] == struct.pack(">I", 7)
    assert unpack_bundle(blob) == (b'{"a":1}', b"\x1f\x8bpayload")


@pytest.mark.parametrize(
    "blob",
    [
        b"\x00\x00",
        struct.pack(">I", 0) + b"payload",
        struct.pack(">I", 1000) + b"{}",
        struct.pack(">I", 2) + b"{}",
    ],
)
def test_bad_framing(blob):
    with pytest.raises(IntegrityError):
        read_bundle(io.BytesIO(blob))


def test_portable_round_trip(migration, target_migration, service, tmp_path, state_paths, target_paths, read_state):
    out = str(tmp_path / "export.bundle")
    exp = migration.export_portable(None, out)

    assert exp.file_path == out
    assert exp.sandbox_id == "sandbox-1"
    assert exp.file_count == 6
    assert exp.size_bytes == os.path.getsize(out)
    if os.name != "nt":
        assert os.stat(out).st_mode & 0o777 == 0o600
    # the intermediate backup is gone and nothing shows up in listings
    assert service.list_backups() == []
    assert [n for n in os.listdir(service.default_dir()) if n.startswith("_")] == []

    res = target_migration.import_portable(out, "sandbox-2")
    assert res.success is True
    assert res.source_sandbox_id == "sandbox-1"
    assert res.files_restored == 6
    for rel in ("wallet.json", "SOUL.md", "state.db", "skills/web/SKILL.md"):
        assert read_state(target_paths, rel) == read_state(state_paths, rel)


def test_portable_encrypted(migration, target_migration, tmp_path, state_paths, target_paths, read_state):
    out = str(tmp_path / "export.bundle")
    migration.export_portable("sandbox-1", out, encryption_key="k")
    with open(out, "rb") as f:
        assert b"0xdeadbeef" not in f.read()

    res = target_migration.import_portable(out, "sandbox-2", decryption_key="k")
    assert res.success is True
    assert read_state(target_paths, "wallet.json") == read_state(state_paths, "wallet.json")


def test_import_removes_transient_dir(migration, target_migration, target_service, tmp_path):
    out = str(tmp_path / "export.bundle")
    migration.export_portable(None, out)
    target_migration.import_portable(out, "sandbox-2")
    root = target_service.default_dir()
    assert not os.path.exists(root) or os.listdir(root) == []


def test_truncated_bundle(migration, target_migration, target_paths, tmp_path):
    out = str(tmp_path / "export.bundle")
    migration.export_portable(None, out)
    with open(out, "rb") as f:
        head = f.read(40)
    bad = str(tmp_path / "truncated.bundle")
    with open(bad, "wb") as f:
        f.write(head)

    res = target_migration.import_portable(bad, "sandbox-2")
    assert res.success is False
    assert res.errors[0].startswith("Integrity check failed:")
    assert not os.path.exists(target_paths.identity)


def test_corrupted_payload_in_bundle(migration, target_migration, target_paths, tmp_path):
    out = str(tmp_path / "export.bundle")
    migration.export_portable(None, out)
    with open(out, "rb") as f:
        data = bytearray(f.read())
    data[-12] ^= 0xFF
    with open(out, "wb") as f:
        f.write(bytes(data))

    res = target_migration.import_portable(out, "sandbox-2")
    assert res.success is False
    assert res.errors[0].startswith("Integrity check failed:")
    assert not os.path.exists(target_paths.identity)


def test_missing_bundle(target_migration, tmp_path):
    res = target_migration.import_portable(str(tmp_path / "nope.bundle"), "sandbox-2")
    assert res.success is False
    assert res.errors[0].startswith("Cannot read bundle")

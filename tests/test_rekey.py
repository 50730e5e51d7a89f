from __future__ import annotations

import gzip
import os

import pytest

from automaton.core.errors import EncryptionKeyError, IntegrityError, ValidationError


def test_rekey_moves_secrets_to_new_key(service, state_paths, read_state, write_state):
    src = service.create_backup(encryption_key="old owner")
    out = service.rekey_backup(src.path, "old owner", "new owner")

    assert out.id != src.id
    assert out.sandbox_id == src.sandbox_id
    assert out.file_count == src.file_count
    assert service.verify_backup_integrity(out.path).valid is True

    a = service.load_manifest(src.path)
    b = service.load_manifest(out.path)
    assert a.encryption.salt != b.encryption.salt
    plain_a = {e.relative_path: e.stored_hash for e in a.files if not e.encrypted}
    plain_b = {e.relative_path: e.stored_hash for e in b.files if not e.encrypted}
    assert plain_a == plain_b
    assert {e.relative_path for e in b.files if e.encrypted} == {"wallet.json"}

    expected = read_state(state_paths, "wallet.json")
    write_state(state_paths, "wallet.json", b"lost")
    assert service.restore_backup(out.path, decryption_key="old owner").errors == ["Decryption failed: wallet.json"]
    res = service.restore_backup(out.path, decryption_key="new owner")
    assert res.errors == []
    assert read_state(state_paths, "wallet.json") == expected


def test_rekey_into_other_dir(service, tmp_path):
    src = service.create_backup(encryption_key="a")
    out = service.rekey_backup(src.path, "a", "b", output_dir=str(tmp_path / "handover"))
    assert os.path.dirname(out.path) == str(tmp_path / "handover")


def test_rekey_wrong_old_key(service):
    src = service.create_backup(encryption_key="a")
    with pytest.raises(EncryptionKeyError):
        service.rekey_backup(src.path, "not a", "b")
    assert len(service.list_backups()) == 1


def test_rekey_plain_backup(service):
    src = service.create_backup()
    with pytest.raises(ValidationError):
        service.rekey_backup(src.path, "a", "b")


def test_rekey_tampered_source(service):
    src = service.create_backup(encryption_key="a")
    with open(os.path.join(src.path, "data.gz"), "wb") as f:
        f.write(gzip.compress(b"x", mtime=0))
    with pytest.raises(IntegrityError):
        service.rekey_backup(src.path, "a", "b")

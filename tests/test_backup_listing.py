from __future__ import annotations

import os

import pytest

from automaton.core.backup.api import is_transient_dir, new_backup_id
from automaton.core.errors import ValidationError


def test_backup_ids_are_sortable_and_unique():
    a = new_backup_id(1_700_000_000.25)
    b = new_backup_id(1_700_000_000.25)
    assert a.startswith("backup_20231114_221320_250000_")
    assert a != b


def test_transient_names():
    assert is_transient_dir("_portable_import_abc")
    assert is_transient_dir(".backup_x.tmp")
    assert not is_transient_dir("backup_20240101_000000_000000_abcdef")


def test_list_newest_first(service):
    ids = [service.create_backup().id for _ in range(3)]
    listed = service.list_backups()
    assert [b.id for b in listed] == list(reversed(ids))
    assert all(b.file_count == 6 and b.type == "full" for b in listed)


def test_list_missing_root(service, tmp_path):
    assert service.list_backups(backups_root=str(tmp_path / "nope")) == []


def test_list_skips_transient_and_broken(service):
    info = service.create_backup()
    root = service.default_dir()
    os.makedirs(os.path.join(root, "_portable_import_x"))
    os.makedirs(os.path.join(root, ".backup_y.tmp"))
    broken = os.path.join(root, "backup_broken")
    os.makedirs(broken)
    with open(os.path.join(broken, "manifest.json"), "w", encoding="utf-8") as f:
        f.write("[]")
    with open(os.path.join(root, "stray.txt"), "w", encoding="utf-8") as f:
        f.write("x")

    assert [b.id for b in service.list_backups()] == [info.id]


def test_list_filters_by_sandbox(service):
    mine = service.create_backup()
    service.create_backup(source_identity_id="someone-else")
    assert [b.id for b in service.list_backups(sandbox_id="sandbox-1")] == [mine.id]
    assert len(service.list_backups()) == 2


def test_prune_keeps_newest(service):
    ids = [service.create_backup().id for _ in range(4)]
    removed = service.prune_backups(None, 2)
    assert removed == 2
    assert [b.id for b in service.list_backups()] == [ids[3], ids[2]]


def test_prune_to_zero(service):
    service.create_backup()
    service.create_backup()
    assert service.prune_backups(service.default_dir(), 0) == 2
    assert service.list_backups() == []


def test_prune_nothing_to_do(service):
    service.create_backup()
    assert service.prune_backups(None, 5) == 0
    assert len(service.list_backups()) == 1


def test_prune_negative_keep(service):
    with pytest.raises(ValidationError):
        service.prune_backups(None, -1)


def test_create_applies_retention(service):
    for _ in range(3):
        last = service.create_backup(max_retained=2)
    listed = service.list_backups()
    assert len(listed) == 2
    assert listed[0].id == last.id

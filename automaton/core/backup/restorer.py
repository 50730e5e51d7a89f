from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from automaton.core.backup.archiver import decompress_payload, key_for, load_manifest, read_payload, stored_slice
from automaton.core.backup.hasher import sha256_bytes
from automaton.core.backup.models import ALL, BackupManifest, Category, ManifestFileEntry
from automaton.core.backup.verifier import verify_backup_dir
from automaton.core.config.io import atomic_write_bytes, file_mode
from automaton.core.config.paths import StatePaths
from automaton.core.crypto import DecryptionError, aesgcm_decrypt_bytes
from automaton.core.errors import IntegrityError, TargetWriteError, ValidationError
from automaton.core.logger import trace


SENSITIVE_CATEGORIES = {Category.identity, Category.secrets}


@dataclass(frozen=True)
class RestorePlan:
    backup_id: str
    categories: Tuple[str, ...]
    selected: List[ManifestFileEntry]
    skipped: List[str]


@dataclass(frozen=True)
class RestoreResult:
    dry_run: bool
    restored_files: List[str] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)
    failed_files: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def normalize_categories(categories: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if categories is None:
        return (ALL,)
    if isinstance(categories, str):
        categories = [categories]
    out: List[str] = []
    valid = {c.value for c in Category} | {ALL}
    for c in categories:
        name = c.value if isinstance(c, Category) else str(c).strip().lower()
        if name not in valid:
            raise ValidationError(f"Unknown restore category: {c!r}", allowed=sorted(valid))
        if name not in out:
            out.append(name)
    if not out:
        raise ValidationError("At least one restore category is required.", allowed=sorted(valid))
    return tuple(out)


def plan_restore(manifest: BackupManifest, *, categories: Optional[Iterable[str]] = None) -> RestorePlan:
    cats = normalize_categories(categories)
    selected: List[ManifestFileEntry] = []
    skipped: List[str] = []
    for ent in manifest.files:
        if ALL in cats or ent.category.value in cats:
            selected.append(ent)
        else:
            skipped.append(ent.relative_path)
    return RestorePlan(backup_id=manifest.backup_id, categories=cats, selected=selected, skipped=skipped)


def check_target(paths: StatePaths, entry: ManifestFileEntry) -> None:
    """Path-shape checks a dry run can make without writing."""
    rel = entry.relative_path
    cur = paths.root
    for part in rel.split("/")[:-1]:
        cur = os.path.join(cur, part)
        if os.path.lexists(cur) and not os.path.isdir(cur):
            raise TargetWriteError(f"Write failed: {rel}: {part} is not a directory", path=rel)
    if os.path.isdir(paths.resolve(rel)):
        raise TargetWriteError(f"Write failed: {rel}: target is a directory", path=rel)


def write_restored_file(paths: StatePaths, entry: ManifestFileEntry, data: bytes) -> str:
    target = paths.resolve(entry.relative_path)
    root = os.path.realpath(paths.root)
    parent = os.path.dirname(target)
    try:
        os.makedirs(parent, mode=0o700, exist_ok=True)
        if os.path.commonpath([root, os.path.realpath(parent)]) != root:
            raise TargetWriteError(f"Write failed: {entry.relative_path}: resolves outside the state root", path=entry.relative_path)
        mode = 0o600 if entry.category in SENSITIVE_CATEGORIES else (file_mode(target) or 0o600)
        atomic_write_bytes(target, data, mode=mode)
    except OSError as e:
        raise TargetWriteError(f"Write failed: {entry.relative_path}: {e.strerror or e}", path=entry.relative_path) from e
    return target


def restore_from_backup(
    backup_path: str,
    *,
    paths: StatePaths,
    categories: Optional[Iterable[str]] = None,
    dry_run: bool = False,
    decryption_key: Optional[str] = None,
    logger: Any = None,
    trace_id: Optional[str] = None,
) -> RestoreResult:
    """
    Per-file best effort, after an all-or-nothing integrity gate.
    A failed integrity check restores nothing.
    """
    cats = normalize_categories(categories)
    vr = verify_backup_dir(backup_path)
    if not vr.valid:
        return RestoreResult(dry_run=dry_run, errors=[f"Integrity check failed: {', '.join(vr.errors)}"])

    try:
        man = load_manifest(backup_path)
        raw = decompress_payload(read_payload(backup_path))
    except IntegrityError as e:
        return RestoreResult(dry_run=dry_run, errors=[f"Integrity check failed: {e}"])

    plan = plan_restore(man, categories=cats)

    key: Optional[bytes] = None
    if decryption_key and man.encryption is not None and any(e.encrypted for e in plan.selected):
        key = key_for(man.encryption, decryption_key)

    restored: List[str] = []
    failed: List[str] = []
    errors: List[str] = []
    for ent in plan.selected:
        rel = ent.relative_path
        data = stored_slice(raw, ent)
        if data is None:
            errors.append(f"Missing data for: {rel}")
            failed.append(rel)
            continue
        if ent.encrypted:
            if key is None:
                errors.append(f"Cannot restore encrypted file without key: {rel}")
                failed.append(rel)
                continue
            try:
                data = aesgcm_decrypt_bytes(key, data, aad=rel.encode("utf-8"))
            except DecryptionError:
                errors.append(f"Decryption failed: {rel}")
                failed.append(rel)
                continue
        if sha256_bytes(data) != ent.content_hash:
            errors.append(f"Content hash mismatch: {rel}")
            failed.append(rel)
            continue
        try:
            check_target(paths, ent)
            if not dry_run:
                write_restored_file(paths, ent, data)
        except TargetWriteError as e:
            errors.append(str(e))
            failed.append(rel)
            continue
        restored.append(rel)

    if logger is not None:
        logger.info(
            "Restore %s from %s: %d restored, %d skipped, %d failed",
            "planned (dry run)" if dry_run else "applied",
            plan.backup_id,
            len(restored),
            len(plan.skipped),
            len(failed),
            extra=trace(trace_id or "-"),
        )
    return RestoreResult(dry_run=dry_run, restored_files=restored, skipped_files=list(plan.skipped), failed_files=failed, errors=errors)

from __future__ import annotations

import os
import secrets
import shutil
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from automaton.core.backup.archiver import (
    StagedFile,
    decompress_payload,
    dir_size,
    key_for,
    load_manifest,
    new_encryption,
    pack_payload,
    read_payload,
    stage_file,
    stored_slice,
    write_backup_dir,
)
from automaton.core.backup.collector import SourceFile, collect_files, read_source
from automaton.core.backup.hasher import sha256_bytes
from automaton.core.backup.models import MANIFEST_VERSION, BackupInfo, BackupManifest, BackupType, Category
from automaton.core.backup.restorer import RestoreResult, restore_from_backup
from automaton.core.backup.verifier import VerifyResult, verify_backup_dir
from automaton.core.config.manager import get_backup_config
from automaton.core.config.models import BackupConfigFile
from automaton.core.config.paths import StatePaths
from automaton.core.crypto import DecryptionError, aesgcm_decrypt_bytes
from automaton.core.errors import ConfigError, EncryptionKeyError, IntegrityError, ValidationError
from automaton.core.identity.resolver import FileIdentityResolver, IdentityResolver
from automaton.core.logger import get_logger, trace
from automaton.core.ops_log import OpsLogger


def new_backup_id(now: float) -> str:
    ts = time.strftime("%Y%m%d_%H%M%S", time.gmtime(now))
    micros = int((now % 1) * 1_000_000)
    return f"backup_{ts}_{micros:06d}_{secrets.token_hex(3)}"


def is_transient_dir(name: str) -> bool:
    return name.startswith("_") or name.startswith(".")


class BackupService:
    """
    Backup / restore for one durable-state root.

    Constructed explicitly by the caller (supervisor, CLI, tests) and bound to
    one identity resolver. Callers serialize operations per identity.
    """

    def __init__(
        self,
        *,
        paths: Optional[StatePaths] = None,
        identity: Optional[IdentityResolver] = None,
        cfg: Optional[BackupConfigFile] = None,
        logger: Any = None,
        ops: Optional[OpsLogger] = None,
    ):
        if identity is None:
            identity = FileIdentityResolver(paths or StatePaths.from_env())
        self.identity = identity
        self.paths = paths or identity.state_paths()
        self.logger = logger or get_logger("backup")
        self.cfg = cfg or get_backup_config(self.paths, logger=self.logger)
        self.ops = ops

    def default_dir(self) -> str:
        return self.paths.backups_dir(self.cfg.default_dir)

    # ---------- create ----------
    def create_backup(
        self,
        source_identity_id: Optional[str] = None,
        *,
        backup_type: str = "full",
        encryption_key: Optional[str] = None,
        output_dir: Optional[str] = None,
        encrypt_categories: Optional[Iterable[str]] = None,
        max_retained: Optional[int] = None,
    ) -> BackupInfo:
        if not self.cfg.enabled:
            raise ConfigError("Backups disabled by config.")
        try:
            btype = BackupType(str(backup_type))
        except ValueError as e:
            raise ValidationError(f"Unknown backup type: {backup_type!r}", allowed=[t.value for t in BackupType]) from e
        sandbox_id = source_identity_id or self.identity.current_sandbox_id()
        if not sandbox_id:
            raise ValidationError("Source sandbox id is unknown (no sandboxId in automaton.json and none given).")
        backups_root = output_dir or self.default_dir()
        encrypt = self._encrypt_set(encrypt_categories)

        t0 = time.time()
        trace_id = uuid.uuid4().hex
        sources, warnings = collect_files(self.paths.root)
        for w in warnings:
            self.logger.warning("Backup collect: %s", w, extra=trace(trace_id))

        base_ref: Optional[str] = None
        baseline: Dict[str, str] = {}
        if btype == BackupType.incremental:
            base_ref, baseline = self._chain_state(backups_root, sandbox_id)
            if base_ref is None:
                self.logger.info("No prior backup for %s; incremental captures every file", sandbox_id, extra=trace(trace_id))

        captured: List[Tuple[SourceFile, bytes, float]] = []
        for src in sources:
            data, mtime = read_source(src)  # SourceReadError aborts before anything is written
            if btype == BackupType.incremental and baseline.get(src.relative_path) == sha256_bytes(data):
                continue
            captured.append((src, data, mtime))

        enc_info = None
        key: Optional[bytes] = None
        if encryption_key and any(src.category in encrypt for src, _d, _m in captured):
            enc_info, key = new_encryption(encryption_key, iterations=self.cfg.kdf_iterations)

        staged = [
            stage_file(src.relative_path, src.category, data, key=key, encrypt=src.category in encrypt, modified_at=mtime)
            for src, data, mtime in captured
        ]
        entries, payload = pack_payload(staged, compress_level=self.cfg.compress_level)

        now = time.time()
        man = BackupManifest(
            version=MANIFEST_VERSION,
            backup_id=new_backup_id(now),
            sandbox_id=sandbox_id,
            created_at=now,
            type=btype,
            base_manifest_ref=base_ref,
            files=entries,
            encryption=enc_info,
            checksum="",
        )
        man.checksum = man.compute_checksum(payload)
        path = write_backup_dir(backups_root, man, payload)
        info = self._info(path, man)

        self.logger.info(
            "Backup created: %s (%s, %d files, %d bytes, %.0f ms)",
            man.backup_id,
            btype.value,
            info.file_count,
            info.size,
            (time.time() - t0) * 1000.0,
            extra=trace(trace_id),
        )
        self._ops_event(
            trace_id,
            "backup.create",
            "ok",
            {"backup_id": man.backup_id, "type": btype.value, "file_count": info.file_count, "encrypted": enc_info is not None},
        )

        retain = self.cfg.max_retained if max_retained is None else int(max_retained)
        if retain > 0:
            self.prune_backups(backups_root, retain)
        return info

    # ---------- list / prune ----------
    def list_backups(self, *, backups_root: Optional[str] = None, sandbox_id: Optional[str] = None) -> List[BackupInfo]:
        """Newest first."""
        items = [self._info(p, m) for p, m in self._scan(backups_root or self.default_dir())]
        if sandbox_id is not None:
            items = [b for b in items if b.sandbox_id == sandbox_id]
        items.sort(key=lambda b: (b.created_at, b.id), reverse=True)
        return items

    def prune_backups(self, backups_root: Optional[str], keep_count: int) -> int:
        if int(keep_count) < 0:
            raise ValidationError("keep_count must be >= 0.", keep_count=keep_count)
        trace_id = uuid.uuid4().hex
        backups = self.list_backups(backups_root=backups_root)
        removed = 0
        for b in reversed(backups[int(keep_count) :]):
            try:
                shutil.rmtree(b.path)
                removed += 1
            except OSError as e:
                self.logger.warning("Prune failed for %s: %s", b.id, e, extra=trace(trace_id))
        if removed:
            self.logger.info("Pruned %d backup(s), kept %d", removed, len(backups) - removed, extra=trace(trace_id))
            self._ops_event(trace_id, "backup.prune", "ok", {"removed": removed, "keep_count": int(keep_count)})
        return removed

    # ---------- manifest / integrity ----------
    def load_manifest(self, backup_path: str) -> BackupManifest:
        return load_manifest(backup_path)

    def verify_backup_integrity(self, backup_path: str) -> VerifyResult:
        trace_id = uuid.uuid4().hex
        res = verify_backup_dir(backup_path)
        if res.valid:
            self.logger.info("Backup verify ok: %s (%d files)", os.path.basename(backup_path), res.checked_files, extra=trace(trace_id))
        else:
            self.logger.warning("Backup verify failed: %s: %s", os.path.basename(backup_path), "; ".join(res.errors[:5]), extra=trace(trace_id))
        self._ops_event(trace_id, "backup.verify", "ok" if res.valid else "failed", {"backup": os.path.basename(backup_path), "errors": res.errors[:5]})
        return res

    # ---------- restore ----------
    def restore_backup(
        self,
        backup_path: str,
        *,
        categories: Optional[Iterable[str]] = None,
        dry_run: bool = False,
        decryption_key: Optional[str] = None,
    ) -> RestoreResult:
        trace_id = uuid.uuid4().hex
        res = restore_from_backup(
            backup_path,
            paths=self.paths,
            categories=categories,
            dry_run=dry_run,
            decryption_key=decryption_key,
            logger=self.logger,
            trace_id=trace_id,
        )
        for err in res.errors:
            self.logger.warning("Restore: %s", err, extra=trace(trace_id))
        self._ops_event(
            trace_id,
            "backup.restore",
            "ok" if not res.errors else "partial",
            {"backup": os.path.basename(backup_path), "dry_run": dry_run, "restored": len(res.restored_files), "failed": res.failed_files},
        )
        return res

    # ---------- re-key ----------
    def rekey_backup(self, backup_path: str, old_key: str, new_key: str, *, output_dir: Optional[str] = None) -> BackupInfo:
        """
        Re-encrypt a backup's encrypted entries under a new key (new owner).
        Plaintext never touches the disk; unencrypted entries are carried as-is.
        """
        vr = verify_backup_dir(backup_path)
        if not vr.valid:
            raise IntegrityError("Integrity check failed: " + "; ".join(vr.errors), path=backup_path)
        man = load_manifest(backup_path)
        if man.encryption is None:
            raise ValidationError("Backup has no encrypted entries to re-key.", path=backup_path)
        raw = decompress_payload(read_payload(backup_path))
        old = key_for(man.encryption, old_key)
        enc_info, new = new_encryption(new_key, iterations=self.cfg.kdf_iterations)

        staged: List[StagedFile] = []
        for ent in man.files:
            data = stored_slice(raw, ent)
            if data is None:
                raise IntegrityError(f"Missing data for: {ent.relative_path}")
            if ent.encrypted:
                try:
                    data = aesgcm_decrypt_bytes(old, data, aad=ent.relative_path.encode("utf-8"))
                except DecryptionError as e:
                    raise EncryptionKeyError(f"Decryption failed: {ent.relative_path}", path=ent.relative_path) from e
            staged.append(stage_file(ent.relative_path, ent.category, data, key=new, encrypt=ent.encrypted, modified_at=ent.modified_at))

        entries, payload = pack_payload(staged, compress_level=self.cfg.compress_level)
        now = time.time()
        out = BackupManifest(
            version=MANIFEST_VERSION,
            backup_id=new_backup_id(now),
            sandbox_id=man.sandbox_id,
            created_at=now,
            type=man.type,
            base_manifest_ref=man.base_manifest_ref,
            files=entries,
            encryption=enc_info,
            checksum="",
        )
        out.checksum = out.compute_checksum(payload)
        path = write_backup_dir(output_dir or os.path.dirname(os.path.abspath(backup_path)), out, payload)
        trace_id = uuid.uuid4().hex
        self.logger.info("Backup re-keyed: %s -> %s", man.backup_id, out.backup_id, extra=trace(trace_id))
        self._ops_event(trace_id, "backup.rekey", "ok", {"source": man.backup_id, "backup_id": out.backup_id})
        return self._info(path, out)

    # ---- helpers ----
    def _encrypt_set(self, extra: Optional[Iterable[str]]) -> Set[Category]:
        out: Set[Category] = {Category.secrets}
        out.update(self.cfg.encrypt_categories)
        for c in extra or []:
            try:
                out.add(Category(c.value if isinstance(c, Category) else str(c)))
            except ValueError as e:
                raise ValidationError(f"Unknown category: {c!r}", allowed=[x.value for x in Category]) from e
        return out

    def _scan(self, backups_root: str) -> List[Tuple[str, BackupManifest]]:
        if not os.path.isdir(backups_root):
            return []
        out: List[Tuple[str, BackupManifest]] = []
        for name in sorted(os.listdir(backups_root)):
            p = os.path.join(backups_root, name)
            if is_transient_dir(name) or not os.path.isdir(p):
                continue
            try:
                out.append((p, load_manifest(p)))
            except IntegrityError as e:
                self.logger.warning("Skipping unreadable backup %s: %s", name, e)
        return out

    def _chain_state(self, backups_root: str, sandbox_id: str) -> Tuple[Optional[str], Dict[str, str]]:
        """
        Latest known content hash per path, as recorded by the most recent full
        backup of this sandbox and every incremental taken after it.
        """
        chain = [m for _p, m in self._scan(backups_root) if m.sandbox_id == sandbox_id]
        if not chain:
            return None, {}
        chain.sort(key=lambda m: (m.created_at, m.backup_id))
        start = 0
        for i, m in enumerate(chain):
            if m.type == BackupType.full:
                start = i
        hashes: Dict[str, str] = {}
        for m in chain[start:]:
            for e in m.files:
                hashes[e.relative_path] = e.content_hash
        return chain[-1].backup_id, hashes

    def _info(self, path: str, man: BackupManifest) -> BackupInfo:
        return BackupInfo(
            id=man.backup_id,
            path=path,
            type=man.type.value,
            file_count=len(man.files),
            size=dir_size(path),
            created_at=man.created_at,
            sandbox_id=man.sandbox_id,
        )

    def _ops_event(self, trace_id: str, event: str, outcome: str, details: Dict[str, Any]) -> None:
        if self.ops is None:
            return
        try:
            self.ops.log(trace_id=trace_id, event=event, outcome=outcome, details=details)
        except OSError as e:
            self.logger.warning("Ops log write failed: %s", e)


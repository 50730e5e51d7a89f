from __future__ import annotations

import os
import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional

from automaton.core.backup.api import BackupService
from automaton.core.backup.archiver import load_manifest, read_manifest_bytes, read_payload
from automaton.core.backup.models import ALL, MANIFEST_NAME, PAYLOAD_NAME, BackupInfo
from automaton.core.config.io import atomic_write_bytes
from automaton.core.errors import IdentityUpdateError, IntegrityError
from automaton.core.identity.resolver import rewrite_sandbox_id
from automaton.core.logger import get_logger, trace
from automaton.core.migration.portable import PortableExport, pack_bundle, read_bundle
from automaton.core.ops_log import OpsLogger


def _iso_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass(frozen=True)
class MigrationExport:
    backup: BackupInfo
    source_sandbox_id: str
    exported_at: str


@dataclass(frozen=True)
class MigrationResult:
    success: bool
    source_sandbox_id: str
    target_sandbox_id: str
    files_restored: int = 0
    identity_updated: bool = False
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MigrationVerification:
    complete: bool
    missing_files: List[str]
    present_files: List[str]


class MigrationManager:
    """
    Moves durable state between sandboxes: full export, verified import with
    identity rewrite, presence check, and the single-file portable variant.
    """

    def __init__(self, *, backups: BackupService, logger: Any = None, ops: Optional[OpsLogger] = None):
        self.backups = backups
        self.paths = backups.paths
        self.logger = logger or get_logger("migration")
        self.ops = ops if ops is not None else backups.ops

    # ---------- export ----------
    def export_for_migration(
        self,
        source_identity_id: Optional[str] = None,
        encryption_key: Optional[str] = None,
        output_dir: Optional[str] = None,
    ) -> MigrationExport:
        info = self.backups.create_backup(source_identity_id, backup_type="full", encryption_key=encryption_key, output_dir=output_dir, max_retained=0)
        self.logger.info("Migration export ready: %s (%d files)", info.path, info.file_count)
        return MigrationExport(backup=info, source_sandbox_id=info.sandbox_id, exported_at=_iso_now())

    # ---------- import ----------
    def import_migration(self, *, backup_path: str, new_sandbox_id: str, decryption_key: Optional[str] = None) -> MigrationResult:
        trace_id = uuid.uuid4().hex
        vr = self.backups.verify_backup_integrity(backup_path)
        if not vr.valid:
            res = MigrationResult(
                success=False,
                source_sandbox_id="",
                target_sandbox_id=new_sandbox_id,
                errors=[f"Integrity check failed: {', '.join(vr.errors)}"],
            )
            self._ops_event(trace_id, "migration.import", "integrity_failed", res)
            return res

        source = load_manifest(backup_path).sandbox_id
        rr = self.backups.restore_backup(backup_path, categories=[ALL], dry_run=False, decryption_key=decryption_key)
        errors = list(rr.errors)

        # identity rewrite happens even after a partial restore; the restore is not undone if it fails
        identity_updated = False
        if not os.path.exists(self.paths.identity):
            errors.append(str(IdentityUpdateError("Identity descriptor automaton.json is missing after restore.")))
        else:
            try:
                rewrite_sandbox_id(self.paths, new_sandbox_id, logger=self.logger)
                identity_updated = True
            except IdentityUpdateError as e:
                errors.append(str(e))

        res = MigrationResult(
            success=len(errors) == 0,
            source_sandbox_id=source,
            target_sandbox_id=new_sandbox_id,
            files_restored=len(rr.restored_files),
            identity_updated=identity_updated,
            errors=errors,
        )
        if res.success:
            self.logger.info("Migration import %s -> %s: %d files", source, new_sandbox_id, res.files_restored, extra=trace(trace_id))
        else:
            self.logger.warning("Migration import %s -> %s finished with %d error(s)", source, new_sandbox_id, len(errors), extra=trace(trace_id))
        self._ops_event(trace_id, "migration.import", "ok" if res.success else "partial", res)
        return res

    # ---------- verify ----------
    def verify_migration(self, backup_path: str) -> MigrationVerification:
        """Presence only; content is not re-checked."""
        man = load_manifest(backup_path)
        missing: List[str] = []
        present: List[str] = []
        for ent in man.files:
            if os.path.exists(self.paths.resolve(ent.relative_path)):
                present.append(ent.relative_path)
            else:
                missing.append(ent.relative_path)
        return MigrationVerification(complete=len(missing) == 0, missing_files=missing, present_files=present)

    # ---------- portable ----------
    def export_portable(self, source_identity_id: Optional[str], output_path: str, encryption_key: Optional[str] = None) -> PortableExport:
        work = self._transient_dir("_portable_export_")
        try:
            info = self.backups.create_backup(source_identity_id, backup_type="full", encryption_key=encryption_key, output_dir=work, max_retained=0)
            bundle = pack_bundle(read_manifest_bytes(info.path), read_payload(info.path))
            atomic_write_bytes(output_path, bundle, mode=0o600)
        finally:
            shutil.rmtree(work, ignore_errors=True)
        out = PortableExport(
            file_path=output_path,
            sandbox_id=info.sandbox_id,
            file_count=info.file_count,
            size_bytes=len(bundle),
            exported_at=_iso_now(),
        )
        self.logger.info("Portable bundle written: %s (%d files, %d bytes)", output_path, out.file_count, out.size_bytes)
        return out

    def import_portable(self, bundle_path: str, new_sandbox_id: str, decryption_key: Optional[str] = None) -> MigrationResult:
        try:
            with open(bundle_path, "rb") as f:
                manifest_bytes, payload = read_bundle(f)
        except OSError as e:
            return MigrationResult(success=False, source_sandbox_id="", target_sandbox_id=new_sandbox_id, errors=[f"Cannot read bundle {bundle_path}: {e}"])
        except IntegrityError as e:
            return MigrationResult(success=False, source_sandbox_id="", target_sandbox_id=new_sandbox_id, errors=[f"Integrity check failed: {e}"])

        work = self._transient_dir("_portable_import_")
        try:
            atomic_write_bytes(os.path.join(work, MANIFEST_NAME), manifest_bytes, mode=0o600)
            atomic_write_bytes(os.path.join(work, PAYLOAD_NAME), payload, mode=0o600)
            return self.import_migration(backup_path=work, new_sandbox_id=new_sandbox_id, decryption_key=decryption_key)
        finally:
            shutil.rmtree(work, ignore_errors=True)

    # ---- helpers ----
    def _transient_dir(self, prefix: str) -> str:
        root = self.backups.default_dir()
        os.makedirs(root, exist_ok=True)
        return tempfile.mkdtemp(prefix=prefix, dir=root)

    def _ops_event(self, trace_id: str, event: str, outcome: str, res: MigrationResult) -> None:
        if self.ops is None:
            return
        try:
            self.ops.log(
                trace_id=trace_id,
                event=event,
                outcome=outcome,
                details={
                    "source": res.source_sandbox_id,
                    "target": res.target_sandbox_id,
                    "files_restored": res.files_restored,
                    "identity_updated": res.identity_updated,
                    "errors": res.errors[:10],
                },
            )
        except OSError as e:
            self.logger.warning("Ops log write failed: %s", e)

from __future__ import annotations

"""
Identity resolver: where the durable state lives and which sandbox it belongs to.

The wallet / identity subsystem owns these facts; backup and migration only
read them (and rewrite `sandboxId` on migration import).
"""

import os
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from automaton.core.config.io import atomic_write_json, file_mode, read_json_file
from automaton.core.config.paths import StatePaths
from automaton.core.errors import IdentityUpdateError
from automaton.core.identity.models import IdentityDescriptor


class IdentityResolver(Protocol):
    def state_paths(self) -> StatePaths: ...

    def current_sandbox_id(self) -> str: ...


@dataclass(frozen=True)
class FileIdentityResolver:
    paths: StatePaths
    fallback_sandbox_id: str = ""

    def state_paths(self) -> StatePaths:
        return self.paths

    def current_sandbox_id(self) -> str:
        desc = load_identity(self.paths)
        if desc is not None and desc.sandbox_id:
            return desc.sandbox_id
        return self.fallback_sandbox_id


def load_identity(paths: StatePaths) -> Optional[IdentityDescriptor]:
    rr = read_json_file(paths.identity)
    if not rr.ok:
        return None
    try:
        return IdentityDescriptor.model_validate(rr.data)
    except ValidationError:
        return None


def rewrite_sandbox_id(paths: StatePaths, new_sandbox_id: str, *, logger: Any = None) -> None:
    """
    Read-modify-write of automaton.json's sandboxId. Keeps every other field
    and the file's permission bits.
    """
    if not str(new_sandbox_id or "").strip():
        raise IdentityUpdateError("New sandbox id must not be empty.")
    path = paths.identity
    rr = read_json_file(path)
    if not rr.ok:
        raise IdentityUpdateError(f"Failed to read identity descriptor: {rr.error}", path=path)
    # raw object: a prior null or numeric sandboxId is replaced as-is
    data = dict(rr.data)
    old = data.get("sandboxId")
    data["sandboxId"] = str(new_sandbox_id)
    mode = file_mode(path)
    try:
        atomic_write_json(path, data, mode=mode if mode is not None else 0o600)
    except OSError as e:
        raise IdentityUpdateError(f"Failed to update config sandboxId: {e}", path=path) from e
    if logger is not None:
        logger.info("Identity sandboxId updated %s -> %s (%s)", old or "-", new_sandbox_id, os.path.basename(path))

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from automaton.core.backup.hasher import seal_checksum
from automaton.core.crypto import ALGORITHM, KDF


MANIFEST_VERSION = 1
MANIFEST_NAME = "manifest.json"
PAYLOAD_NAME = "data.gz"


class Category(str, Enum):
    identity = "identity"
    secrets = "secrets"
    memory = "memory"
    soul = "soul"
    skills = "skills"


# restore selector meaning "every category"
ALL = "all"


class BackupType(str, Enum):
    full = "full"
    incremental = "incremental"


class ManifestFileEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    relative_path: str = Field(min_length=1)
    category: Category
    content_hash: str = Field(pattern=r"^[0-9a-f]{64}$")  # sha256 of plaintext
    stored_hash: str = Field(pattern=r"^[0-9a-f]{64}$")  # sha256 of bytes as stored in the payload
    size_bytes: int = Field(ge=0)
    encrypted: bool
    offset: int = Field(ge=0)
    length: int = Field(ge=0)
    modified_at: float

    @field_validator("relative_path")
    @classmethod
    def _safe_relative_path(cls, v: str) -> str:
        if "\\" in v or v.startswith("/") or posixpath.isabs(v):
            raise ValueError("relative_path must be a relative posix path")
        norm = posixpath.normpath(v)
        if norm != v or norm == "." or norm.split("/", 1)[0] == "..":
            raise ValueError("relative_path must be normalized and stay inside the state root")
        return v


class EncryptionInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    algorithm: str
    kdf: str
    iterations: int = Field(ge=1)
    salt: str  # urlsafe base64

    @model_validator(mode="after")
    def _supported(self) -> "EncryptionInfo":
        if self.algorithm != ALGORITHM or self.kdf != KDF:
            raise ValueError(f"unsupported encryption: {self.algorithm} / {self.kdf}")
        return self


class BackupManifest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: int
    backup_id: str = Field(min_length=1)
    sandbox_id: str
    created_at: float
    type: BackupType
    base_manifest_ref: Optional[str]
    files: List[ManifestFileEntry]
    encryption: Optional[EncryptionInfo]
    # empty only while a new backup is being sealed
    checksum: str

    @model_validator(mode="after")
    def _check_shape(self) -> "BackupManifest":
        if self.version != MANIFEST_VERSION:
            raise ValueError(f"unsupported manifest version: {self.version}")
        seen = set()
        for e in self.files:
            if e.relative_path in seen:
                raise ValueError(f"duplicate relative_path: {e.relative_path}")
            seen.add(e.relative_path)
        if self.type == BackupType.full and self.base_manifest_ref is not None:
            raise ValueError("full backups have no base_manifest_ref")
        if any(e.encrypted for e in self.files) and self.encryption is None:
            raise ValueError("encrypted entries require encryption parameters")
        return self

    def sealed_header(self) -> Dict[str, Any]:
        return self.model_dump(
            mode="json",
            include={"version", "backup_id", "sandbox_id", "created_at", "type", "base_manifest_ref", "encryption"},
        )

    def compute_checksum(self, payload: bytes) -> str:
        return seal_checksum(self.sealed_header(), [e.model_dump(mode="json") for e in self.files], payload)


@dataclass(frozen=True)
class BackupInfo:
    id: str
    path: str
    type: str
    file_count: int
    size: int
    created_at: float
    sandbox_id: str

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from automaton.core.backup.models import Category
from automaton.core.crypto import DEFAULT_KDF_ITERATIONS


class BackupConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    default_dir: str = "backups"
    max_retained: int = Field(default=0, ge=0)  # 0 = keep everything
    # secrets are always encrypted when a key is given; this list opts further categories in
    encrypt_categories: List[Category] = Field(default_factory=lambda: [Category.secrets])
    compress_level: int = Field(default=6, ge=0, le=9)
    kdf_iterations: int = Field(default=DEFAULT_KDF_ITERATIONS, ge=1_000)

    @field_validator("default_dir")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not str(v).strip():
            raise ValueError("default_dir must not be empty")
        return v

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IdentityDescriptor(BaseModel):
    """
    automaton.json. Only `sandboxId` is interpreted here; every other field is
    carried through untouched on rewrite.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    sandbox_id: Optional[str] = Field(default=None, alias="sandboxId")

    @field_validator("sandbox_id", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> Optional[str]:
        # numeric ids are read as their decimal text; null stays unset
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        raise ValueError("sandboxId must be a string or a number")

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CompileResult(BaseModel):
    success: bool
    diagnostics: str = ""
    skipped: bool = False
    command: List[str] = Field(default_factory=list)
    returncode: Optional[int] = None

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def skipped_because(cls, reason: str) -> "CompileResult":
        return cls(success=True, skipped=True, diagnostics=reason)

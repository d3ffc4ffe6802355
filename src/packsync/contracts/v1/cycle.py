from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...util.time import utc_now_iso
from .compile import CompileResult
from .sync import SyncResult


# Terminal states use the names shown to users; "running" only while in flight.
CycleState = Literal["running", "succeeded", "compileFailed", "syncFailed"]

# Orchestrator phases; Failed is absorbed back into idle once a cycle ends.
OrchestratorPhase = Literal["idle", "compiling", "syncing", "failed"]


class BuildCycle(BaseModel):
    v: int = 1
    seq: int
    project: str
    reason: str = ""
    state: CycleState = "running"
    started_at: str = Field(default_factory=utc_now_iso)
    finished_at: Optional[str] = None
    compile: Optional[CompileResult] = None
    sync: Dict[str, SyncResult] = Field(default_factory=dict)
    libraries: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @property
    def finished(self) -> bool:
        return self.state != "running"

    def totals(self) -> SyncResult:
        total = SyncResult()
        for part in self.sync.values():
            total.merge(part)
        return total

from __future__ import annotations

from .compile import CompileResult
from .cycle import BuildCycle, CycleState, OrchestratorPhase
from .sync import DriftReport, SyncResult

__all__ = [
    "BuildCycle",
    "CompileResult",
    "CycleState",
    "DriftReport",
    "OrchestratorPhase",
    "SyncResult",
]

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class SyncResult(BaseModel):
    """Counters for one mirror pass (or several merged together)."""

    copied: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0

    model_config = ConfigDict(extra="forbid")

    def merge(self, other: "SyncResult") -> "SyncResult":
        self.copied += other.copied
        self.deleted += other.deleted
        self.skipped += other.skipped
        self.failed += other.failed
        return self

    @property
    def changed(self) -> bool:
        return bool(self.copied or self.deleted)


class DriftReport(BaseModel):
    """Relative paths where a deployment no longer mirrors its project."""

    project: str
    missing: List[str] = Field(default_factory=list)
    outdated: List[str] = Field(default_factory=list)
    extra: List[str] = Field(default_factory=list)
    deployment_missing: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def needs_sync(self) -> bool:
        return bool(self.missing or self.outdated or self.extra or self.deployment_missing)

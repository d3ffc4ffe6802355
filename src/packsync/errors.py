from __future__ import annotations

from typing import Any, Dict, Optional


class PacksyncError(Exception):
    """Base error carrying a stable code for CLI/JSON output."""

    code = "packsync_error"

    def __init__(self, message: str, *, code: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


class ConfigurationError(PacksyncError):
    """No usable deployment root/workspace; raised before anything is mutated."""

    code = "configuration"


class ProjectNotFoundError(PacksyncError):
    code = "project_not_found"


class CompileError(PacksyncError):
    code = "compile_failed"


class FilesystemError(PacksyncError):
    code = "filesystem"


class ScanError(PacksyncError):
    code = "scan_failed"

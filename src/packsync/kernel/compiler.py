"""TypeScript compiler collaborator.

The orchestrator only needs `compile(source_dir, output_dir, overrides)`; the
default implementation shells out to `tsc` with a throwaway tsconfig so the
project's own tsconfig.json (used by editors) is never touched.
"""
from __future__ import annotations

import copy
import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..contracts.v1 import CompileResult
from ..errors import CompileError
from ..util.fs import atomic_write_text


logger = logging.getLogger("packsync.compiler")

TEMP_TSCONFIG_NAME = "tsconfig.packsync.temp.json"

BASE_COMPILER_OPTIONS: Dict[str, Any] = {
    "target": "es6",
    "moduleResolution": "Node",
    "module": "ES2020",
    "declaration": False,
    "sourceMap": False,
    "strict": False,
    "noImplicitAny": False,
    "skipLibCheck": True,
    "skipDefaultLibCheck": True,
    "typeRoots": [],
    "types": [],
    "lib": ["ES2020", "DOM"],
    "moduleDetection": "force",
}


class Compiler(Protocol):
    def compile(self, source_dir: Path, output_dir: Path, tsconfig_overrides: Dict[str, Any]) -> CompileResult:
        ...


def build_tsconfig(source_dir: Path, output_dir: Path, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Compose the temporary tsconfig document; ``overrides['compilerOptions']`` is merged key by key."""
    doc: Dict[str, Any] = {
        "compilerOptions": copy.deepcopy(BASE_COMPILER_OPTIONS),
        "include": [f"{source_dir.as_posix()}/**/*"],
        "exclude": ["node_modules", "**/*.d.ts", "**/node_modules/**", "libraries/templates/**/*"],
    }
    doc["compilerOptions"]["outDir"] = output_dir.as_posix()
    for key, value in (overrides or {}).items():
        if key == "compilerOptions" and isinstance(value, dict):
            doc["compilerOptions"].update(value)
        else:
            doc[key] = value
    return doc


class TscCompiler:
    def __init__(
        self,
        command: Sequence[str] = ("npx", "tsc"),
        *,
        cwd: Optional[Path] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.command: List[str] = [str(c) for c in command] or ["npx", "tsc"]
        self.cwd = cwd
        self.timeout_seconds = timeout_seconds

    def _argv(self, tsconfig_path: Path) -> List[str]:
        exe = shutil.which(self.command[0]) or self.command[0]
        return [exe, *self.command[1:], "--project", str(tsconfig_path)]

    def compile(self, source_dir: Path, output_dir: Path, tsconfig_overrides: Dict[str, Any]) -> CompileResult:
        """Run tsc once. Diagnostics come back in the result; only a compiler
        that cannot be started (or hangs past the timeout) raises CompileError."""
        doc = build_tsconfig(source_dir, output_dir, tsconfig_overrides)
        base_url = str(doc["compilerOptions"].get("baseUrl") or "").strip()
        tsconfig_path = (Path(base_url) if base_url else source_dir.parent) / TEMP_TSCONFIG_NAME
        argv = self._argv(tsconfig_path)

        output_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(tsconfig_path, json.dumps(doc, indent=2) + "\n")
        try:
            try:
                proc = subprocess.run(
                    argv,
                    cwd=str(self.cwd) if self.cwd else None,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    check=False,
                    timeout=self.timeout_seconds,
                )
            except FileNotFoundError as e:
                raise CompileError(f"compiler not found: {self.command[0]}", details={"command": argv}) from e
            except subprocess.TimeoutExpired as e:
                raise CompileError(
                    f"compiler timed out after {self.timeout_seconds}s", details={"command": argv}
                ) from e
        finally:
            try:
                tsconfig_path.unlink()
            except FileNotFoundError:
                pass

        diagnostics = (proc.stdout or "").strip()
        if proc.returncode != 0:
            logger.debug("tsc exited with %s", proc.returncode, extra={"op": "compile"})
        return CompileResult(
            success=proc.returncode == 0,
            diagnostics=diagnostics,
            command=argv,
            returncode=int(proc.returncode),
        )

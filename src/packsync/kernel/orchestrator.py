"""Build orchestration: one compile + mirror cycle per call.

Phases per project: idle -> compiling -> syncing -> idle. A failed cycle
passes through "failed" and is absorbed back into idle, so a broken build
never stops the watch loop.

Compiled projects (a tscripts/typescripts folder exists) compile straight
into the deployment's scripts folder; the local scripts folder is neither
copied nor allowed to overwrite compiler output. Pass-through projects ship
their own scripts folder, mirrored with the materialized libraries kept.
"""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..contracts.v1 import BuildCycle, CompileResult, OrchestratorPhase, SyncResult
from ..errors import CompileError, PacksyncError
from ..paths import state_dir
from ..util.fs import atomic_write_json, read_json, remove_path
from ..util.time import elapsed_seconds, utc_now_iso
from .compiler import Compiler
from .deployment import LIBRARIES_DIR_NAME, DeploymentTree
from .libraries import materialize_libraries
from .project import COMPILED_OUTPUT_DIR_NAME, COMPILED_SOURCE_DIR_NAMES, ProjectTree
from .scanner import scan_library_usage
from .tree_sync import sync_tree


logger = logging.getLogger("packsync.orchestrator")


def has_source_modules(source_dir: Path) -> bool:
    for _dirpath, _dirnames, filenames in os.walk(source_dir):
        for name in filenames:
            if name.endswith(".ts") and not name.endswith(".d.ts"):
                return True
    return False


def _state_path(project_name: str) -> Path:
    return state_dir() / f"{project_name}.json"


def record_cycle(cycle: BuildCycle) -> None:
    atomic_write_json(_state_path(cycle.project), cycle.model_dump(mode="json"))


def last_cycle(project_name: str) -> Optional[BuildCycle]:
    doc = read_json(_state_path(project_name))
    if not doc:
        return None
    try:
        return BuildCycle.model_validate(doc)
    except Exception:
        return None


class BuildOrchestrator:
    def __init__(
        self,
        project: ProjectTree,
        deployment: DeploymentTree,
        libraries_root: Path,
        compiler: Compiler,
        *,
        record: bool = True,
    ) -> None:
        self.project = project
        self.deployment = deployment
        self.libraries_root = libraries_root
        self.compiler = compiler
        self.record = record

        self._lock = threading.Lock()
        self._phase: OrchestratorPhase = "idle"
        prev = last_cycle(project.name) if record else None
        self._seq = prev.seq if prev is not None else 0

    @property
    def state(self) -> OrchestratorPhase:
        return self._phase

    def _log_extra(self, cycle: Optional[BuildCycle] = None, op: str = "cycle") -> Dict[str, Any]:
        return {"project": self.project.name, "cycle": cycle.seq if cycle else "", "op": op}

    def tsconfig_overrides(self) -> Dict[str, Any]:
        alias = os.path.relpath(self.libraries_root / "*", self.project.root).replace(os.sep, "/")
        return {
            "compilerOptions": {
                "baseUrl": self.project.root.as_posix(),
                "paths": {"libraries/*": [alias], "@workspace/*": [alias]},
            }
        }

    def _compile(self, source_dir: Path, cycle: BuildCycle) -> CompileResult:
        self._phase = "compiling"
        extra = self._log_extra(cycle, "compile")
        logger.info("compiling %s -> %s", source_dir.name, self.deployment.scripts_dir, extra=extra)
        try:
            result = self.compiler.compile(source_dir, self.deployment.scripts_dir, self.tsconfig_overrides())
        except CompileError as e:
            result = CompileResult(
                success=False, diagnostics=e.message, command=list(e.details.get("command") or [])
            )
        except OSError as e:
            result = CompileResult(success=False, diagnostics=f"{type(e).__name__}: {e}")
        if result.success:
            logger.info("compiled %s", source_dir.name, extra=extra)
        else:
            logger.error("failed: compile %s\n%s", source_dir.name, result.diagnostics, extra=extra)
        return result

    def _stage(self, cycle: BuildCycle, name: str, fn) -> None:
        try:
            result: SyncResult = fn()
        except (PacksyncError, OSError) as e:
            msg = e.message if isinstance(e, PacksyncError) else f"{type(e).__name__}: {e}"
            cycle.errors.append(f"{name}: {msg}")
            logger.error("failed: sync %s: %s", name, msg, extra=self._log_extra(cycle, "sync"))
            return
        cycle.sync[name] = result
        if result.failed:
            cycle.errors.append(f"{name}: {result.failed} entries failed")

    def _sync(self, cycle: BuildCycle, compiled: bool) -> None:
        self._phase = "syncing"
        name = self.project.name
        # Only the top-level scripts folder is owned by the compiler or its own stage.
        top_excludes = {COMPILED_OUTPUT_DIR_NAME}
        own_scripts = not compiled and self.project.compiled_output_dir.is_dir()
        # A pass-through project without scripts has nothing left to keep there.
        preserves = {COMPILED_OUTPUT_DIR_NAME} if compiled else set()

        if self.project.behavior_dir.is_dir():
            self._stage(
                cycle,
                "behavior",
                lambda: sync_tree(
                    self.project.behavior_dir,
                    self.deployment.behavior_dir,
                    exclusions=COMPILED_SOURCE_DIR_NAMES,
                    top_exclusions=top_excludes,
                    preserves=preserves,
                    project=name,
                ),
            )
            if own_scripts:
                self._stage(
                    cycle,
                    "scripts",
                    lambda: sync_tree(
                        self.project.compiled_output_dir,
                        self.deployment.scripts_dir,
                        preserves={LIBRARIES_DIR_NAME},
                        project=name,
                    ),
                )

        if self.project.resource_dir.is_dir():
            self._stage(
                cycle,
                "resource",
                lambda: sync_tree(self.project.resource_dir, self.deployment.resource_dir, project=name),
            )

        used = set(cycle.libraries)
        self._stage(
            cycle,
            "libraries",
            lambda: materialize_libraries(used, self.libraries_root, self.deployment.libraries_dir, project=name),
        )

    def run_cycle(self, reason: str = "manual") -> BuildCycle:
        with self._lock:
            self._seq += 1
            cycle = BuildCycle(seq=self._seq, project=self.project.name, reason=reason)
            extra = self._log_extra(cycle)
            logger.info("cycle %d started (%s)", cycle.seq, reason, extra=extra)
            try:
                self._run(cycle)
            finally:
                self._phase = "idle"
            if self.record:
                try:
                    record_cycle(cycle)
                except OSError as e:
                    logger.warning("failed: record cycle: %s", e, extra=extra)
            return cycle

    def _run(self, cycle: BuildCycle) -> None:
        extra = self._log_extra(cycle)
        source_dir = self.project.compiled_source_dir
        scan_dir: Optional[Path] = None
        compiled = source_dir is not None

        if source_dir is not None:
            if has_source_modules(source_dir):
                cycle.compile = self._compile(source_dir, cycle)
            else:
                cycle.compile = CompileResult.skipped_because(f"{source_dir.name} has no source modules")
                logger.info("skipped compile: %s is empty", source_dir.name, extra=extra)
            scan_dir = source_dir
        elif self.project.compiled_output_dir.is_dir():
            cycle.compile = CompileResult.skipped_because("using existing compiled scripts")
            logger.info("skipped compile: using existing scripts", extra=extra)
            scan_dir = self.project.compiled_output_dir

        if scan_dir is not None:
            cycle.libraries = sorted(scan_library_usage(scan_dir))

        self._sync(cycle, compiled)

        compile_failed = cycle.compile is not None and not cycle.compile.success
        if compile_failed:
            cycle.state = "compileFailed"
        elif cycle.errors:
            cycle.state = "syncFailed"
        else:
            cycle.state = "succeeded"
        if cycle.state != "succeeded":
            self._phase = "failed"
        cycle.finished_at = utc_now_iso()

        totals = cycle.totals()
        log = logger.info if cycle.state == "succeeded" else logger.warning
        log(
            "cycle %d %s in %.2fs: %d copied, %d removed, %d unchanged",
            cycle.seq,
            cycle.state,
            elapsed_seconds(cycle.started_at, cycle.finished_at),
            totals.copied,
            totals.deleted,
            totals.skipped,
            extra=extra,
        )

    def handle_removed_source(self, path: Path) -> bool:
        """Delete the compiled output of a removed source module. Returns True if a file was removed."""
        if path.suffix != ".ts" or path.name.endswith(".d.ts"):
            return False
        rel: Optional[Path] = None
        for dir_name in COMPILED_SOURCE_DIR_NAMES:
            try:
                rel = path.relative_to(self.project.behavior_dir / dir_name)
                break
            except ValueError:
                continue
        if rel is None:
            return False
        removed = False
        compiled = self.deployment.scripts_dir / rel.with_suffix(".js")
        for target in (compiled, compiled.with_name(compiled.name + ".map")):
            try:
                if target.is_file() and remove_path(target):
                    removed = True
                    logger.info("removed compiled %s", target.name, extra=self._log_extra(op="unlink"))
            except OSError as e:
                logger.warning("failed: remove %s: %s", target, e, extra=self._log_extra(op="unlink"))
        return removed

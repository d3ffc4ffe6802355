"""Read-only comparison of a project against its deployment.

Uses the same rules as `sync_tree` (exclusions, ignorable names, size then
mtime) so that "no drift" means the next cycle would copy and delete nothing.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import AbstractSet, Iterator

from ..contracts.v1 import DriftReport
from .classify import is_excluded, is_ignorable_name
from .deployment import LIBRARIES_DIR_NAME, DeploymentTree
from .project import COMPILED_OUTPUT_DIR_NAME, COMPILED_SOURCE_DIR_NAMES, ProjectTree
from .tree_sync import should_copy


def _walk_files(
    root: Path,
    exclusions: AbstractSet[str],
    *,
    skip_ignorable: bool,
    top_exclusions: AbstractSet[str] = frozenset(),
) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        top = base == root
        dirnames[:] = sorted(
            d for d in dirnames if not is_excluded(d, exclusions) and not (top and d in top_exclusions)
        )
        for name in sorted(filenames):
            if skip_ignorable and is_ignorable_name(name):
                continue
            yield (base / name).relative_to(root)


def _compare(
    label: str,
    source: Path,
    dest: Path,
    exclusions: AbstractSet[str],
    kept: AbstractSet[str],
    report: DriftReport,
    top_exclusions: AbstractSet[str] = frozenset(),
) -> None:
    for rel in _walk_files(source, exclusions, skip_ignorable=True, top_exclusions=top_exclusions):
        src = source / rel
        dst = dest / rel
        key = f"{label}/{rel.as_posix()}"
        if not dst.is_file():
            report.missing.append(key)
        elif should_copy(src.stat(), dst):
            report.outdated.append(key)

    for rel in _walk_files(dest, frozenset(), skip_ignorable=False):
        posix = rel.as_posix()
        if any(posix == k or posix.startswith(k + "/") for k in kept):
            continue
        # Names excluded at the source are left alone by the mirror as well.
        if any(
            is_excluded(part, exclusions) and (source / Path(*rel.parts[: i + 1])).exists()
            for i, part in enumerate(rel.parts[:-1])
        ):
            continue
        if not (source / rel).exists():
            report.extra.append(f"{label}/{posix}")


def analyze_drift(project: ProjectTree, deployment: DeploymentTree) -> DriftReport:
    report = DriftReport(project=project.name)
    compiled = project.has_compiled_source

    if project.behavior_dir.is_dir():
        if not deployment.behavior_dir.is_dir():
            report.deployment_missing.append(str(deployment.behavior_dir))
        else:
            own_scripts = not compiled and project.compiled_output_dir.is_dir()
            kept = {COMPILED_OUTPUT_DIR_NAME} if (compiled or own_scripts) else set()
            _compare(
                "behavior",
                project.behavior_dir,
                deployment.behavior_dir,
                frozenset(COMPILED_SOURCE_DIR_NAMES),
                kept,
                report,
                top_exclusions={COMPILED_OUTPUT_DIR_NAME},
            )
            if own_scripts:
                _compare(
                    f"behavior/{COMPILED_OUTPUT_DIR_NAME}",
                    project.compiled_output_dir,
                    deployment.scripts_dir,
                    frozenset(),
                    {LIBRARIES_DIR_NAME},
                    report,
                )

    if project.resource_dir.is_dir():
        if not deployment.resource_dir.is_dir():
            report.deployment_missing.append(str(deployment.resource_dir))
        else:
            _compare("resource", project.resource_dir, deployment.resource_dir, frozenset(), frozenset(), report)

    return report

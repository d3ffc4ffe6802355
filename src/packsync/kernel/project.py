from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..errors import ProjectNotFoundError


BEHAVIOR_PACK = "behavior_pack"
RESOURCE_PACK = "resource_pack"

# Checked in order; the first existing one is the project's compiled source.
COMPILED_SOURCE_DIR_NAMES = ("tscripts", "typescripts")
COMPILED_OUTPUT_DIR_NAME = "scripts"


@dataclass(frozen=True)
class ProjectTree:
    root: Path

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def behavior_dir(self) -> Path:
        return self.root / BEHAVIOR_PACK

    @property
    def resource_dir(self) -> Path:
        return self.root / RESOURCE_PACK

    @property
    def compiled_source_dir(self) -> Optional[Path]:
        for name in COMPILED_SOURCE_DIR_NAMES:
            p = self.behavior_dir / name
            if p.is_dir():
                return p
        return None

    @property
    def compiled_output_dir(self) -> Path:
        return self.behavior_dir / COMPILED_OUTPUT_DIR_NAME

    @property
    def has_compiled_source(self) -> bool:
        return self.compiled_source_dir is not None

    def is_valid(self) -> bool:
        return self.behavior_dir.is_dir()


def load_project(path: Path) -> ProjectTree:
    project = ProjectTree(root=path.expanduser().resolve())
    if not project.root.is_dir():
        raise ProjectNotFoundError(f"project not found: {project.root}", details={"path": str(project.root)})
    if not project.is_valid():
        raise ProjectNotFoundError(
            f"not a project directory ({BEHAVIOR_PACK} missing): {project.root}",
            details={"path": str(project.root)},
        )
    return project


def list_projects(projects_dir: Path) -> List[ProjectTree]:
    if not projects_dir.is_dir():
        return []
    found: List[ProjectTree] = []
    for child in sorted(projects_dir.iterdir(), key=lambda p: p.name.casefold()):
        if child.is_dir() and not child.name.startswith("."):
            found.append(ProjectTree(root=child.resolve()))
    return found


def resolve_project(name: str, *, projects_dir: Path, cwd: Optional[Path] = None) -> ProjectTree:
    """Resolve a project by name under ``projects_dir``, or the current directory when no name is given."""
    n = (name or "").strip()
    if not n:
        return load_project(cwd or Path.cwd())
    candidate = Path(n).expanduser()
    if candidate.is_absolute() or (candidate.parent != Path(".") and candidate.exists()):
        return load_project(candidate)
    return load_project(projects_dir / n)

"""Deployment roots: where the game reads development packs from.

The root is resolved once per invocation, before anything is copied, so a
missing configuration never leaves a half-written mirror behind.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from ..errors import ConfigurationError
from ..util.fs import remove_path
from .project import COMPILED_OUTPUT_DIR_NAME, ProjectTree
from .settings import WorkspaceSettings


logger = logging.getLogger("packsync.deployment")

BEHAVIOR_PACKS_DIR = "development_behavior_packs"
RESOURCE_PACKS_DIR = "development_resource_packs"
LIBRARIES_DIR_NAME = "libraries"

_MOJANG = "games/com.mojang"


@dataclass(frozen=True)
class DeploymentTree:
    root: Path
    project_name: str

    @property
    def behavior_dir(self) -> Path:
        return self.root / BEHAVIOR_PACKS_DIR / f"{self.project_name}_BP"

    @property
    def resource_dir(self) -> Path:
        return self.root / RESOURCE_PACKS_DIR / f"{self.project_name}_RP"

    @property
    def scripts_dir(self) -> Path:
        return self.behavior_dir / COMPILED_OUTPUT_DIR_NAME

    @property
    def libraries_dir(self) -> Path:
        return self.scripts_dir / LIBRARIES_DIR_NAME


def deployment_root_candidates(env: Optional[Mapping[str, str]] = None) -> Dict[str, Optional[Path]]:
    """Known game data locations per product; None where the platform lacks the base dir."""
    environ = os.environ if env is None else env
    app_data = str(environ.get("APPDATA") or "").strip()
    local_app_data = str(environ.get("LOCALAPPDATA") or "").strip()
    custom = str(environ.get("CUSTOM_DEPLOYMENT_PATH") or "").strip()

    def _under(base: str, rel: str) -> Optional[Path]:
        return (Path(base) / rel / _MOJANG) if base else None

    return {
        "BedrockGDK": _under(app_data, "Minecraft Bedrock/Users/Shared"),
        "PreviewGDK": _under(app_data, "Minecraft Bedrock Preview/Users/Shared"),
        "BedrockUWP": _under(local_app_data, "Packages/Microsoft.MinecraftUWP_8wekyb3d8bbwe/LocalState"),
        "PreviewUWP": _under(local_app_data, "Packages/Microsoft.MinecraftWindowsBeta_8wekyb3d8bbwe/LocalState"),
        "Custom": Path(custom).expanduser() if custom else None,
    }


def resolve_deployment_root(settings: WorkspaceSettings, env: Optional[Mapping[str, str]] = None) -> Path:
    """Return the deployment root or raise ConfigurationError.

    An explicitly configured root is trusted (it is created on first sync);
    a product default must already exist, since it belongs to an installed game.
    """
    if settings.deployment_root is not None:
        return settings.deployment_root.resolve()

    candidates = deployment_root_candidates(env)
    if settings.product == "Custom" and candidates.get("Custom") is not None:
        return candidates["Custom"].resolve()  # type: ignore[union-attr]

    chosen = candidates.get(settings.product)
    if chosen is not None and chosen.is_dir():
        return chosen.resolve()

    tried: List[str] = [str(p) for p in candidates.values() if p is not None]
    raise ConfigurationError(
        f"deployment root not found for product {settings.product}; "
        "set PACKSYNC_DEPLOYMENT_ROOT or deployment_root in settings.yaml",
        details={"product": settings.product, "tried": tried},
    )


def deployment_for(project: ProjectTree, root: Path) -> DeploymentTree:
    return DeploymentTree(root=root, project_name=project.name)


def list_deployed_packs(root: Path) -> Dict[str, List[str]]:
    """Pack directory names currently deployed, grouped by kind."""
    out: Dict[str, List[str]] = {"behavior": [], "resource": []}
    for kind, sub in (("behavior", BEHAVIOR_PACKS_DIR), ("resource", RESOURCE_PACKS_DIR)):
        d = root / sub
        if not d.is_dir():
            continue
        out[kind] = sorted(p.name for p in d.iterdir() if p.is_dir())
    return out


def clean_deployment(deployment: DeploymentTree) -> List[Path]:
    """Remove both deployed packs of a project. Returns the paths that were removed."""
    removed: List[Path] = []
    for target in (deployment.behavior_dir, deployment.resource_dir):
        try:
            if remove_path(target):
                removed.append(target)
                logger.info("removed %s", target, extra={"project": deployment.project_name, "op": "clean"})
        except OSError as e:
            logger.warning(
                "failed: remove %s: %s", target, e, extra={"project": deployment.project_name, "op": "clean"}
            )
    return removed

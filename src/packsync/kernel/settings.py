"""Global settings management for packsync.

Settings are stored in ~/.packsync/settings.yaml (or $PACKSYNC_HOME) and include:
- workspace_root / libraries_root: where projects and shared libraries live
- deployment_root / product: where packs are mirrored for the game
- compiler_command / compile_timeout_seconds: the TypeScript compiler invocation
- log_level
Environment variables override the file so one-off runs need no edits.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml  # type: ignore
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..paths import ensure_home
from ..util.fs import atomic_write_text


Product = Literal["BedrockUWP", "PreviewUWP", "BedrockGDK", "PreviewGDK", "Custom"]

DEFAULT_COMPILER_COMMAND: List[str] = ["npx", "tsc"]

# Env var -> settings key.
_ENV_OVERRIDES = {
    "PACKSYNC_WORKSPACE": "workspace_root",
    "PACKSYNC_LIBRARIES": "libraries_root",
    "PACKSYNC_DEPLOYMENT_ROOT": "deployment_root",
    "PACKSYNC_PRODUCT": "product",
}


class WorkspaceSettings(BaseModel):
    workspace_root: Path = Field(default_factory=Path.cwd)
    libraries_root: Optional[Path] = None
    deployment_root: Optional[Path] = None
    product: Product = "BedrockUWP"
    compiler_command: List[str] = Field(default_factory=lambda: list(DEFAULT_COMPILER_COMMAND))
    compile_timeout_seconds: Optional[float] = None
    log_level: str = "INFO"

    model_config = ConfigDict(extra="ignore")

    @field_validator("libraries_root", "deployment_root", mode="before")
    @classmethod
    def _expand(cls, v: Any) -> Any:
        s = str(v or "").strip()
        if not s:
            return None
        return Path(s).expanduser()

    @field_validator("workspace_root", mode="before")
    @classmethod
    def _expand_workspace(cls, v: Any) -> Any:
        s = str(v or "").strip()
        return Path(s).expanduser() if s else Path.cwd()

    @field_validator("compiler_command", mode="before")
    @classmethod
    def _split_command(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.split()
        return v

    @property
    def projects_dir(self) -> Path:
        return self.workspace_root / "projects"

    @property
    def effective_libraries_root(self) -> Path:
        return self.libraries_root or (self.workspace_root / "libraries")


def _settings_path() -> Path:
    return ensure_home() / "settings.yaml"


def load_settings() -> Dict[str, Any]:
    """Load raw settings from settings.yaml; a missing or broken file reads as empty."""
    p = _settings_path()
    if not p.exists():
        return {}
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        return doc if isinstance(doc, dict) else {}
    except Exception:
        return {}


def save_settings(settings: Dict[str, Any]) -> None:
    p = _settings_path()
    atomic_write_text(p, yaml.safe_dump(settings, allow_unicode=True, sort_keys=False))


def update_settings(**changes: Any) -> Dict[str, Any]:
    """Merge ``changes`` into settings.yaml; a value of None removes the key."""
    settings = load_settings()
    for key, value in changes.items():
        if value is None:
            settings.pop(key, None)
        else:
            settings[key] = str(value) if isinstance(value, Path) else value
    save_settings(settings)
    return settings


def load_workspace_settings(env: Optional[Mapping[str, str]] = None) -> WorkspaceSettings:
    environ = os.environ if env is None else env
    doc = dict(load_settings())
    for env_key, key in _ENV_OVERRIDES.items():
        value = str(environ.get(env_key) or "").strip()
        if value:
            doc[key] = value
    return WorkspaceSettings.model_validate(doc)

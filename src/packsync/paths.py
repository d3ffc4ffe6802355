from __future__ import annotations

import os
from pathlib import Path


def packsync_home() -> Path:
    env = os.environ.get("PACKSYNC_HOME", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".packsync").resolve()


def ensure_home() -> Path:
    home = packsync_home()
    home.mkdir(parents=True, exist_ok=True)
    return home


def state_dir() -> Path:
    d = ensure_home() / "state"
    d.mkdir(parents=True, exist_ok=True)
    return d

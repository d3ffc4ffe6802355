from __future__ import annotations

import logging
from pathlib import Path
from typing import AbstractSet, Dict, List, Optional

from ..contracts.v1 import SyncResult
from ..util.fs import remove_path
from .classify import COMPILED_ARTIFACT_SUFFIXES
from .tree_sync import sync_tree


logger = logging.getLogger("packsync.libraries")


def list_libraries(libraries_root: Path) -> Dict[str, List[str]]:
    """Available shared libraries mapped to their top-level script files."""
    if not libraries_root.is_dir():
        return {}
    out: Dict[str, List[str]] = {}
    for child in sorted(libraries_root.iterdir(), key=lambda p: p.name):
        if not child.is_dir() or child.name.startswith("."):
            continue
        out[child.name] = sorted(
            f.name for f in child.iterdir() if f.is_file() and f.suffix in COMPILED_ARTIFACT_SUFFIXES
        )
    return out


def materialized_libraries(dest_libraries_dir: Path) -> List[str]:
    if not dest_libraries_dir.is_dir():
        return []
    return sorted(p.name for p in dest_libraries_dir.iterdir() if p.is_dir())


def materialize_libraries(
    used: AbstractSet[str],
    libraries_root: Path,
    dest_libraries_dir: Path,
    *,
    project: Optional[str] = None,
) -> SyncResult:
    """Make ``dest_libraries_dir`` hold exactly the used libraries.

    Libraries no longer imported are removed first; the shared root is only read.
    """
    result = SyncResult()
    extra = {"project": project or "", "op": "libraries", "path": str(dest_libraries_dir)}

    for name in materialized_libraries(dest_libraries_dir):
        if name in used:
            continue
        try:
            remove_path(dest_libraries_dir / name)
        except OSError as e:
            result.failed += 1
            logger.warning("failed: remove unused library %s: %s", name, e, extra=extra)
            continue
        result.deleted += 1
        logger.info("removed unused library %s", name, extra=extra)

    if not used:
        if dest_libraries_dir.exists():
            try:
                remove_path(dest_libraries_dir)
                logger.info("removed libraries folder (no libraries in use)", extra=extra)
            except OSError as e:
                result.failed += 1
                logger.warning("failed: remove %s: %s", dest_libraries_dir, e, extra=extra)
        return result

    dest_libraries_dir.mkdir(parents=True, exist_ok=True)
    synced: List[str] = []
    for name in sorted(used):
        src = libraries_root / name
        if not src.is_dir():
            logger.warning("failed: library %s not found under %s", name, libraries_root, extra=extra)
            continue
        result.merge(sync_tree(src, dest_libraries_dir / name, project=project))
        synced.append(name)
    if synced:
        logger.info("libraries in use: %s", ", ".join(synced), extra=extra)
    return result

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Set

from ..errors import ScanError
from .classify import SCANNABLE_SUFFIXES, library_references


logger = logging.getLogger("packsync.scanner")

_SKIP_DIRS = frozenset({"node_modules"})


def iter_source_files(source_dir: Path) -> Iterator[Path]:
    """Files with scannable extensions under ``source_dir``, in a stable order."""
    for dirpath, dirnames, filenames in os.walk(source_dir):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS and not d.startswith("."))
        for name in sorted(filenames):
            if name.endswith(".d.ts"):
                continue
            if os.path.splitext(name)[1].lower() in SCANNABLE_SUFFIXES:
                yield Path(dirpath) / name


def read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ScanError(f"cannot read {path}: {e}", details={"path": str(path)}) from e


def scan_library_usage(source_dir: Path) -> Set[str]:
    """Names of shared libraries referenced by import statements under ``source_dir``.

    The scan is textual: whichever directory is passed in is what gets read,
    so callers pick source or compiled output depending on the project kind.
    """
    used: Set[str] = set()
    if not source_dir.is_dir():
        return used
    for path in iter_source_files(source_dir):
        try:
            text = read_source(path)
        except ScanError as e:
            logger.warning("failed: scan %s", e.message, extra={"op": "scan", "path": str(path)})
            continue
        found = library_references(text)
        for name in sorted(found - used):
            logger.debug("library import %s in %s", name, path.name, extra={"op": "scan", "path": str(path)})
        used |= found
    return used

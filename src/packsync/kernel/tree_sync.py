"""Incremental directory mirroring.

`sync_tree` makes a destination directory a mirror of a source directory by
copying only files whose size differs or whose source mtime is newer (at
one-second granularity), and deleting destination entries the source no
longer has. The destination may be read by the running game at the same
time, so each entry is handled on its own: one locked file is logged and
counted as failed while the rest of the pass goes on.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import AbstractSet, Iterable, Optional, Tuple

from ..contracts.v1 import SyncResult
from ..errors import FilesystemError
from ..util.fs import copy_file, list_names, remove_path
from .classify import is_excluded, is_ignorable_name


logger = logging.getLogger("packsync.sync")


def _mtime_seconds(st: os.stat_result) -> int:
    return int(st.st_mtime_ns // 1_000_000_000)


def should_copy(src_stat: os.stat_result, dst: Path) -> bool:
    """Size first; only equal sizes fall through to the mtime comparison."""
    try:
        dst_stat = dst.stat()
    except OSError:
        return True
    if src_stat.st_size != dst_stat.st_size:
        return True
    return _mtime_seconds(src_stat) > _mtime_seconds(dst_stat)


def _ensure_dir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"cannot create {path}: {e}", details={"path": str(path)}) from e


def _remove(path: Path, result: SyncResult, *, log_extra: dict) -> bool:
    kind = "directory" if path.is_dir() and not path.is_symlink() else "file"
    try:
        remove_path(path)
    except OSError as e:
        result.failed += 1
        logger.warning("failed: remove %s %s: %s", kind, path, e, extra=log_extra)
        return False
    result.deleted += 1
    logger.info("removed %s %s", kind, path, extra=log_extra)
    return True


def _dir_key(st: os.stat_result) -> Tuple[int, int]:
    return (st.st_dev, st.st_ino)


def _sync_level(
    source: Path,
    dest: Path,
    exclusions: AbstractSet[str],
    top_exclusions: AbstractSet[str],
    preserves: AbstractSet[str],
    ancestors: AbstractSet[Tuple[int, int]],
    result: SyncResult,
    log_extra: dict,
) -> None:
    if not dest.is_dir():
        if dest.exists() or dest.is_symlink():
            _remove(dest, result, log_extra=log_extra)
        _ensure_dir(dest)
        logger.info("created %s", dest, extra=log_extra)

    source_names = list_names(source)
    source_set = set(source_names)

    for name in list_names(dest):
        if name in source_set or name in preserves:
            continue
        _remove(dest / name, result, log_extra=log_extra)

    for name in source_names:
        src = source / name
        dst = dest / name
        try:
            st = src.stat()
        except OSError as e:
            result.failed += 1
            logger.warning("failed: stat %s: %s", src, e, extra=log_extra)
            continue

        if src.is_dir():
            if name in top_exclusions or is_excluded(name, exclusions):
                continue
            key = _dir_key(st)
            if key in ancestors:
                result.failed += 1
                logger.warning("failed: directory loop at %s", src, extra=log_extra)
                continue
            try:
                # Preserves and top-level exclusions only apply to the first level.
                _sync_level(
                    src, dst, exclusions, frozenset(), frozenset(), ancestors | {key}, result, log_extra
                )
            except FilesystemError as e:
                result.failed += 1
                logger.warning("failed: %s", e.message, extra=log_extra)
            continue

        if is_ignorable_name(name):
            continue

        if dst.is_dir() and not dst.is_symlink():
            if not _remove(dst, result, log_extra=log_extra):
                continue

        if not should_copy(st, dst):
            result.skipped += 1
            logger.debug("skipped %s", dst, extra=log_extra)
            continue
        try:
            copy_file(src, dst)
        except OSError as e:
            result.failed += 1
            logger.warning("failed: copy %s: %s", src, e, extra=log_extra)
            continue
        result.copied += 1
        logger.info("copied %s", dst, extra=log_extra)


def sync_tree(
    source_dir: Path,
    dest_dir: Path,
    exclusions: Iterable[str] = (),
    preserves: Iterable[str] = (),
    *,
    top_exclusions: Iterable[str] = (),
    project: Optional[str] = None,
) -> SyncResult:
    """Mirror ``source_dir`` into ``dest_dir``.

    - ``exclusions``: directory names never copied (checked at every level).
    - ``top_exclusions``: directory names skipped only directly under ``source_dir``.
    - ``preserves``: top-level destination names kept even when the source lacks them.

    A symlinked directory that leads back to one of its ancestors is counted
    as one failed entry instead of being followed.

    Raises FilesystemError only when ``dest_dir`` itself cannot be created;
    every other failure is per entry and shows up in ``failed``.
    """
    source = Path(source_dir)
    result = SyncResult()
    log_extra = {"project": project or "", "op": "sync", "path": str(dest_dir)}
    try:
        ancestors = frozenset({_dir_key(source.stat())})
    except OSError:
        ancestors = frozenset()
    _sync_level(
        source,
        Path(dest_dir),
        frozenset(exclusions),
        frozenset(top_exclusions),
        frozenset(preserves),
        ancestors,
        result,
        log_extra,
    )
    if result.changed or result.failed:
        logger.info(
            "sync %s: %d copied, %d removed, %d unchanged, %d failed",
            dest_dir.name,
            result.copied,
            result.deleted,
            result.skipped,
            result.failed,
            extra=log_extra,
        )
    return result

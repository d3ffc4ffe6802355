"""Filesystem watch sessions.

A WatchSession owns one watchdog observer over a project root and one
CycleScheduler. The WatcherManager is the only place sessions are kept;
callers hold the manager instead of reaching for a module-level registry.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from ..kernel.classify import classify
from ..kernel.orchestrator import BuildOrchestrator
from ..kernel.project import COMPILED_SOURCE_DIR_NAMES, ProjectTree
from .scheduler import CycleScheduler


logger = logging.getLogger("packsync.watcher")

_HANDLED = frozenset({EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED})
_IGNORED_DIRS = frozenset({"node_modules"})


def _as_str(p) -> str:
    return p.decode("utf-8", errors="replace") if isinstance(p, bytes) else str(p or "")


class ProjectEventHandler(FileSystemEventHandler):
    """Turns raw watchdog events into change notifications for one project."""

    def __init__(
        self,
        project: ProjectTree,
        on_change: Callable[[str], None],
        on_removed_source: Optional[Callable[[Path], None]] = None,
    ) -> None:
        super().__init__()
        self.project = project
        self.on_change = on_change
        self.on_removed_source = on_removed_source

    def _relative(self, path: Path) -> Optional[Path]:
        for pack in (self.project.behavior_dir, self.project.resource_dir):
            try:
                path.relative_to(pack)
            except ValueError:
                continue
            return path.relative_to(self.project.root)
        return None

    def is_relevant(self, event_type: str, path: Path, is_directory: bool) -> bool:
        rel = self._relative(path)
        if rel is None or any(part in _IGNORED_DIRS for part in rel.parts):
            return False
        if is_directory:
            if event_type == EVENT_TYPE_MODIFIED:
                return False
            if event_type == EVENT_TYPE_CREATED:
                # Adding the TypeScript folder after the fact must trigger a build.
                return path.parent == self.project.behavior_dir and path.name in COMPILED_SOURCE_DIR_NAMES
            return True
        return classify(path).role != "Ignorable"

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _HANDLED:
            return
        paths = [Path(_as_str(event.src_path))]
        dest = _as_str(getattr(event, "dest_path", ""))
        if dest:
            paths.append(Path(dest))

        relevant = [p for p in paths if self.is_relevant(event.event_type, p, event.is_directory)]
        if not relevant:
            return

        removed_side = paths[0] if event.event_type in (EVENT_TYPE_DELETED, EVENT_TYPE_MOVED) else None
        if removed_side is not None and not event.is_directory and self.on_removed_source is not None:
            if classify(removed_side).role == "SourceModule":
                self.on_removed_source(removed_side)

        rel = self._relative(relevant[-1]) or relevant[-1]
        self.on_change(f"{event.event_type}: {rel.as_posix()}")


class WatchSession:
    def __init__(
        self,
        project: ProjectTree,
        orchestrator: BuildOrchestrator,
        *,
        observer_factory: Callable[[], Observer] = Observer,
    ) -> None:
        self.project = project
        self.orchestrator = orchestrator
        self._observer_factory = observer_factory
        self._observer: Optional[Observer] = None
        self._removed_lock = threading.Lock()
        self._removed_sources: Set[Path] = set()
        self.scheduler = CycleScheduler(self._run, name=project.name)
        self.handler = ProjectEventHandler(project, self._on_change, self._on_removed_source)

    @property
    def running(self) -> bool:
        return self._observer is not None

    def _on_change(self, reason: str) -> None:
        logger.info("changed %s", reason, extra={"project": self.project.name, "op": "watch"})
        self.scheduler.request(reason)

    def _on_removed_source(self, path: Path) -> None:
        # Applied by the worker thread so it never races a running cycle.
        with self._removed_lock:
            self._removed_sources.add(path)

    def _run(self, reason: str) -> None:
        with self._removed_lock:
            removed = sorted(self._removed_sources)
            self._removed_sources.clear()
        for path in removed:
            self.orchestrator.handle_removed_source(path)
        self.orchestrator.run_cycle(reason)

    def start(self, *, initial_cycle: bool = True) -> None:
        if self._observer is not None:
            return
        self.scheduler.start()
        observer = self._observer_factory()
        observer.schedule(self.handler, str(self.project.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("watching %s", self.project.root, extra={"project": self.project.name, "op": "watch"})
        if initial_cycle:
            self.scheduler.request("initial build")

    def stop(self, timeout: Optional[float] = None) -> None:
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout)
        self.scheduler.stop(timeout)
        with self._removed_lock:
            self._removed_sources.clear()
        logger.info("stopped monitoring", extra={"project": self.project.name, "op": "watch"})


class WatcherManager:
    """Owns every active WatchSession, keyed by project name."""

    def __init__(self, session_factory: Callable[..., WatchSession] = WatchSession) -> None:
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self._sessions: Dict[str, WatchSession] = {}

    def start(self, project: ProjectTree, orchestrator: BuildOrchestrator, *, initial_cycle: bool = True) -> WatchSession:
        with self._lock:
            previous = self._sessions.pop(project.name, None)
        if previous is not None:
            previous.stop()
        session = self._session_factory(project, orchestrator)
        session.start(initial_cycle=initial_cycle)
        with self._lock:
            self._sessions[project.name] = session
        return session

    def get(self, name: str) -> Optional[WatchSession]:
        with self._lock:
            return self._sessions.get(name)

    def stop(self, name: str, timeout: Optional[float] = None) -> bool:
        with self._lock:
            session = self._sessions.pop(name, None)
        if session is None:
            return False
        session.stop(timeout)
        return True

    def stop_all(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.stop(timeout)

    def active(self) -> List[str]:
        with self._lock:
            return sorted(self._sessions)

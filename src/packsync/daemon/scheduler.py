"""Coalescing cycle scheduler.

One worker thread per project drains a single pending slot. A request made
while a cycle runs only fills the slot, so any burst of file events during a
cycle turns into exactly one follow-up cycle and two cycles never overlap.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional


logger = logging.getLogger("packsync.scheduler")


class CycleScheduler:
    def __init__(self, run_cycle: Callable[[str], Any], *, name: str = "") -> None:
        self._run_cycle = run_cycle
        self.name = name
        self._cond = threading.Condition()
        self._pending: Optional[str] = None
        self._running = False
        self._stopping = False
        self._thread: Optional[threading.Thread] = None
        self.cycles_run = 0

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._running

    @property
    def pending(self) -> bool:
        with self._cond:
            return self._pending is not None

    def start(self) -> None:
        with self._cond:
            if self._thread is not None:
                return
            self._stopping = False
            self._thread = threading.Thread(
                target=self._loop, name=f"packsync-cycle-{self.name or 'project'}", daemon=True
            )
            self._thread.start()

    def request(self, reason: str) -> bool:
        """Ask for a cycle. Returns False when the request merged into one already pending."""
        with self._cond:
            if self._stopping:
                return False
            merged = self._pending is not None
            if self._pending is None:
                self._pending = reason
            if self._running and not merged:
                logger.debug("cycle running; queued follow-up (%s)", reason, extra={"project": self.name})
            self._cond.notify_all()
            return not merged

    def _loop(self) -> None:
        while True:
            with self._cond:
                while self._pending is None and not self._stopping:
                    self._cond.wait()
                if self._stopping:
                    return
                reason = self._pending or ""
                self._pending = None
                self._running = True
            try:
                self._run_cycle(reason)
            except Exception:
                logger.exception("cycle crashed", extra={"project": self.name, "op": "cycle"})
            finally:
                with self._cond:
                    self._running = False
                    self.cycles_run += 1
                    follow_up = self._pending is not None and not self._stopping
                    self._cond.notify_all()
            if follow_up:
                logger.info("processing pending changes...", extra={"project": self.name})
            else:
                logger.info("waiting for new changes...", extra={"project": self.name})

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle runs and none is pending. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._running and self._pending is None, timeout)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Drop pending work and end the worker; a cycle in flight is allowed to finish."""
        with self._cond:
            self._stopping = True
            self._pending = None
            self._cond.notify_all()
            thread = self._thread
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

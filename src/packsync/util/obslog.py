from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO


_CONFIGURED: Dict[str, bool] = {}

# Correlation keys callers pass via `logger.*(..., extra={...})`.
_CONTEXT_KEYS = ("project", "cycle", "op", "path")


def _utc_ts_iso(ts: float) -> str:
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    except Exception:
        return ""


class JsonlFormatter(logging.Formatter):
    """Minimal JSONL formatter for long-running watch sessions.

    Keep fields stable and small; extra fields can be added via `logger.*(..., extra={...})`.
    """

    def __init__(self, *, component: str):
        super().__init__()
        self._component = str(component or "").strip() or "packsync"

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utc_ts_iso(getattr(record, "created", 0.0) or 0.0),
            "level": str(getattr(record, "levelname", "") or ""),
            "logger": str(getattr(record, "name", "") or ""),
            "component": self._component,
            "msg": record.getMessage(),
        }

        for k in _CONTEXT_KEYS:
            v = getattr(record, k, None)
            if v is None:
                continue
            sv = str(v).strip()
            if sv:
                payload[k] = sv

        if record.exc_info:
            try:
                payload["exc"] = self.formatException(record.exc_info)
            except Exception:
                payload["exc"] = "exception"

        try:
            return json.dumps(payload, ensure_ascii=False)
        except Exception:
            # Last resort: never crash logging.
            return '{"component":"%s","level":"%s","msg":"(log serialization failed)"}' % (
                self._component,
                payload.get("level", "INFO"),
            )


class ConsoleFormatter(logging.Formatter):
    """One line per outcome; failures get a distinct prefix."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        project = getattr(record, "project", None)
        if project:
            msg = f"[{project}] {msg}"
        if record.levelno >= logging.ERROR:
            msg = f"!! {msg}"
        elif record.levelno >= logging.WARNING:
            msg = f"!  {msg}"
        if record.exc_info and record.levelno >= logging.ERROR:
            msg = msg + "\n" + self.formatException(record.exc_info)
        return msg


def parse_level(level: str, default: int = logging.INFO) -> int:
    s = str(level or "").strip().upper()
    if not s:
        return default
    value = getattr(logging, s, default)
    return value if isinstance(value, int) else default


def resolve_level(explicit: str = "", configured: str = "") -> str:
    """Pick the effective level name: explicit flag, then env, then settings."""
    for candidate in (explicit, os.environ.get("PACKSYNC_LOG_LEVEL", ""), configured):
        s = str(candidate or "").strip().upper()
        if s:
            return s
    return "INFO"


def _install(handler: logging.Handler, *, key: str, level: str, force: bool) -> None:
    if _CONFIGURED.get(key) and not force:
        return
    _CONFIGURED[key] = True

    root = logging.getLogger()
    root.setLevel(parse_level(level))
    if force:
        for h in list(root.handlers):
            root.removeHandler(h)

    # Avoid duplicate handlers on repeated calls.
    for h in list(root.handlers):
        if isinstance(h, logging.StreamHandler) and type(getattr(h, "formatter", None)) is type(handler.formatter):
            h.setLevel(parse_level(level))
            return

    handler.setLevel(parse_level(level))
    root.addHandler(handler)


def setup_root_json_logging(
    *,
    component: str,
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """Configure root logging once per process with a JSONL stream handler.

    `force=True` clears existing handlers.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonlFormatter(component=component))
    _install(handler, key=f"json:{component}", level=level, force=force)


def setup_console_logging(*, level: str = "INFO", stream: Optional[TextIO] = None, force: bool = False) -> None:
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(ConsoleFormatter())
    _install(handler, key="console", level=level, force=force)

"""
streamglow/core/logger.py — Structured JSONL event log.

Every component logs ``(phase, event, data)`` triples through one shared
:class:`GlowLogger`. Entries go to ``<log_dir>/streamglow_{YYYY-MM-DD}.jsonl``
(a new file each UTC day); WARN and above are echoed to the stdlib
``"streamglow"`` logger so they show up on stderr.

Usage::

    from streamglow.core.logger import get_logger
    _log = get_logger()
    _log.info("decoder", "event_classified", {"kind": "DONATION"})
    _log.perf("applicator", "effect_applied", 5012.4, {"lights": 3})
"""

from __future__ import annotations

import json
import logging
import os
import platform
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Dict, Optional

_stderr = logging.getLogger("streamglow")
if not _stderr.handlers:
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S"))
    _stderr.addHandler(_handler)
    _stderr.setLevel(logging.INFO)
_stderr.propagate = False

# Levels echoed to stderr, and the stdlib level each maps to.
_MIRRORED: Dict[str, int] = {
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_DEFAULT_DIR = Path(os.environ.get("STREAMGLOW_LOG_DIR", "logs"))

_instance: Optional["GlowLogger"] = None
_instance_lock = threading.Lock()


class GlowLogger:
    """
    Append-only JSONL log shared by the transport and pipeline threads.

    One record per line::

        {"timestamp_iso": "...", "level": "WARN", "phase": "queue",
         "event": "event_dropped", "data": {"reason": "queue_full"}}

    PERF records also carry ``latency_ms``. Values that JSON cannot encode
    (``Decimal``, ``Path``) are written with ``str()``.

    Obtain it with :func:`get_logger`.
    """

    def __init__(self, log_dir: Path | str = _DEFAULT_DIR) -> None:
        self._lock = threading.Lock()
        self._log_dir = Path(log_dir)
        self._day = ""
        self._fh: Optional[IO[str]] = None
        self.info("system", "startup", {
            "python": sys.version.split()[0],
            "platform": platform.platform(),
            "pid": os.getpid(),
            "log_dir": str(self._log_dir),
        })

    # ── Levels ────────────────────────────────────────────────

    def debug(self, phase: str, event: str, data: Optional[dict] = None) -> None:
        self._emit("DEBUG", phase, event, data)

    def info(self, phase: str, event: str, data: Optional[dict] = None) -> None:
        self._emit("INFO", phase, event, data)

    def warn(self, phase: str, event: str, data: Optional[dict] = None) -> None:
        """Recoverable problem: a dropped event, one light that failed."""
        self._emit("WARN", phase, event, data)

    def error(self, phase: str, event: str, data: Optional[dict] = None) -> None:
        """An operation failed outright; the pipeline carries on."""
        self._emit("ERROR", phase, event, data)

    def critical(self, phase: str, event: str, data: Optional[dict] = None) -> None:
        """The process cannot continue (startup failure, unhandled error)."""
        self._emit("CRITICAL", phase, event, data)

    def perf(
        self,
        phase: str,
        event: str,
        latency_ms: float,
        data: Optional[dict] = None,
    ) -> None:
        """Record a timing measurement in milliseconds."""
        self._emit("PERF", phase, event, data, latency_ms=latency_ms)

    # ── Destination ───────────────────────────────────────────

    def set_log_dir(self, log_dir: Path | str) -> None:
        """Write subsequent records under *log_dir* (created on first write)."""
        with self._lock:
            self._close_locked()
            self._log_dir = Path(log_dir)

    @property
    def log_path(self) -> Path:
        """File the next record goes to."""
        with self._lock:
            return self._path_for(self._day or _utc_day())

    def flush(self) -> None:
        with self._lock:
            if self._fh is not None and not self._fh.closed:
                self._fh.flush()

    # ── Internals ─────────────────────────────────────────────

    def _emit(
        self,
        level: str,
        phase: str,
        event: str,
        data: Optional[dict],
        latency_ms: Optional[float] = None,
    ) -> None:
        now = datetime.now(tz=timezone.utc)
        record: Dict[str, Any] = {
            "timestamp_iso": now.isoformat(),
            "level": level,
            "phase": phase,
            "event": event,
            "data": data or {},
        }
        if latency_ms is not None:
            record["latency_ms"] = round(latency_ms, 3)
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"), default=str)

        with self._lock:
            fh = self._file_for(now.strftime("%Y-%m-%d"))
            fh.write(line + "\n")

        mirror = _MIRRORED.get(level)
        if mirror is not None:
            _stderr.log(mirror, "[%s] %s %s", phase, event, data or {})

    def _file_for(self, day: str) -> IO[str]:
        """Return the open handle for *day*; caller holds ``self._lock``."""
        if day != self._day or self._fh is None or self._fh.closed:
            self._close_locked()
            self._log_dir.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path_for(day), "a", encoding="utf-8", buffering=1)
            self._day = day
        return self._fh

    def _path_for(self, day: str) -> Path:
        return self._log_dir / f"streamglow_{day}.jsonl"

    def _close_locked(self) -> None:
        if self._fh is not None and not self._fh.closed:
            self._fh.close()
        self._fh = None


def _utc_day() -> str:
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%d")


def get_logger() -> GlowLogger:
    """Return the process-wide :class:`GlowLogger`, creating it on first use."""
    global _instance
    if _instance is None:
        with _instance_lock:
            if _instance is None:
                _instance = GlowLogger()
    return _instance

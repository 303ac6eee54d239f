# ./kducer/utils/logger.py
from __future__ import annotations

"""Lightweight file logger.

- Writes plain text lines to kducer.log in the log directory.
- Safe-by-design: never raises to caller (the polling thread must not die on a log write).
- Log directory: $KDUCER_LOG_DIR if set, else ~/kducer/logs.

Usage:
    from kducer.utils.logger import init_log, log, warn, log_exc
    init_log()  # optional, first log() call initializes lazily
    log("EVENT", key=value, ...)

Line format:
    2024-03-15 14:15:33.120 [kdu-192.168.5.150] INFO KDU_CONNECT host=... port=502
"""

import os
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

_lock = threading.Lock()
_log_path: Optional[Path] = None
_inited = False

LOG_DIR_ENV = "KDUCER_LOG_DIR"
DEFAULT_LOG_NAME = "kducer.log"


def default_log_dir() -> Path:
    env = os.environ.get(LOG_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / "kducer" / "logs"


def init_log(filename: str = DEFAULT_LOG_NAME, overwrite: bool = False) -> Optional[Path]:
    """Initialize the logger and create (or truncate) the log file.

    If `filename` is an absolute path, it will be used directly.
    Otherwise it is treated as relative to default_log_dir().
    Returns None when no writable location was found; logging then becomes a no-op.
    """
    global _log_path, _inited
    fp = Path(filename)
    p: Optional[Path] = fp if fp.is_absolute() else default_log_dir() / filename

    for candidate in (p, Path(".").resolve() / fp.name):
        try:
            candidate.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if overwrite else "a"
            with open(candidate, mode, encoding="utf-8") as f:
                f.write(f"# log start {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
            p = candidate
            break
        except OSError:
            p = None

    _log_path = p
    _inited = True
    return p


def _fmt(v: Any) -> str:
    try:
        if isinstance(v, float):
            return f"{v:.3f}"
        return str(v)
    except Exception:
        return "<fmt_err>"


def _write(level: str, event: str, fields: dict) -> None:
    if not _inited:
        init_log()

    p = _log_path
    if p is None:
        return

    try:
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        th = threading.current_thread().name
        parts = [f"{k}={_fmt(v)}" for k, v in fields.items()]
        line = f"{ts} [{th}] {level} {event}"
        if parts:
            line += " " + " ".join(parts)
        line += "\n"

        with _lock:
            with open(p, "a", encoding="utf-8") as f:
                f.write(line)
    except Exception:
        return


def log(event: str, **fields: Any) -> None:
    """Append one INFO line."""
    _write("INFO", event, fields)


def warn(event: str, **fields: Any) -> None:
    _write("WARN", event, fields)


def log_exc(event: str, exc: BaseException, **fields: Any) -> None:
    """Log an exception + traceback."""
    try:
        _write("ERROR", event, {**fields, "exc": f"{type(exc).__name__}: {exc}"})
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        for ln in tb.splitlines():
            _write("ERROR", "TRACE", {"line": ln})
    except Exception:
        return

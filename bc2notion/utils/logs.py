"""
Plain-text run log.

Every component reports through :func:`log_message`, which prints a
``[LEVEL] message`` line and appends ``LEVEL: message`` to
``reports/migration/migration.log``.  Worker threads share the file, so
writes go through a lock.  ``DEBUG`` lines are dropped unless
:func:`set_debug` has been called by the orchestrator.
"""

from __future__ import annotations

import os
import threading

_LOG_DIR = os.path.join("reports", "migration")
_LOG_FILE = os.path.join(_LOG_DIR, "migration.log")

_lock = threading.Lock()
_debug_enabled = False


def set_debug(enabled: bool) -> None:
    global _debug_enabled
    _debug_enabled = bool(enabled)


def debug_enabled() -> bool:
    return _debug_enabled


def log_message(message: str, level: str = "INFO") -> None:
    if level == "DEBUG" and not _debug_enabled:
        return
    with _lock:
        print(f"[{level}] {message}")
        os.makedirs(_LOG_DIR, exist_ok=True)
        with open(_LOG_FILE, "a", encoding="utf-8") as f:
            f.write(f"{level}: {message}\n")


def preview(value: object, limit: int = 200) -> str:
    """Shorten ``value`` for a single log line."""
    text = str(value).replace("\n", " ")
    return text if len(text) <= limit else text[:limit] + "…"

"""
Shared state of one migration run.

A :class:`RunContext` is created by the orchestrator and handed by
reference to every worker.  It owns the process-wide shutdown flag, the
run counters and the deduplicated list of assets that need a manual
upload.  Tests build a fresh instance per case.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Dict, List, Optional

from bc2notion.utils.logs import log_message


class ShutdownRequested(Exception):
    """Raised at a loop boundary once a shutdown has been requested."""


class RunContext:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._shutdown = threading.Event()
        self._counters: Counter = Counter()
        self._manual_uploads: Dict[str, Dict[str, str]] = {}

    # --- cancellation ---

    def request_shutdown(self) -> None:
        if not self._shutdown.is_set():
            log_message("Shutdown requested; no new work will be scheduled.", "WARNING")
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def check_shutdown(self, where: str = "") -> None:
        if self._shutdown.is_set():
            raise ShutdownRequested(where or "shutdown requested")

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; returns ``True`` if woken by a shutdown."""
        return self._shutdown.wait(max(0.0, seconds))

    # --- counters ---

    def increment(self, name: str, amount: int = 1) -> int:
        with self._lock:
            self._counters[name] += amount
            return self._counters[name]

    def counters(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    # --- manual upload report ---

    def record_manual_upload(self, url: str, page_id: Optional[str], context: str = "") -> bool:
        """Remember ``url`` once; returns ``False`` for a repeated URL."""
        cleaned = (url or "").strip()
        if not cleaned:
            return False
        with self._lock:
            if cleaned in self._manual_uploads:
                return False
            self._manual_uploads[cleaned] = {
                "url": cleaned,
                "notion_page_id": page_id or "",
                "context": context,
            }
            self._counters["manual_uploads"] += 1
        log_message(f"Manual upload required: {cleaned} ({context})")
        return True

    def manual_uploads(self) -> List[Dict[str, str]]:
        with self._lock:
            return list(self._manual_uploads.values())

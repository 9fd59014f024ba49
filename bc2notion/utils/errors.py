"""
Structured logging helpers for migration errors and successes.

The :mod:`bc2notion.utils.errors` module centralizes the writing of log
entries for both failed and successful units of work during the
migration.  Each entry is appended to a JSON Lines file under
``reports/migration`` so that the information can be reviewed or parsed
after a run.

Two public functions are provided:

``report_error``
    Record an error that occurred for a Basecamp record.  An optional
    exception can be supplied and will be serialized to the log.

``report_ok``
    Record a successful step for a Basecamp record.  Additional key/value
    information can be attached to the entry via the ``extra`` parameter.

The ``ERRORS`` dictionary maps error or event codes to human readable
messages.  Codes not present in the dictionary fall back to the code
itself.
"""

from __future__ import annotations

import json
import os
import threading
from typing import Any, Dict, Optional

from bc2notion.utils.logs import log_message

# Mapping of event codes used throughout the migration to descriptive messages.
# The keys include both error and success codes as the same lookup is used by
# :func:`report_error` and :func:`report_ok`.
ERRORS: Dict[str, str] = {
    "ITEM_FAILED": "Failed to migrate item",
    "TOOL_FAILED": "Failed to migrate tool",
    "PROJECT_FAILED": "Failed to migrate project",
    "STRUCTURAL": "Missing required destination container",
    "BATCH_DELIVERY": "Failed to append a block batch to Notion",
    "ASSET_FALLBACK": "Asset could not be re-hosted; fallback link used",
    "ITEM_MIGRATED": "Item migrated successfully",
    "TOOL_MIGRATED": "Tool migrated successfully",
    "PROJECT_MIGRATED": "Project migrated successfully",
}

_REPORT_DIR = os.path.join("reports", "migration")
_ERROR_LOG = os.path.join(_REPORT_DIR, "errors.jsonl")
_OK_LOG = os.path.join(_REPORT_DIR, "success.jsonl")

_lock = threading.Lock()


def _write_jsonl(path: str, data: Dict[str, Any]) -> None:
    """Append ``data`` as a JSON object followed by a newline to ``path``."""
    with _lock:
        os.makedirs(_REPORT_DIR, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
            f.write("\n")


def report_error(code: str, record: Dict[str, Any], exc: Optional[Exception] = None) -> None:
    """Log an error event for ``record``.

    Parameters
    ----------
    code:
        A key identifying the type of error.  If ``code`` is present in
        :data:`ERRORS` its value will be used as the message.
    record:
        The Basecamp record associated with the error.  Only the ``id``,
        ``title`` and ``name`` keys are referenced if present.
    exc:
        Optional exception instance that triggered the error.  Its class
        name and string representation are included in the log entry.
    """
    message = ERRORS.get(code, code)
    entry: Dict[str, Any] = {
        "code": code,
        "message": message,
        "id": record.get("id"),
        "title": record.get("title") or record.get("name"),
    }
    if exc is not None:
        entry["error"] = str(exc)
        entry["error_type"] = type(exc).__name__
    log_message(f"{message} - {entry['title'] or entry['id'] or ''}", "ERROR")
    _write_jsonl(_ERROR_LOG, entry)


def report_ok(code: str, record: Dict[str, Any], extra: Optional[Dict[str, Any]] = None) -> None:
    """Log a successful event for ``record``.

    Parameters
    ----------
    code:
        A key identifying the type of event.
    record:
        The Basecamp record associated with the event.
    extra:
        Optional dictionary of additional fields to merge into the log entry.
    """
    message = ERRORS.get(code, code)
    entry: Dict[str, Any] = {
        "code": code,
        "message": message,
        "id": record.get("id"),
        "title": record.get("title") or record.get("name"),
    }
    if extra:
        entry.update(extra)
    log_message(f"{message} - {entry['title'] or entry['id'] or ''}", "OK")
    _write_jsonl(_OK_LOG, entry)

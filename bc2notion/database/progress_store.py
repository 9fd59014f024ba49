"""
Checkpoint store for resumable migrations, backed by DuckDB.

Three tables record the state of every unit of work, keyed by Basecamp
identifiers:

``projects``  (basecamp_id)
``tools``     (project_id, tool_name)
``items``     (basecamp_id, project_id, tool_name)

Each row carries ``status`` (``pending`` / ``in_progress`` / ``done``),
the Notion page created for it and an ISO-8601 UTC timestamp.  The
orchestrator calls ``start_*`` before doing the work and ``complete_*``
only after Notion confirmed the delivery.  All access goes through one
connection guarded by a lock.
"""

from __future__ import annotations

import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from bc2notion.models.progress import ProgressRecord, Status
from bc2notion.utils.logs import log_message

TABLES = ("projects", "tools", "items")

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    basecamp_id VARCHAR PRIMARY KEY,
    name VARCHAR,
    notion_page_id VARCHAR,
    status VARCHAR DEFAULT 'pending',
    updated_at VARCHAR
);
CREATE TABLE IF NOT EXISTS tools (
    project_id VARCHAR,
    tool_name VARCHAR,
    notion_page_id VARCHAR,
    status VARCHAR DEFAULT 'pending',
    updated_at VARCHAR,
    PRIMARY KEY (project_id, tool_name)
);
CREATE TABLE IF NOT EXISTS items (
    basecamp_id VARCHAR,
    project_id VARCHAR,
    tool_name VARCHAR,
    name VARCHAR,
    notion_page_id VARCHAR,
    status VARCHAR DEFAULT 'pending',
    updated_at VARCHAR,
    PRIMARY KEY (basecamp_id, project_id, tool_name)
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class ProgressStore:
    def __init__(self, db_path: str = "data/progress.duckdb") -> None:
        self.db_path = db_path
        if db_path != ":memory:" and os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
        created = db_path == ":memory:" or not os.path.exists(db_path)
        self._lock = threading.Lock()
        self.con = duckdb.connect(database=db_path, read_only=False)
        self.con.execute(SCHEMA)
        log_message(f"Progress database: {db_path} ({'created' if created else 'existing'})")

    def close(self) -> None:
        with self._lock:
            self.con.close()

    def __enter__(self) -> "ProgressStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # --- internals ---

    def _fetch_one(self, sql: str, params: Sequence[Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            cur = self.con.execute(sql, list(params))
            row = cur.fetchone()
            if row is None:
                return None
            names = [d[0] for d in cur.description]
        return dict(zip(names, row))

    def _execute(self, sql: str, params: Sequence[Any]) -> None:
        with self._lock:
            self.con.execute(sql, list(params))

    @staticmethod
    def _record(level: str, row: Optional[Dict[str, Any]], source_key: str, parent_key: Optional[str], content_type: Optional[str]) -> Optional[ProgressRecord]:
        if row is None:
            return None
        return ProgressRecord(
            level=level,
            source_id=str(row[source_key]),
            parent_id=str(row[parent_key]) if parent_key and row.get(parent_key) is not None else None,
            content_type=content_type or row.get("tool_name"),
            status=Status(row.get("status") or Status.PENDING.value),
            notion_page_id=row.get("notion_page_id"),
            name=row.get("name") or row.get("tool_name"),
            updated_at=row.get("updated_at"),
        )

    # --- projects ---

    def get_project(self, project_id: Any) -> Optional[ProgressRecord]:
        row = self._fetch_one("SELECT * FROM projects WHERE basecamp_id = ?", [str(project_id)])
        return self._record("project", row, "basecamp_id", None, None)

    def start_project(self, project_id: Any, name: Optional[str] = None, notion_page_id: Optional[str] = None) -> None:
        self._execute(
            """
            INSERT INTO projects (basecamp_id, name, notion_page_id, status, updated_at)
            VALUES (?, ?, ?, 'in_progress', ?)
            ON CONFLICT (basecamp_id) DO UPDATE SET
                name = COALESCE(excluded.name, name),
                notion_page_id = COALESCE(excluded.notion_page_id, notion_page_id),
                status = 'in_progress',
                updated_at = excluded.updated_at
            """,
            [str(project_id), name, notion_page_id, _now()],
        )

    def complete_project(self, project_id: Any) -> None:
        self._execute(
            "UPDATE projects SET status = 'done', updated_at = ? WHERE basecamp_id = ?",
            [_now(), str(project_id)],
        )

    # --- tools ---

    def get_tool(self, project_id: Any, tool_name: str) -> Optional[ProgressRecord]:
        row = self._fetch_one(
            "SELECT * FROM tools WHERE project_id = ? AND tool_name = ?", [str(project_id), tool_name]
        )
        return self._record("tool", row, "tool_name", "project_id", tool_name)

    def start_tool(self, project_id: Any, tool_name: str, notion_page_id: Optional[str] = None) -> None:
        self._execute(
            """
            INSERT INTO tools (project_id, tool_name, notion_page_id, status, updated_at)
            VALUES (?, ?, ?, 'in_progress', ?)
            ON CONFLICT (project_id, tool_name) DO UPDATE SET
                notion_page_id = COALESCE(excluded.notion_page_id, notion_page_id),
                status = 'in_progress',
                updated_at = excluded.updated_at
            """,
            [str(project_id), tool_name, notion_page_id, _now()],
        )

    def complete_tool(self, project_id: Any, tool_name: str) -> None:
        self._execute(
            "UPDATE tools SET status = 'done', updated_at = ? WHERE project_id = ? AND tool_name = ?",
            [_now(), str(project_id), tool_name],
        )

    # --- items ---

    def get_item(self, item_id: Any, project_id: Any, tool_name: str) -> Optional[ProgressRecord]:
        row = self._fetch_one(
            "SELECT * FROM items WHERE basecamp_id = ? AND project_id = ? AND tool_name = ?",
            [str(item_id), str(project_id), tool_name],
        )
        return self._record("item", row, "basecamp_id", "project_id", tool_name)

    def start_item(
        self,
        item_id: Any,
        project_id: Any,
        tool_name: str,
        *,
        name: Optional[str] = None,
        notion_page_id: Optional[str] = None,
    ) -> None:
        """
        Mark an item ``in_progress``.  Passing ``notion_page_id`` replaces
        the stored page; passing ``None`` keeps the stored page, so an
        interrupted item can still be found and archived on the next run.
        """
        self._execute(
            """
            INSERT INTO items (basecamp_id, project_id, tool_name, name, notion_page_id, status, updated_at)
            VALUES (?, ?, ?, ?, ?, 'in_progress', ?)
            ON CONFLICT (basecamp_id, project_id, tool_name) DO UPDATE SET
                name = COALESCE(excluded.name, name),
                notion_page_id = COALESCE(excluded.notion_page_id, notion_page_id),
                status = 'in_progress',
                updated_at = excluded.updated_at
            """,
            [str(item_id), str(project_id), tool_name, name, notion_page_id, _now()],
        )

    def complete_item(self, item_id: Any, project_id: Any, tool_name: str) -> None:
        self._execute(
            "UPDATE items SET status = 'done', updated_at = ? WHERE basecamp_id = ? AND project_id = ? AND tool_name = ?",
            [_now(), str(item_id), str(project_id), tool_name],
        )

    # --- reporting ---

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Counts per status for every table."""
        out: Dict[str, Dict[str, int]] = {}
        with self._lock:
            for table in TABLES:
                rows = self.con.execute(f"SELECT status, COUNT(*) FROM {table} GROUP BY status ORDER BY status").fetchall()
                out[table] = {str(status): int(count) for status, count in rows}
        return out

    def log_summary(self) -> Dict[str, Dict[str, int]]:
        summary = self.summary()
        log_message("Sync summary:")
        for table, counts in summary.items():
            shown = ", ".join(f"{status}: {count}" for status, count in counts.items()) or "none"
            log_message(f"  {table.capitalize()}: {shown}")
        return summary

    def export_dump(self, directory: str = "reports/progress") -> List[str]:
        """Write one CSV per table into ``directory`` and return the paths."""
        os.makedirs(directory, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        paths: List[str] = []
        with self._lock:
            frames = {table: self.con.execute(f"SELECT * FROM {table}").df() for table in TABLES}
        for table, df in frames.items():
            path = os.path.join(directory, f"{table}_{stamp}.csv")
            df.to_csv(path, index=False)
            paths.append(path)
        log_message(f"Progress database exported to: {directory} ({', '.join(os.path.basename(p) for p in paths)})")
        return paths

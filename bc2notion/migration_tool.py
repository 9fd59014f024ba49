"""
High-level orchestration of the Basecamp → Notion migration.

This module defines a :class:`BasecampMigrationTool` class that ties
together the extractor, parsers, asset handling, migrators and the
progress store into a complete pipeline.  For every selected project it
creates (or reuses) a project page under the configured Notion root,
one page per tool and one page per item, converting the item HTML to
blocks and delivering them in size-constrained batches.

Every level is checkpointed: ``start`` before the work, ``complete``
after Notion confirmed it.  Levels already ``done`` are skipped on a
rerun; an item left ``in_progress`` has its stale page archived before
it is recreated, so repeated runs never leave duplicates.

Configuration is supplied via a JSON file path or directly as a
dictionary and completed from environment variables.  The ``basecamp``
section needs ``account_id`` and ``access_token``; the ``notion``
section needs ``api_key`` and ``root_page_id``.  Optional migration
settings (filters, worker counts, dry-run) live under ``migration``.
"""

from __future__ import annotations

import json
import os
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from bc2notion.assets.browser_session import BrowserSession
from bc2notion.assets.downloader import AssetDownloader
from bc2notion.assets.resolver import AssetResolver
from bc2notion.database.progress_store import ProgressStore
from bc2notion.extractors.basecamp_extractor import BasecampClient
from bc2notion.migrators.batcher import BatchDeliveryError
from bc2notion.migrators.content_types import ContentType, SourceItem, convert_comment, render_discussion
from bc2notion.migrators.http_client import HttpError, RetryPolicy
from bc2notion.migrators.notion_api import NotionClient, StructuralError, migration_banner
from bc2notion.migrators.notion_uploads import FileUploader
from bc2notion.parsers.notion_local import BlockBuilder, limit_nesting
from bc2notion.parsers.notion_schema import MAX_TEXT_LENGTH, callout
from bc2notion.utils.errors import report_error, report_ok
from bc2notion.utils.logs import log_message, set_debug
from bc2notion.utils.reports import generate_manual_uploads_csv
from bc2notion.utils.run_context import RunContext, ShutdownRequested


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class BasecampMigrationTool:
    """
    Encapsulates all state and behavior required to migrate Basecamp
    projects to Notion.  Collaborators (source client, Notion client,
    progress store, asset resolver) can be injected, which is how the
    tests run the whole pipeline without network access.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        config_file: Optional[str] = None,
        run_context: Optional[RunContext] = None,
        source: Any = None,
        notion: Any = None,
        progress: Any = None,
        asset_resolver: Any = None,
    ) -> None:
        if config_file and os.path.exists(config_file):
            with open(config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        elif config is None:
            # Default configuration
            config = {}

        # Ensure essential keys exist to prevent KeyErrors
        config.setdefault("basecamp", {})
        config["basecamp"].setdefault("account_id", os.getenv("BASECAMP_ACCOUNT_ID", ""))
        config["basecamp"].setdefault("access_token", os.getenv("BASECAMP_ACCESS_TOKEN", ""))
        config["basecamp"].setdefault("api_base", os.getenv("BASECAMP_API_BASE", "https://3.basecampapi.com"))

        config.setdefault("notion", {})
        config["notion"].setdefault("api_key", os.getenv("NOTION_API_KEY", ""))
        config["notion"].setdefault("root_page_id", os.getenv("NOTION_ROOT_PAGE_ID", ""))
        config["notion"].setdefault("base_url", "https://api.notion.com/v1")
        config["notion"].setdefault("version", "2022-06-28")

        config.setdefault("migration", {})
        config["migration"].setdefault("project_label", os.getenv("FILTER_PROJECT_LABEL", ""))
        config["migration"].setdefault("exclude_label", os.getenv("EXCLUDE_PROJECT_LABEL", ""))
        config["migration"].setdefault("tool_name", os.getenv("FILTER_TOOL_NAME") or None)
        config["migration"].setdefault("include_archived", _env_bool("INCLUDE_ARCHIVED"))
        config["migration"].setdefault("project_workers", int(os.getenv("PROJECT_WORKERS", "2")))
        config["migration"].setdefault("comment_workers", int(os.getenv("COMMENT_WORKERS", "4")))
        config["migration"].setdefault("dry_run", _env_bool("DRY_RUN"))
        config["migration"].setdefault("debug", _env_bool("DEBUG"))
        config["migration"].setdefault("db_path", os.getenv("PROGRESS_DB", "data/progress.duckdb"))
        config["migration"].setdefault("dump_dir", "reports/progress")

        config.setdefault("limits", {})
        config["limits"].setdefault("max_text_length", MAX_TEXT_LENGTH)

        config.setdefault("retry", {})

        config.setdefault("browser", {})
        config["browser"].setdefault("enabled", _env_bool("BROWSER_ENABLED"))
        config["browser"].setdefault("headless", _env_bool("HEADLESS"))
        config["browser"].setdefault("profile_dir", os.getenv("BC_CHROME_PROFILE_DIR", "~/.bc_chrome"))
        config["browser"].setdefault("login_timeout", int(os.getenv("BASECAMP_LOGIN_TIMEOUT", "300")))

        self.config = config
        set_debug(bool(config["migration"]["debug"]))
        self.dry_run: bool = bool(config["migration"]["dry_run"])
        self.run_context = run_context or RunContext()
        policy = RetryPolicy(**config["retry"])

        self.source = source or BasecampClient(config["basecamp"], run_context=self.run_context, policy=policy)
        self.notion = notion or NotionClient(
            config["notion"],
            run_context=self.run_context,
            policy=policy,
            limits=config["limits"],
            dry_run=self.dry_run,
        )
        self.progress = progress or ProgressStore(config["migration"]["db_path"])
        self.browser: Optional[BrowserSession] = None
        self.asset_resolver = asset_resolver or self._build_resolver()

    def log_message(self, message: str, level: str = "INFO") -> None:
        log_message(message, level)

    def _build_resolver(self) -> AssetResolver:
        basecamp = self.config["basecamp"]
        if self.config["browser"].get("enabled"):
            self.browser = BrowserSession(self.config["browser"], run_context=self.run_context)
        downloader = AssetDownloader(basecamp_token=basecamp.get("access_token") or None, browser=self.browser)
        return AssetResolver(
            browser=self.browser,
            downloader=downloader,
            uploader=FileUploader(self.notion),
            basecamp_token=basecamp.get("access_token") or None,
            api_base=basecamp.get("api_base") or "https://3.basecampapi.com",
        )

    def builder(self, page_id: Optional[str], context: str) -> BlockBuilder:
        return BlockBuilder(
            asset_resolver=self.asset_resolver,
            run_context=self.run_context,
            page_id=page_id,
            context=context,
            max_text_length=int(self.config["limits"]["max_text_length"]),
        )

    @staticmethod
    def page_header(source_url: Optional[str]) -> List[Dict[str, Any]]:
        """Banner blocks sent once a new page id has been checkpointed."""
        return [migration_banner(source_url)] if source_url else []

    ###########################################################################
    # Selection
    ###########################################################################

    def select_projects(self, projects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        label = self.config["migration"].get("project_label") or ""
        exclude = self.config["migration"].get("exclude_label") or ""
        selected = []
        for project in projects:
            name = project.get("name") or ""
            if label and not re.search(re.escape(label), name, re.IGNORECASE):
                continue
            if exclude and re.search(re.escape(exclude), name, re.IGNORECASE):
                continue
            selected.append(project)
        return selected

    def select_tools(self, project: Dict[str, Any]) -> List[Dict[str, Any]]:
        only = self.config["migration"].get("tool_name")
        tools = []
        for tool in project.get("dock") or []:
            name = tool.get("name")
            if tool.get("enabled") is False:
                continue
            if only and name != only:
                self.log_message(f"[{name}] Skipping tool due to tool filter {only}", "DEBUG")
                continue
            if ContentType.from_dock(name) is None:
                self.log_message(f"[{name}] No converter for this tool; skipping", "DEBUG")
                continue
            tools.append(tool)
        return tools

    ###########################################################################
    # Levels
    ###########################################################################

    def migrate_project(self, project: Dict[str, Any]) -> bool:
        pid = project.get("id")
        name = project.get("name") or f"Project {pid}"
        self.log_message(f"=== Syncing project: {name} ({pid}) ===")
        record = self.progress.get_project(pid)
        project_done = bool(record and record.done)
        page_id = record.notion_page_id if record else None

        if project_done:
            self.log_message(f"Project '{name}' already done; only unfinished tools are retried")
            if not page_id:
                self.log_message(f"Project '{name}' is done but has no stored page; nothing to retry", "WARNING")
                return True
        else:
            self.progress.start_project(pid, name, page_id)
            if page_id:
                self.log_message(f"Reusing existing Notion project page {page_id} for '{name}'")
            else:
                self.run_context.check_shutdown(f"before creating project page '{name}'")
                page_id = self.notion.create_page(
                    name, self.config["notion"].get("root_page_id"), icon="📁", context=f"Project {name}",
                )
                self.progress.start_project(pid, name, page_id)
                self.notion.append_blocks(
                    page_id, self.page_header(project.get("app_url") or project.get("url")), context=f"Project {name}",
                )
                self.run_context.increment("project_pages")

        tools = self.select_tools(project)
        ok = True
        if tools:
            with ThreadPoolExecutor(max_workers=len(tools), thread_name_prefix=f"project-{pid}") as pool:
                futures = [pool.submit(self.migrate_tool, project, page_id, tool) for tool in tools]
                for future in futures:
                    if not future.result():
                        ok = False

        if ok and not project_done:
            self.progress.complete_project(pid)
            report_ok("PROJECT_MIGRATED", project, {"notion_page_id": page_id})
        return ok

    def migrate_tool(self, project: Dict[str, Any], project_page_id: str, tool: Dict[str, Any]) -> bool:
        pid = project.get("id")
        content_type = ContentType(tool["name"])
        title = tool.get("title") or content_type.value.replace("_", " ").capitalize()
        label = f"{content_type.emoji} {title}"
        try:
            record = self.progress.get_tool(pid, content_type.value)
            if record and record.done:
                self.log_message(f"[{content_type.value}] Skipping tool; already marked done")
                return True
            page_id = record.notion_page_id if record else None
            self.progress.start_tool(pid, content_type.value, page_id)
            if page_id:
                self.log_message(f"[{content_type.value}] Reusing tool page {page_id}")
            else:
                self.run_context.check_shutdown(f"before creating tool page {label}")
                page_id = self.notion.create_page(label, project_page_id, icon=content_type.emoji, context=f"{label} (Tool Page)")
                self.progress.start_tool(pid, content_type.value, page_id)
                self.notion.append_blocks(
                    page_id, self.page_header(tool.get("app_url") or tool.get("url")), context=f"{label} (Tool Page)",
                )

            self.run_context.check_shutdown(f"before handler {content_type.value}")
            items = content_type.fetch(self.source, tool)
            self.log_message(f"[{content_type.value}] {len(items)} items to process in '{title}'")
            ok = True
            for index, item in enumerate(items, start=1):
                self.run_context.check_shutdown(f"before item {index}/{len(items)} of {label}")
                if not self.migrate_item(project, content_type, page_id, item, index=index, total=len(items)):
                    ok = False
        except ShutdownRequested:
            raise
        except StructuralError as e:
            report_error("STRUCTURAL", {"id": f"{pid}:{content_type.value}", "title": label}, e)
            return False
        except Exception as e:
            report_error("TOOL_FAILED", {"id": f"{pid}:{content_type.value}", "title": label}, e)
            return False

        if ok:
            self.progress.complete_tool(pid, content_type.value)
            report_ok("TOOL_MIGRATED", {"id": f"{pid}:{content_type.value}", "title": label}, {"items": len(items)})
        return ok

    def migrate_item(
        self,
        project: Dict[str, Any],
        content_type: ContentType,
        tool_page_id: str,
        item: SourceItem,
        *,
        index: int = 1,
        total: int = 1,
    ) -> bool:
        pid = project.get("id")
        tool_name = content_type.value
        context = f"{content_type.emoji} {item.title} ({index}/{total})"
        entry = {"id": item.id, "title": item.title}
        record = self.progress.get_item(item.id, pid, tool_name)
        if record and record.done:
            self.log_message(f"[{tool_name}] Item {item.id} already done; skipping", "DEBUG")
            return True

        try:
            if record and record.notion_page_id:
                self._archive_stale(record.notion_page_id, context)
            self.progress.start_item(item.id, pid, tool_name, name=item.title)

            self.run_context.check_shutdown(f"before creating item page {context}")
            page_id = self.notion.create_page(item.title, tool_page_id, icon=content_type.emoji, context=context)
            self.progress.start_item(item.id, pid, tool_name, notion_page_id=page_id)

            builder = self.builder(page_id, context)
            blocks = self.page_header(item.url) + limit_nesting(content_type.convert(item, builder))
            self.notion.append_blocks(page_id, blocks, context=context)
            self.migrate_discussion(item, page_id, builder, context)

            self.progress.complete_item(item.id, pid, tool_name)
            self.run_context.increment("items_migrated")
            report_ok("ITEM_MIGRATED", entry, {"notion_page_id": page_id, "tool": tool_name})
            return True
        except ShutdownRequested:
            raise
        except BatchDeliveryError as e:
            self.log_message(f"{e} - first block: {e.first_block_preview}", "ERROR")
            report_error("BATCH_DELIVERY", entry, e)
        except StructuralError as e:
            report_error("STRUCTURAL", entry, e)
        except Exception as e:
            report_error("ITEM_FAILED", entry, e)
        self.run_context.increment("items_failed")
        return False

    def _archive_stale(self, page_id: str, context: str) -> None:
        self.log_message(f"Archiving stale page {page_id} left by an interrupted run ({context})")
        try:
            self.notion.archive_page(page_id, context=context)
        except HttpError as e:
            self.log_message(f"Could not archive stale page {page_id} ({context}): {e}", "WARNING")

    def migrate_discussion(self, item: SourceItem, page_id: str, builder: BlockBuilder, context: str) -> None:
        if not item.discussion_url:
            return
        comments = self.source.load_json(item.discussion_url)
        comments = comments if isinstance(comments, list) else []
        if not comments:
            return
        self.log_message(f"Fetched {len(comments)} {item.discussion_label.lower()} for {context}")
        header = callout(f"💬 {item.discussion_label} ({len(comments)})", emoji="💬")
        results = self.notion.append_blocks(page_id, [header], context=f"{context} - {item.discussion_label} wrapper")
        wrapper_id = (results[0] if results else {}).get("id")
        if not wrapper_id:
            raise StructuralError(f"{item.discussion_label} wrapper was not created ({context})")
        blocks = render_discussion(
            comments,
            lambda comment: convert_comment(comment, builder),
            workers=int(self.config["migration"]["comment_workers"]),
            context=context,
        )
        self.notion.append_blocks(wrapper_id, limit_nesting(blocks), context=f"{context} - {item.discussion_label}")

    ###########################################################################
    # Run
    ###########################################################################

    def run(self) -> Dict[str, Any]:
        """
        Migrate every selected project and return the final summary.

        Project failures are reported and never stop the other projects;
        a shutdown request stops scheduling new work and still writes the
        summary and reports.
        """
        migration = self.config["migration"]
        self.log_message("Runtime configuration:")
        self.log_message(f"  account_id = {self.config['basecamp'].get('account_id')}")
        self.log_message(f"  project_label = {migration.get('project_label')!r}")
        self.log_message(f"  tool_name = {migration.get('tool_name')!r}")
        self.log_message(f"  include_archived = {migration.get('include_archived')}")
        self.log_message(f"  dry_run = {self.dry_run}")
        try:
            projects = self.select_projects(self.source.projects(include_archived=bool(migration.get("include_archived"))))
            if not projects:
                self.log_message(f"No matching projects found with label {migration.get('project_label')!r}", "WARNING")
            else:
                self.log_message(f"Starting sync for {len(projects)} matched project(s)...")
                with ThreadPoolExecutor(max_workers=max(1, int(migration["project_workers"])), thread_name_prefix="project") as pool:
                    futures = [(project, pool.submit(self._run_project, project)) for project in projects]
                    for project, future in futures:
                        future.result()
        except ShutdownRequested as e:
            self.log_message(f"Migration stopped: {e}", "WARNING")
        return self.finish()

    def _run_project(self, project: Dict[str, Any]) -> bool:
        if self.run_context.shutdown_requested:
            return False
        try:
            return self.migrate_project(project)
        except ShutdownRequested as e:
            self.log_message(f"Project '{project.get('name')}' interrupted: {e}", "WARNING")
        except StructuralError as e:
            report_error("STRUCTURAL", project, e)
        except Exception as e:
            report_error("PROJECT_FAILED", project, e)
        return False

    def finish(self) -> Dict[str, Any]:
        summary = self.progress.log_summary()
        counters = self.run_context.counters()
        for name, value in sorted(counters.items()):
            self.log_message(f"  {name}: {value}")
        uploads = self.run_context.manual_uploads()
        if uploads:
            path = generate_manual_uploads_csv(uploads)
            self.log_message(f"Manual upload list generated with {len(uploads)} entries: {path}")
        try:
            self.progress.export_dump(self.config["migration"]["dump_dir"])
        except OSError as e:
            self.log_message(f"Failed to export progress dump: {e}", "ERROR")
        if self.browser is not None:
            self.browser.close()
        return {"progress": summary, "counters": counters, "manual_uploads": len(uploads)}

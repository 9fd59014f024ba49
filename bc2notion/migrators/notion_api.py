"""
Notion API helper functions for the Basecamp → Notion migration.

This module implements the destination side of the pipeline.  Pages are
created with ``POST /v1/pages`` and receive their content exclusively
through ``PATCH /v1/blocks/{id}/children``: blocks are sanitized, packed
into batches that respect Notion's count, size and children limits and
sent in order.  Stale item pages left behind by an interrupted run are
archived with ``PATCH /v1/pages/{id}``.

Every call goes through :class:`~bc2notion.migrators.http_client.ResilientHttpClient`
so rate limits, server errors and shutdown requests are handled in one
place.  When ``dry_run`` is enabled no request is sent and fake ids are
returned.

Usage example::

    client = NotionClient({"api_key": "...", "base_url": "https://api.notion.com/v1"})
    page_id = client.create_page("📝 Announcements", root_page_id, icon="📝")
    client.append_blocks(page_id, convert_html_to_blocks(html))
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bc2notion.migrators.batcher import BatchDeliveryError, plan_batches
from bc2notion.migrators.http_client import HttpError, RateLimiter, ResilientHttpClient, RetryPolicy
from bc2notion.parsers.notion_schema import (
    MAX_BLOCKS_PER_REQUEST,
    MAX_CHILDREN_PER_BLOCK,
    MAX_PAYLOAD_BYTES,
    MAX_TEXT_LENGTH,
    callout,
    text_item,
)
from bc2notion.parsers.rich_text import valid_link
from bc2notion.parsers.sanitizer import sanitize_blocks
from bc2notion.utils.logs import log_message

DEFAULT_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

_UUID_RE = re.compile(r"[0-9a-f]{32,}", re.IGNORECASE)


class StructuralError(ValueError):
    """A required destination container is missing."""


def format_uuid(value: Optional[str]) -> Optional[str]:
    """
    Normalize a Notion id (dashed, undashed or embedded in a page URL) to
    the dashed 8-4-4-4-12 form.  Returns ``None`` when no id is found.
    """
    if not value:
        return None
    runs = _UUID_RE.findall(value.replace("-", ""))
    if not runs:
        return None
    # the id ends the URL; a page title may bleed hex letters into the run
    raw = runs[-1][-32:].lower()
    return f"{raw[:8]}-{raw[8:12]}-{raw[12:16]}-{raw[16:20]}-{raw[20:]}"


def basecamp_web_url(url: Optional[str]) -> Optional[str]:
    """API URL of a Basecamp record → the URL a person would open."""
    if not url:
        return None
    return re.sub(r"\.json$", "", url.replace("basecampapi.com", "basecamp.com"))


def migration_banner(source_url: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Yellow callout placed at the top of every migrated page."""
    now = now or datetime.now(timezone.utc)
    items = [text_item(f"Migrated from Basecamp on {now.strftime('%d/%m/%Y')} at {now.strftime('%H:%M')} UTC")]
    web_url = basecamp_web_url(source_url)
    if web_url:
        items.append(text_item(" – 🔗 "))
        items.append(text_item(web_url[:MAX_TEXT_LENGTH], link=web_url if valid_link(web_url) else None))
    return callout(items, emoji="🏕️", color="yellow_background")


def notion_headers(cfg: Dict[str, Any]) -> Dict[str, str]:
    """
    Construct the default headers required for Notion API requests.

    :param cfg: A configuration dictionary with the ``api_key``.
    :return: A dictionary of headers including Authorization.
    """
    return {
        "Authorization": f"Bearer {cfg.get('api_key', '')}",
        "Notion-Version": cfg.get("version") or NOTION_VERSION,
    }


class NotionClient:
    def __init__(
        self,
        cfg: Dict[str, Any],
        *,
        http: Optional[ResilientHttpClient] = None,
        run_context: Any = None,
        policy: Optional[RetryPolicy] = None,
        limits: Optional[Dict[str, int]] = None,
        dry_run: bool = False,
    ) -> None:
        self.cfg = cfg
        self.base_url = (cfg.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        self.run_context = run_context
        self.dry_run = dry_run
        self.http = http or ResilientHttpClient(
            policy=policy,
            run_context=run_context,
            limiter=RateLimiter(int(cfg.get("rpm") or 180)),
            headers=notion_headers(cfg),
        )
        limits = limits or {}
        self.max_blocks = int(limits.get("max_blocks_per_request") or MAX_BLOCKS_PER_REQUEST)
        self.max_bytes = int(limits.get("max_payload_bytes") or MAX_PAYLOAD_BYTES)
        self.max_children = int(limits.get("max_children_per_block") or MAX_CHILDREN_PER_BLOCK)

    @property
    def uploads_enabled(self) -> bool:
        return bool(self.cfg.get("api_key")) and not self.dry_run

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _fake_id(self) -> str:
        return str(uuid.uuid4())

    ###########################################################################
    # Pages
    ###########################################################################

    def create_page(
        self,
        title: str,
        parent_id: Optional[str],
        *,
        icon: Optional[str] = None,
        context: str = "",
    ) -> str:
        """
        Create an empty child page under ``parent_id``.

        Content is never sent with the page.  Callers checkpoint the
        returned id first and then fill the page through
        :meth:`append_blocks`, so a failed append leaves a page that the
        next run can find and archive.

        :param title: Page title; truncated to Notion's text limit.
        :param parent_id: Id of the parent page.  Required.
        :param icon: Optional emoji icon.
        :param context: Human readable description used in logs.
        :return: The new page id.
        :raises StructuralError: if ``parent_id`` is missing.
        """
        parent = format_uuid(parent_id) or parent_id
        if not parent:
            raise StructuralError(f"Cannot create page '{title}' without a parent ({context})")
        title = (title or "Untitled").strip()[:MAX_TEXT_LENGTH] or "Untitled"
        body: Dict[str, Any] = {
            "parent": {"type": "page_id", "page_id": parent},
            "properties": {"title": {"title": [text_item(title)]}},
        }
        if icon:
            body["icon"] = {"type": "emoji", "emoji": icon}

        if self.dry_run:
            page_id = self._fake_id()
            log_message(f"Dry-run: would create page '{title}' under {parent} ({context})")
        else:
            resp = self.http.post_json(self.url("pages"), body, context=context or title)
            page_id = resp.get("id")
            if not page_id:
                raise StructuralError(f"Page creation for '{title}' did not return an id ({context})")
            log_message(f"[Notion] Created page {page_id} '{title}' ({context})")
        return page_id

    def archive_page(self, page_id: str, *, context: str = "") -> None:
        if self.dry_run:
            log_message(f"Dry-run: would archive page {page_id} ({context})")
            return
        self.http.patch_json(self.url(f"pages/{page_id}"), {"archived": True}, context=context or "archive page")
        log_message(f"[Notion] Archived stale page {page_id} ({context})")

    ###########################################################################
    # Blocks
    ###########################################################################

    def append_blocks(self, container_id: Optional[str], blocks: List[Dict[str, Any]], *, context: str = "") -> List[Dict[str, Any]]:
        """
        Append ``blocks`` to ``container_id`` in as many ordered batches as
        Notion's limits require.

        :return: The ``results`` of every append call, in order.
        :raises StructuralError: if ``container_id`` is missing.
        :raises BatchDeliveryError: when a batch cannot be delivered.
        """
        if not container_id:
            raise StructuralError(f"Cannot append blocks without a container id ({context})")
        clean = sanitize_blocks(blocks, context)
        if not clean:
            log_message(f"[Notion] Nothing to append to {container_id} ({context})", "DEBUG")
            return []
        batches = plan_batches(
            clean,
            target_id=container_id,
            max_blocks=self.max_blocks,
            max_bytes=self.max_bytes,
            max_children=self.max_children,
        )
        results: List[Dict[str, Any]] = []
        for batch in batches:
            label = f"{context} - batch {batch.index + 1}/{len(batches)}"
            log_message(
                f"[Notion] Appending batch {batch.index + 1}/{len(batches)} "
                f"({batch.size} blocks, ~{batch.estimated_bytes} bytes) to {container_id} ({context})",
                "DEBUG",
            )
            if self.dry_run:
                results.extend({"id": self._fake_id(), "type": b.get("type")} for b in batch.blocks)
                continue
            try:
                resp = self.http.patch_json(
                    self.url(f"blocks/{container_id}/children"), {"children": batch.blocks}, context=label
                )
            except HttpError as e:
                raise BatchDeliveryError(batch, e, context) from e
            results.extend(resp.get("results") or [])
        return results

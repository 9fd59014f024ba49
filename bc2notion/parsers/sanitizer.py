"""
Last line of defence before blocks are sent to Notion.

:func:`sanitize_blocks` returns a deep copy of its input keeping only
blocks that Notion will accept: a known block type with a non-empty
payload.  Rich-text blocks lose their empty text items and are dropped
when nothing (not even a link) remains.  The same rule is applied to
nested children.  Every drop is logged with its position so that the
offending source can be found.  Running it twice gives the same result.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Optional

from bc2notion.parsers.notion_schema import BLOCK_TYPES, MEDIA_TYPES, RICH_TEXT_TYPES
from bc2notion.utils.logs import log_message, preview

Block = Dict[str, Any]


def _item_text(item: Any) -> str:
    if not isinstance(item, dict):
        return ""
    return str((item.get("text") or {}).get("content") or "")


def _item_link(item: Any) -> str:
    if not isinstance(item, dict):
        return ""
    link = (item.get("text") or {}).get("link") or {}
    return str(link.get("url") or "") if isinstance(link, dict) else ""


def _drop(path: str, reason: str, b: Any, context: Optional[str]) -> None:
    try:
        shown = json.dumps(b, ensure_ascii=False)
    except (TypeError, ValueError):
        shown = repr(b)
    suffix = f" ({context})" if context else ""
    log_message(f"[Sanitizer] Dropped block {path}: {reason} - {preview(shown, 300)}{suffix}", "WARNING")


def _media_ok(payload: Dict[str, Any]) -> bool:
    if payload.get("type") == "file_upload":
        return bool((payload.get("file_upload") or {}).get("id"))
    return bool((payload.get("external") or {}).get("url"))


def _clean(b: Any, path: str, context: Optional[str]) -> Optional[Block]:
    if not isinstance(b, dict):
        _drop(path, "not a block object", b, context)
        return None
    btype = b.get("type")
    if btype not in BLOCK_TYPES:
        _drop(path, f"unknown type {btype!r}", b, context)
        return None
    payload = b.get(btype)
    if not isinstance(payload, dict):
        _drop(path, f"missing {btype} payload", b, context)
        return None

    if btype in MEDIA_TYPES and not _media_ok(payload):
        _drop(path, "media without url or file upload", b, context)
        return None
    if btype == "embed" and not payload.get("url"):
        _drop(path, "embed without url", b, context)
        return None

    if btype in RICH_TEXT_TYPES:
        items = payload.get("rich_text")
        if not isinstance(items, list):
            _drop(path, "rich_text is not a list", b, context)
            return None
        kept = [i for i in items if _item_text(i).strip() or _item_link(i).strip()]
        if not kept:
            _drop(path, "empty rich text", b, context)
            return None
        payload["rich_text"] = kept

    if "children" in payload:
        children = sanitize_blocks(payload.get("children") or [], context, path=f"{path}>", _copy=False)
        if children:
            payload["children"] = children
        else:
            payload.pop("children")
    return b


def sanitize_blocks(
    blocks: List[Any],
    context: Optional[str] = None,
    *,
    path: str = "",
    _copy: bool = True,
) -> List[Block]:
    """Return the valid-only subset of ``blocks`` (recursively), preserving order."""
    source = copy.deepcopy(blocks) if _copy else blocks
    out: List[Block] = []
    for idx, b in enumerate(source or []):
        cleaned = _clean(b, f"{path}[{idx}]", context)
        if cleaned is not None:
            out.append(cleaned)
    if len(out) != len(source or []):
        log_message(
            f"[Sanitizer] Kept {len(out)} of {len(source or [])} blocks at {path or 'root'}"
            + (f" ({context})" if context else ""),
            "DEBUG",
        )
    return out

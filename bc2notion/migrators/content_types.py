"""
Basecamp tools ("dock" entries) supported by the migration.

:class:`ContentType` is the closed set of tool kinds.  Each member knows
how to list its items from the Basecamp API (:meth:`ContentType.fetch`)
and how to convert one item into Notion blocks
(:meth:`ContentType.convert`).  The orchestrator creates one Notion page
per item, so every item is its own checkpoint.

Comments (and questionnaire answers) are converted in a small thread
pool by :func:`render_discussion`; results land in pre-sized slots so
the output order matches the source order.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from bc2notion.extractors.basecamp_extractor import collection_url
from bc2notion.parsers.notion_schema import MAX_TEXT_LENGTH, callout, divider, heading, paragraph, text_item, to_do
from bc2notion.parsers.rich_text import valid_link
from bc2notion.utils.logs import log_message, preview

Block = Dict[str, Any]


class SourceItem(BaseModel):
    """One Basecamp record that becomes one Notion page."""

    id: str
    title: str
    record: Dict[str, Any] = Field(default_factory=dict)
    url: Optional[str] = None
    discussion_url: Optional[str] = None
    discussion_label: str = "Comments"


def format_timestamp(value: Optional[str]) -> str:
    if not value:
        return "Unknown date"
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return parsed.strftime("%d/%m/%Y %H:%M")


def _date(value: Optional[str]) -> str:
    return (value or "")[:10] or "unknown-date"


def _body(record: Dict[str, Any]) -> str:
    return record.get("content") or record.get("description") or ""


def _creator(record: Dict[str, Any]) -> str:
    return ((record.get("creator") or {}).get("name")) or "Unknown"


def link_line(label: str, url: Optional[str]) -> Optional[Block]:
    """``🔗 <url>`` paragraph, linked when the URL is valid."""
    if not url:
        return None
    link = url if valid_link(url) else None
    return paragraph([text_item(f"{label} "), text_item(url[:MAX_TEXT_LENGTH], link=link)])


def metadata_callout(record: Dict[str, Any], emoji: str = "🖊️", verb: str = "Created by") -> Block:
    return callout(f"👤 {verb} {_creator(record)} · 🕗 {format_timestamp(record.get('created_at'))}", emoji=emoji)


class ContentType(str, Enum):
    MESSAGE_BOARD = "message_board"
    TODOSET = "todoset"
    VAULT = "vault"
    CHAT = "chat"
    SCHEDULE = "schedule"
    QUESTIONNAIRE = "questionnaire"
    INBOX = "inbox"
    KANBAN_BOARD = "kanban_board"

    @classmethod
    def from_dock(cls, name: Optional[str]) -> Optional["ContentType"]:
        try:
            return cls(name)
        except ValueError:
            return None

    @property
    def emoji(self) -> str:
        return {
            ContentType.MESSAGE_BOARD: "📝",
            ContentType.TODOSET: "✅",
            ContentType.VAULT: "🔒",
            ContentType.CHAT: "💬",
            ContentType.SCHEDULE: "📅",
            ContentType.QUESTIONNAIRE: "❓",
            ContentType.INBOX: "📥",
            ContentType.KANBAN_BOARD: "🗂️",
        }[self]

    # --- source side ---

    def fetch(self, source: Any, tool: Dict[str, Any]) -> List[SourceItem]:
        """List the items of ``tool`` as they should appear in Notion."""
        url = tool.get("url") or ""
        if self is ContentType.MESSAGE_BOARD:
            records = sorted(source.collection(url, "/messages.json"), key=lambda r: r.get("created_at") or "")
            return [self._item(r, f"{_date(r.get('created_at'))} {(r.get('subject') or r.get('title') or 'Untitled').strip()}") for r in records]
        if self is ContentType.TODOSET:
            items: List[SourceItem] = []
            for todolist in source.collection(url, "/todolists.json"):
                todos_url = todolist.get("todos_url") or collection_url(todolist.get("url") or "", "/todos.json")
                todos = list(source.load_json(todos_url) or [])
                todos += list(source.load_json(f"{todos_url}?completed=true") or [])
                for todo in todos:
                    items.append(self._item(todo, f"{todolist.get('title') or 'To-dos'} · {todo.get('title') or 'Untitled'}"))
            return items
        if self is ContentType.VAULT:
            return [self._item(r, r.get("title") or "Untitled") for r in source.collection(url, "/documents.json")]
        if self is ContentType.CHAT:
            return self._chat_days(tool, source.collection(url, "/lines.json"))
        if self is ContentType.SCHEDULE:
            return [self._item(r, f"{_date(r.get('starts_at'))} {r.get('summary') or r.get('title') or 'Untitled'}")
                    for r in source.collection(url, "/entries.json")]
        if self is ContentType.QUESTIONNAIRE:
            items = []
            for r in source.collection(url, "/questions.json"):
                item = self._item(r, r.get("title") or r.get("subject") or "Untitled")
                item.discussion_url = r.get("answers_url") or collection_url(r.get("url") or "", "/answers.json")
                item.discussion_label = "Answers"
                items.append(item)
            return items
        if self is ContentType.INBOX:
            return [self._item(r, r.get("subject") or r.get("title") or "Untitled") for r in source.collection(url, "/forwards.json")]
        if self is ContentType.KANBAN_BOARD:
            items = []
            for column in source.collection(url, "/columns.json"):
                cards_url = column.get("cards_url") or collection_url(column.get("url") or "", "/cards.json")
                for card in source.load_json(cards_url) or []:
                    items.append(self._item(card, f"{column.get('title') or column.get('name') or 'Column'} · {card.get('title') or 'Untitled'}"))
            return items
        raise ValueError(f"unsupported content type {self.value}")

    def _item(self, record: Dict[str, Any], title: str) -> SourceItem:
        discussion = record.get("comments_url") if int(record.get("comments_count") or 0) > 0 else None
        return SourceItem(
            id=str(record.get("id")),
            title=title,
            record=record,
            url=record.get("app_url") or record.get("url"),
            discussion_url=discussion,
        )

    def _chat_days(self, tool: Dict[str, Any], lines: List[Dict[str, Any]]) -> List[SourceItem]:
        days: Dict[str, List[Dict[str, Any]]] = {}
        for line in sorted(lines, key=lambda r: r.get("created_at") or ""):
            if (line.get("content") or "").strip():
                days.setdefault(_date(line.get("created_at")), []).append(line)
        return [
            SourceItem(
                id=f"{tool.get('id')}:{day}",
                title=f"Chat {day}",
                record={"lines": day_lines, "created_at": day_lines[0].get("created_at")},
                url=day_lines[0].get("app_url") or tool.get("url"),
            )
            for day, day_lines in days.items()
        ]

    # --- destination side ---

    def convert(self, item: SourceItem, builder: Any) -> List[Block]:
        """Blocks for the page of ``item`` (discussion excluded)."""
        r = item.record
        blocks: List[Optional[Block]] = []
        if self is ContentType.CHAT:
            for line in r.get("lines") or []:
                blocks.append(callout(f"{_creator(line)} ({format_timestamp(line.get('created_at'))}):", emoji="💬"))
                blocks.extend(builder.build(line.get("content")))
                blocks.append(divider())
            return [b for b in blocks if b]

        if self is ContentType.TODOSET:
            blocks.append(to_do((r.get("title") or "Untitled")[:MAX_TEXT_LENGTH], checked=bool(r.get("completed"))))
            blocks.append(metadata_callout(r, emoji="📝"))
            if r.get("due_on"):
                blocks.append(callout(f"📆 Due {r['due_on']}", emoji="📆"))
        elif self is ContentType.KANBAN_BOARD:
            blocks.append(callout((r.get("title") or "Untitled")[:MAX_TEXT_LENGTH], emoji=self.emoji))
            blocks.append(metadata_callout(r))
        else:
            title = r.get("subject") or r.get("title") or r.get("summary") or item.title
            blocks.append(heading(3, f"{self.emoji} {title}"[:MAX_TEXT_LENGTH]))
            blocks.append(metadata_callout(r, verb="Author:" if self is ContentType.MESSAGE_BOARD else "Created by"))

        if self is ContentType.SCHEDULE and r.get("starts_at"):
            ends = format_timestamp(r.get("ends_at")) if r.get("ends_at") else "Unknown end"
            blocks.append(callout(f"🕒 {format_timestamp(r.get('starts_at'))} → {ends}", emoji="📅"))
        if self is ContentType.INBOX and r.get("from"):
            blocks.append(callout(f"✉️ From {r['from']}", emoji="📥"))

        blocks.extend(builder.build(_body(r)))
        if self is ContentType.SCHEDULE and (r.get("location") or "").strip():
            blocks.append(paragraph(f"📍 Location: {r['location'].strip()}"[:MAX_TEXT_LENGTH]))
        blocks.append(link_line("🔗", item.url))
        return [b for b in blocks if b]


def convert_comment(comment: Dict[str, Any], builder: Any) -> List[Block]:
    blocks = [callout(f"👤 {_creator(comment)} · 🕗 {format_timestamp(comment.get('created_at'))}", emoji="🗨️")]
    blocks.extend(builder.build(comment.get("content")))
    return blocks


def render_discussion(
    comments: List[Dict[str, Any]],
    convert: Callable[[Dict[str, Any]], List[Block]],
    *,
    workers: int = 4,
    context: str = "",
) -> List[Block]:
    """
    Convert ``comments`` concurrently and join them with dividers, keeping
    the source order.
    """
    if not comments:
        return []
    slots: List[List[Block]] = [[] for _ in comments]

    def run(index: int) -> None:
        try:
            slots[index] = convert(comments[index])
        except Exception as e:
            log_message(f"Failed to convert comment {index + 1} ({context}): {e} - {preview(comments[index], 200)}", "ERROR")
            raise

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(comments)))) as pool:
        for future in [pool.submit(run, i) for i in range(len(comments))]:
            future.result()

    out: List[Block] = []
    for i, blocks in enumerate(slots):
        out.extend(blocks)
        if i < len(slots) - 1:
            out.append(divider())
    return out

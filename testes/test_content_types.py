import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("bs4")

from bc2notion.migrators.content_types import (
    ContentType,
    SourceItem,
    convert_comment,
    format_timestamp,
    render_discussion,
)
from bc2notion.parsers.notion_local import BlockBuilder
from bc2notion.parsers.notion_schema import paragraph, plain_text
from bc2notion.parsers.sanitizer import sanitize_blocks


class FakeSource:
    def __init__(self, collections=None, urls=None):
        self.collections = collections or {}
        self.urls = urls or {}

    def collection(self, url, suffix):
        return list(self.collections.get(suffix, []))

    def load_json(self, url):
        return self.urls.get(url, [])


def record(i, **extra):
    base = {
        "id": i,
        "title": f"Title {i}",
        "content": f"<p>Body {i}</p>",
        "created_at": f"2024-01-0{i}T10:00:00Z",
        "creator": {"name": "Ana"},
        "app_url": f"https://3.basecamp.com/1/buckets/2/recordings/{i}",
        "comments_count": 0,
    }
    base.update(extra)
    return base


def test_dock_names_map_to_members():
    assert ContentType.from_dock("message_board") is ContentType.MESSAGE_BOARD
    assert ContentType.from_dock("doors") is None
    assert ContentType.from_dock(None) is None
    assert ContentType.VAULT.emoji == "🔒"


def test_messages_are_sorted_and_titled_by_date():
    source = FakeSource({"/messages.json": [
        record(3, subject="Later", comments_count=2, comments_url="https://x/c.json"),
        record(1, subject="First"),
    ]})
    items = ContentType.MESSAGE_BOARD.fetch(source, {"url": "https://x/message_boards/9.json"})
    assert [i.title for i in items] == ["2024-01-01 First", "2024-01-03 Later"]
    assert items[0].discussion_url is None
    assert items[1].discussion_url == "https://x/c.json"
    assert items[0].id == "1"


def test_todos_include_completed_ones():
    todos_url = "https://x/todolists/5/todos.json"
    source = FakeSource(
        {"/todolists.json": [{"title": "Launch", "todos_url": todos_url}]},
        {todos_url: [record(1)], f"{todos_url}?completed=true": [record(2, completed=True)]},
    )
    items = ContentType.TODOSET.fetch(source, {"url": "https://x/todosets/4.json"})
    assert [i.title for i in items] == ["Launch · Title 1", "Launch · Title 2"]


def test_chat_lines_are_grouped_per_day():
    lines = [
        record(2, content="second day"),
        record(1, content="first"),
        {**record(1, content="same day"), "id": 10, "created_at": "2024-01-01T18:00:00Z"},
        record(3, content="   "),
    ]
    items = ContentType.CHAT.fetch(FakeSource({"/lines.json": lines}), {"id": 77, "url": "https://x/chats/77.json"})
    assert [i.id for i in items] == ["77:2024-01-01", "77:2024-01-02"]
    assert len(items[0].record["lines"]) == 2


def test_questionnaire_answers_are_the_discussion():
    source = FakeSource({"/questions.json": [record(1, answers_url="https://x/q/1/answers.json")]})
    item = ContentType.QUESTIONNAIRE.fetch(source, {"url": "https://x/questionnaires/3.json"})[0]
    assert item.discussion_url == "https://x/q/1/answers.json"
    assert item.discussion_label == "Answers"


def test_kanban_cards_are_listed_per_column():
    source = FakeSource(
        {"/columns.json": [{"title": "Doing", "cards_url": "https://x/cards.json"}]},
        {"https://x/cards.json": [record(4)]},
    )
    items = ContentType.KANBAN_BOARD.fetch(source, {"url": "https://x/card_tables/1.json"})
    assert [i.title for i in items] == ["Doing · Title 4"]


@pytest.mark.parametrize("content_type", list(ContentType))
def test_every_content_type_converts(content_type):
    r = record(1, starts_at="2024-01-01T10:00:00Z", ends_at="2024-01-01T11:00:00Z",
               location="Room 1", subject="Subject", due_on="2024-02-01")
    if content_type is ContentType.CHAT:
        item = SourceItem(id="77:2024-01-01", title="Chat 2024-01-01", record={"lines": [r]})
    else:
        item = SourceItem(id="1", title="Item", record=r, url=r["app_url"])
    blocks = content_type.convert(item, BlockBuilder())
    assert blocks
    assert sanitize_blocks(blocks) == blocks
    assert any("Body 1" in plain_text(b[b["type"]].get("rich_text") or []) for b in blocks)


def test_todo_renders_checkbox_state():
    item = SourceItem(id="1", title="t", record=record(1, completed=True))
    blocks = ContentType.TODOSET.convert(item, BlockBuilder())
    assert blocks[0]["type"] == "to_do" and blocks[0]["to_do"]["checked"] is True


def test_discussion_keeps_order_and_separates_with_dividers():
    comments = [{"content": f"c{i}"} for i in range(5)]
    out = render_discussion(comments, lambda c: [paragraph(c["content"])], workers=3)
    assert [b["type"] for b in out] == ["paragraph", "divider"] * 4 + ["paragraph"]
    assert [plain_text(b["paragraph"]["rich_text"]) for b in out if b["type"] == "paragraph"] == [
        "c0", "c1", "c2", "c3", "c4"
    ]
    assert render_discussion([], lambda c: []) == []


def test_comment_starts_with_author_callout():
    blocks = convert_comment(record(1), BlockBuilder())
    assert blocks[0]["type"] == "callout"
    assert "Ana" in plain_text(blocks[0]["callout"]["rich_text"])
    assert blocks[1]["type"] == "paragraph"


def test_timestamps():
    assert format_timestamp("2024-03-05T14:07:00Z") == "05/03/2024 14:07"
    assert format_timestamp(None) == "Unknown date"
    assert format_timestamp("yesterday") == "yesterday"

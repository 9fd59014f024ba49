import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from datetime import datetime, timezone

import pytest
pytest.importorskip("requests")

from bc2notion.migrators.batcher import BatchDeliveryError
from bc2notion.migrators.http_client import NonRetriableClientError
from bc2notion.migrators.notion_api import (
    NotionClient,
    StructuralError,
    basecamp_web_url,
    format_uuid,
    migration_banner,
)
from bc2notion.parsers.notion_schema import paragraph, plain_text

ROOT = "0123456789abcdef0123456789abcdef"


class FakeHttp:
    def __init__(self, fail_patch_on_call=None):
        self.calls = []
        self.fail_patch_on_call = fail_patch_on_call
        self.patches = 0

    def post_json(self, url, payload, **kwargs):
        self.calls.append(("POST", url, payload))
        return {"id": "new-page"}

    def patch_json(self, url, payload, **kwargs):
        self.patches += 1
        self.calls.append(("PATCH", url, payload))
        if self.fail_patch_on_call == self.patches:
            raise NonRetriableClientError("400 validation_error", status=400, target=url)
        return {"results": [{"id": f"blk-{i}", "type": b.get("type")} for i, b in enumerate(payload.get("children", []))]}


def client(http, **kwargs):
    return NotionClient({"api_key": "secret"}, http=http, **kwargs)


def test_create_page_sends_no_content():
    http = FakeHttp()
    page_id = client(http).create_page("Hello", ROOT, icon="📝")
    assert page_id == "new-page"
    assert len(http.calls) == 1
    method, url, body = http.calls[0]
    assert (method, url) == ("POST", "https://api.notion.com/v1/pages")
    assert body["parent"] == {"type": "page_id", "page_id": format_uuid(ROOT)}
    assert body["icon"] == {"type": "emoji", "emoji": "📝"}
    assert "children" not in body


def test_banner_and_children_go_through_patch():
    http = FakeHttp()
    c = client(http)
    banner = migration_banner("https://3.basecampapi.com/1/buckets/2/messages/3.json")
    c.append_blocks("new-page", [banner, paragraph("body")])
    method, url, payload = http.calls[0]
    assert (method, url) == ("PATCH", "https://api.notion.com/v1/blocks/new-page/children")
    first, content = payload["children"]
    assert first["callout"]["icon"]["emoji"] == "🏕️"
    assert "https://3.basecamp.com/1/buckets/2/messages/3" in plain_text(first["callout"]["rich_text"])
    assert plain_text(content["paragraph"]["rich_text"]) == "body"


def test_create_page_requires_parent():
    with pytest.raises(StructuralError):
        client(FakeHttp()).create_page("Orphan", None)


def test_long_titles_are_truncated():
    http = FakeHttp()
    client(http).create_page("t" * 2500, ROOT)
    title = http.calls[0][2]["properties"]["title"]["title"][0]["text"]["content"]
    assert len(title) == 2000


def test_append_blocks_sends_ordered_batches():
    http = FakeHttp()
    blocks = [paragraph(str(i)) for i in range(230)] + [paragraph("")]
    results = client(http).append_blocks("container", blocks, context="item")
    assert [len(c[2]["children"]) for c in http.calls] == [100, 100, 30]
    assert all(c[0] == "PATCH" for c in http.calls)
    assert len(results) == 230


def test_batch_failure_carries_batch_details():
    http = FakeHttp(fail_patch_on_call=2)
    blocks = [paragraph(str(i)) for i in range(150)]
    with pytest.raises(BatchDeliveryError) as exc:
        client(http).append_blocks("container", blocks, context="item")
    assert exc.value.batch.index == 1
    assert '"100"' in exc.value.first_block_preview


def test_append_requires_container():
    with pytest.raises(StructuralError):
        client(FakeHttp()).append_blocks(None, [paragraph("x")])


def test_archive_page():
    http = FakeHttp()
    client(http).archive_page("stale")
    assert http.calls == [("PATCH", "https://api.notion.com/v1/pages/stale", {"archived": True})]


def test_dry_run_sends_nothing():
    http = FakeHttp()
    c = client(http, dry_run=True)
    page_id = c.create_page("Hello", ROOT)
    results = c.append_blocks(page_id, [paragraph("a"), paragraph("b")])
    assert http.calls == [] and len(results) == 2
    assert not c.uploads_enabled


def test_helpers():
    assert format_uuid(f"https://www.notion.so/Page-{ROOT}") == "01234567-89ab-cdef-0123-456789abcdef"
    assert format_uuid("nothing") is None
    assert basecamp_web_url("https://3.basecampapi.com/1/buckets/2/todos/3.json") == "https://3.basecamp.com/1/buckets/2/todos/3"
    banner = migration_banner(None, now=datetime(2024, 5, 6, 7, 8, tzinfo=timezone.utc))
    assert plain_text(banner["callout"]["rich_text"]) == "Migrated from Basecamp on 06/05/2024 at 07:08 UTC"
    assert banner["callout"]["color"] == "yellow_background"

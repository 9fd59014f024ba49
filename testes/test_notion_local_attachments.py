import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("bs4")

from bc2notion.models.asset import AssetReference, AssetState, UploadOutcome
from bc2notion.parsers.notion_local import BlockBuilder
from bc2notion.parsers.notion_schema import plain_text
from bc2notion.utils.run_context import RunContext

DOWNLOAD_URL = "https://storage.3.basecamp.com/123/blobs/abc-1/download/photo.png"
ATTACHMENT_HTML = (
    f'<bc-attachment content-type="image/png" filename="photo.png" href="{DOWNLOAD_URL}">'
    '<figure><img src="https://preview.3.basecamp.com/123/blobs/abc-1/previews/full">'
    "<figcaption>Team photo</figcaption></figure></bc-attachment>"
)


class FakeResolver:
    def __init__(self, ref):
        self.ref = ref
        self.calls = []

    def resolve(self, url, *, page_id=None, context="", filename=None):
        self.calls.append((url, page_id, filename))
        return self.ref


def build(html, resolver, run_context=None):
    return BlockBuilder(
        asset_resolver=resolver, run_context=run_context, page_id="page-1", context="test"
    ).build(html)


def test_uploaded_attachment_becomes_file_upload_block_with_explicit_caption():
    ref = AssetReference(
        raw_url=DOWNLOAD_URL,
        state=AssetState.NEEDS_AUTH,
        upload=UploadOutcome(success=True, file_upload_id="fu-1", mime_type="image/png", filename="photo.png"),
    )
    resolver = FakeResolver(ref)
    blocks = build(ATTACHMENT_HTML, resolver)
    assert resolver.calls == [(DOWNLOAD_URL, "page-1", "photo.png")]
    assert len(blocks) == 1
    image = blocks[0]["image"]
    assert image["type"] == "file_upload"
    assert image["file_upload"] == {"id": "fu-1"}
    # explicit caption wins over the filename and is rendered once
    assert plain_text(image["caption"]) == "Team photo"


def test_public_resolution_uses_external_url():
    ref = AssetReference(
        raw_url="https://example.com/files/report.pdf",
        resolved_url="https://cdn.example.com/report.pdf",
        state=AssetState.PUBLIC,
    )
    blocks = build('<bc-attachment href="https://example.com/files/report.pdf"></bc-attachment>', FakeResolver(ref))
    assert blocks[0]["type"] == "pdf"
    assert blocks[0]["pdf"]["external"] == {"url": "https://cdn.example.com/report.pdf"}
    # no explicit caption: filename is used
    assert plain_text(blocks[0]["pdf"]["caption"]) == "report.pdf"


def test_missing_asset_yields_fallback_and_manual_upload_entry():
    ref = AssetReference(raw_url=DOWNLOAD_URL, resolved_url=DOWNLOAD_URL, state=AssetState.MISSING)
    ctx = RunContext()
    blocks = build(ATTACHMENT_HTML + ATTACHMENT_HTML, FakeResolver(ref), ctx)
    assert [b["type"] for b in blocks] == ["callout", "callout"]
    callout = blocks[0]["callout"]
    assert callout["color"] == "yellow_background"
    assert callout["rich_text"][0]["text"]["link"] == {"url": DOWNLOAD_URL}
    assert "Team photo" in plain_text(callout["rich_text"])
    # the same URL is listed once
    assert ctx.manual_uploads() == [{"url": DOWNLOAD_URL, "notion_page_id": "page-1", "context": "test"}]
    assert ctx.counters()["asset_fallbacks"] == 2


def test_public_image_without_resolver_is_embedded_directly():
    blocks = build('<p><img src="https://example.com/cat.jpg"></p>', None)
    assert blocks[0]["type"] == "image"
    assert blocks[0]["image"]["external"] == {"url": "https://example.com/cat.jpg"}


def test_private_image_without_resolver_falls_back():
    ctx = RunContext()
    blocks = build('<img src="https://preview.3.basecamp.com/1/blobs/u/previews/full">', None, ctx)
    assert blocks[0]["type"] == "callout"
    assert len(ctx.manual_uploads()) == 1


def test_invalid_url_fallback_has_no_link():
    ref = AssetReference(raw_url="not a url", state=AssetState.MISSING)
    blocks = build('<bc-attachment href="not a url" caption="Price sheet"></bc-attachment>', FakeResolver(ref))
    items = blocks[0]["callout"]["rich_text"]
    assert all("link" not in i["text"] for i in items)
    assert "Price sheet" in plain_text(items)


def test_embeddable_links_are_embedded_without_resolution():
    resolver = FakeResolver(None)
    blocks = build('<bc-attachment href="https://vimeo.com/123"><figcaption>Demo</figcaption></bc-attachment>', resolver)
    assert blocks[0]["type"] == "embed"
    assert plain_text(blocks[0]["embed"]["caption"]) == "Demo"
    assert resolver.calls == []


def test_text_around_attachment_keeps_order():
    ref = AssetReference(raw_url="https://example.com/a.png", resolved_url="https://example.com/a.png", state=AssetState.PUBLIC)
    html = '<div>before<img src="https://example.com/a.png">after</div>'
    blocks = build(html, FakeResolver(ref))
    assert [b["type"] for b in blocks] == ["paragraph", "image", "paragraph"]

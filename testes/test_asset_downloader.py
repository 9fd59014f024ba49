import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
requests = pytest.importorskip("requests")

from bc2notion.assets.convert import convert_avif_to_png, is_avif
from bc2notion.assets.downloader import AssetDownloader, filename_from_disposition
from bc2notion.models.asset import DownloadedAsset

DOWNLOAD = "https://storage.3.basecamp.com/1/blobs/abc-1/download/report.pdf"
PREVIEW = "https://preview.3.basecamp.com/1/blobs/abc-1/previews/full"


class FakeResponse:
    def __init__(self, status_code=200, content=b"", headers=None, url=""):
        self.status_code = status_code
        self._content = content
        self.headers = headers or {}
        self.url = url

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._content), 4):
            yield self._content[i:i + 4]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def get(self, url, headers=None, **kwargs):
        self.calls.append((url, dict(headers or {})))
        return self.answer(url, headers or {})


class FakeBrowser:
    def __init__(self, captured=None):
        self.captured = captured

    def cookie_header(self):
        return "bc3_session=abc"

    def capture_bytes(self, url, *, filename="asset"):
        return self.captured


def test_anonymous_download_wins_first():
    session = FakeSession(lambda url, h: FakeResponse(200, b"%PDF-1.4 data", {"Content-Type": "application/pdf"}, url))
    asset = AssetDownloader(session=session).download(DOWNLOAD)
    assert asset.content == b"%PDF-1.4 data"
    assert asset.filename == "report.pdf" and asset.mime_type == "application/pdf"
    assert asset.source == "anonymous"
    assert len(session.calls) == 1


def test_sign_in_page_is_not_a_file_and_token_is_tried_next():
    def answer(url, headers):
        if "Authorization" in headers:
            return FakeResponse(200, b"bytes", {"Content-Type": "application/octet-stream"}, url)
        return FakeResponse(200, b"<html>sign in</html>", {"Content-Type": "text/html; charset=utf-8"}, url)

    session = FakeSession(answer)
    asset = AssetDownloader(session=session, basecamp_token="tok").download(DOWNLOAD)
    assert asset.source == "basecamp_api"
    assert asset.mime_type == "application/pdf"
    assert session.calls[1][1]["Authorization"] == "Bearer tok"


def test_cookies_fall_back_to_preview_on_404():
    def answer(url, headers):
        if "Cookie" in headers and url == PREVIEW:
            return FakeResponse(200, b"img", {"Content-Type": "image/png"}, url)
        return FakeResponse(404 if url == DOWNLOAD else 403, b"", {}, url)

    session = FakeSession(answer)
    asset = AssetDownloader(session=session, browser=FakeBrowser()).download(DOWNLOAD, filename="report.png")
    assert asset.source == "cookies"
    assert session.calls[-1] == (PREVIEW, {"Cookie": "bc3_session=abc"})


def test_browser_capture_is_the_last_resort():
    captured = DownloadedAsset(content=b"x", filename="a.png", mime_type="image/png", source="browser")
    session = FakeSession(lambda url, h: FakeResponse(403, b"", {}, url))
    asset = AssetDownloader(session=session, browser=FakeBrowser(captured)).download(DOWNLOAD)
    assert asset is captured


def test_network_errors_and_size_limit():
    def boom(url, headers):
        raise requests.ConnectionError("down")

    assert AssetDownloader(session=FakeSession(boom)).download(DOWNLOAD) is None

    big = FakeSession(lambda url, h: FakeResponse(200, b"0123456789", {"Content-Type": "application/pdf"}, url))
    assert AssetDownloader(session=big, max_bytes=5).download(DOWNLOAD) is None


def test_filename_from_content_disposition():
    assert filename_from_disposition('attachment; filename="plan final.pdf"') == "plan final.pdf"
    assert filename_from_disposition("attachment; filename*=UTF-8''rel%C3%A1torio.pdf") == "relátorio.pdf"
    assert filename_from_disposition(None) is None


def test_avif_detection_and_passthrough():
    png = DownloadedAsset(content=b"\x89PNG\r\n\x1a\n....", filename="a.png", mime_type="image/png")
    assert not is_avif(png)
    assert convert_avif_to_png(png) is png
    avif = DownloadedAsset(content=b"\x00\x00\x00\x1cftypavif", filename="photo", mime_type=None)
    assert is_avif(avif)


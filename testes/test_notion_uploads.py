import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("requests")

from bc2notion.migrators import notion_uploads
from bc2notion.migrators.http_client import NonRetriableClientError
from bc2notion.migrators.notion_uploads import FileUploader, is_supported
from bc2notion.models.asset import DownloadedAsset


class FakeHttp:
    def __init__(self, fail_on=None):
        self.posts = []
        self.sends = []
        self.fail_on = fail_on

    def post_json(self, url, payload, **kwargs):
        if self.fail_on and self.fail_on in url:
            raise NonRetriableClientError("400 bad", status=400, target=url)
        self.posts.append((url, payload))
        return {"id": "upload-1"}

    def request(self, method, url, *, files=None, data=None, **kwargs):
        self.sends.append((method, url, files, data))


class FakeClient:
    def __init__(self, http, dry_run=False):
        self.http = http
        self.dry_run = dry_run

    def url(self, path):
        return f"https://api.notion.com/v1/{path}"


def asset(size, mime="image/png", name="pic.png"):
    return DownloadedAsset(content=b"x" * size, filename=name, mime_type=mime)


def test_small_file_uses_single_part():
    http = FakeHttp()
    outcome = FileUploader(FakeClient(http)).upload(asset(1024))
    assert outcome.success and outcome.file_upload_id == "upload-1"
    assert http.posts == [
        ("https://api.notion.com/v1/file_uploads", {"filename": "pic.png", "content_type": "image/png", "mode": "single_part"})
    ]
    assert len(http.sends) == 1
    method, url, files, data = http.sends[0]
    assert url.endswith("/file_uploads/upload-1/send") and data is None
    assert files["file"][0] == "pic.png"


def test_large_file_uses_numbered_parts_and_completes(monkeypatch):
    monkeypatch.setattr(notion_uploads, "SINGLE_PART_LIMIT", 100)
    monkeypatch.setattr(notion_uploads, "PART_SIZE", 40)
    http = FakeHttp()
    outcome = FileUploader(FakeClient(http)).upload(asset(100 + 1, mime="video/mp4", name="clip.mp4"))
    assert outcome.success
    create = http.posts[0][1]
    assert create["mode"] == "multi_part" and create["number_of_parts"] == 3
    assert [d["part_number"] for _, _, _, d in http.sends] == ["1", "2", "3"]
    assert [len(f["file"][1]) for _, _, f, _ in http.sends] == [40, 40, 21]
    assert http.posts[-1][0].endswith("/file_uploads/upload-1/complete")


def test_unsupported_or_empty_files_are_not_sent():
    http = FakeHttp()
    uploader = FileUploader(FakeClient(http))
    assert not uploader.upload(asset(10, mime="application/x-msdownload", name="a.exe")).success
    assert not uploader.upload(asset(0)).success
    assert http.posts == [] and http.sends == []


def test_api_failure_becomes_failed_outcome():
    http = FakeHttp(fail_on="file_uploads")
    outcome = FileUploader(FakeClient(http)).upload(asset(10))
    assert not outcome.success
    assert "400" in outcome.error


def test_dry_run_returns_fake_id():
    http = FakeHttp()
    outcome = FileUploader(FakeClient(http, dry_run=True)).upload(asset(10))
    assert outcome.file_upload_id == "dry-pic.png"
    assert http.posts == []


def test_mime_parameters_are_ignored():
    assert is_supported("image/jpeg; charset=binary")
    assert not is_supported(None)

"""
Re-hosting of downloaded assets on Notion.

Notion's File Upload API takes three steps:

1. ``POST /v1/file_uploads`` creates an upload object, ``single_part`` for
   files up to 20 MiB and ``multi_part`` (with ``number_of_parts``) above;
2. ``POST /v1/file_uploads/{id}/send`` transfers the bytes, once, or once
   per 10 MiB part with a ``part_number`` form field;
3. ``POST /v1/file_uploads/{id}/complete`` finalizes a multi-part upload.

The resulting id is then referenced from an image/file/video/audio/pdf
block (``{"type": "file_upload", "file_upload": {"id": ...}}``).
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional

from bc2notion.migrators.http_client import HttpError
from bc2notion.models.asset import DownloadedAsset, UploadOutcome
from bc2notion.utils.logs import log_message

SINGLE_PART_LIMIT = 20 * 1024 * 1024
PART_SIZE = 10 * 1024 * 1024

SUPPORTED_MIME_TYPES = {
    # audio
    "audio/aac", "audio/midi", "audio/x-midi", "audio/mpeg", "audio/ogg",
    "audio/wav", "audio/x-wav", "audio/x-ms-wma", "audio/mp4",
    # documents
    "application/json", "application/pdf", "text/plain",
    # images
    "image/gif", "image/heic", "image/vnd.microsoft.icon", "image/x-icon", "image/jpeg",
    "image/png", "image/svg+xml", "image/tiff", "image/webp",
    # video
    "video/x-amv", "video/x-ms-asf", "video/x-msvideo", "video/x-f4v", "video/x-flv",
    "video/mp4", "video/mpeg", "video/quicktime", "video/x-ms-wmv", "video/webm",
}


def normalize_mime(mime: Optional[str]) -> str:
    return (mime or "").split(";")[0].strip().lower()


def is_supported(mime: Optional[str]) -> bool:
    return normalize_mime(mime) in SUPPORTED_MIME_TYPES


class FileUploader:
    """Uploads :class:`DownloadedAsset` objects through a :class:`NotionClient`."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def _create(self, asset: DownloadedAsset, mime: str, parts: int, context: str) -> str:
        body: Dict[str, Any] = {"filename": asset.filename, "content_type": mime}
        if parts > 1:
            body["mode"] = "multi_part"
            body["number_of_parts"] = parts
        else:
            body["mode"] = "single_part"
        resp = self.client.http.post_json(self.client.url("file_uploads"), body, context=f"{context} - create upload")
        upload_id = resp.get("id")
        if not upload_id:
            raise ValueError(f"file upload creation returned no id: {resp}")
        return upload_id

    def _send(self, upload_id: str, asset: DownloadedAsset, mime: str, parts: int, context: str) -> None:
        url = self.client.url(f"file_uploads/{upload_id}/send")
        if parts == 1:
            self.client.http.request(
                "POST", url, files={"file": (asset.filename, asset.content, mime)}, context=f"{context} - send"
            )
            return
        for number in range(1, parts + 1):
            chunk = asset.content[(number - 1) * PART_SIZE: number * PART_SIZE]
            log_message(f"[Upload] Sending part {number}/{parts} of {asset.filename} ({len(chunk)} bytes)", "DEBUG")
            self.client.http.request(
                "POST",
                url,
                files={"file": (asset.filename, chunk, mime)},
                data={"part_number": str(number)},
                context=f"{context} - send part {number}/{parts}",
            )

    def upload(self, asset: DownloadedAsset, *, context: str = "") -> UploadOutcome:
        """
        Upload ``asset`` and return the outcome.  Failures are reported in
        the outcome rather than raised, so the caller can fall back to a
        link block.
        """
        mime = normalize_mime(asset.mime_type)
        if not is_supported(mime):
            log_message(f"[Upload] Unsupported MIME type {mime or '?'} for {asset.filename} ({context})", "WARNING")
            return UploadOutcome(success=False, mime_type=mime or None, filename=asset.filename,
                                 error=f"unsupported mime type: {mime or 'unknown'}")
        if not asset.content:
            return UploadOutcome(success=False, mime_type=mime, filename=asset.filename, error="empty file")

        parts = 1 if len(asset.content) <= SINGLE_PART_LIMIT else math.ceil(len(asset.content) / PART_SIZE)
        if self.client.dry_run:
            log_message(f"Dry-run: would upload {asset.filename} ({len(asset.content)} bytes, {parts} part(s))")
            return UploadOutcome(success=True, file_upload_id=f"dry-{asset.filename}", mime_type=mime, filename=asset.filename)

        try:
            upload_id = self._create(asset, mime, parts, context)
            self._send(upload_id, asset, mime, parts, context)
            if parts > 1:
                self.client.http.post_json(
                    self.client.url(f"file_uploads/{upload_id}/complete"), {}, context=f"{context} - complete upload"
                )
        except (HttpError, ValueError) as e:
            log_message(f"[Upload] Failed to upload {asset.filename} ({context}): {e}", "WARNING")
            return UploadOutcome(success=False, mime_type=mime, filename=asset.filename, error=str(e))

        log_message(f"[Upload] Uploaded {asset.filename} as {upload_id} ({len(asset.content)} bytes, {parts} part(s))")
        return UploadOutcome(success=True, file_upload_id=upload_id, mime_type=mime, filename=asset.filename)

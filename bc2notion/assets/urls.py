"""
Offline URL classification for Basecamp assets.

Everything here is string manipulation only; network probes live in
:mod:`bc2notion.assets.resolver`.
"""

from __future__ import annotations

import mimetypes
import os
import re
from typing import Optional
from urllib.parse import parse_qs, unquote, urlparse, urlunparse

DOWNLOAD_RE = re.compile(
    r"^https://storage\.3\.basecamp\.com/(?P<acct>\d+)/blobs/(?P<uuid>[0-9a-f-]+)/download/[^/?]+",
    re.IGNORECASE,
)
PREVIEW_RE = re.compile(
    r"^https://preview\.(?P<sub>\d+)\.basecamp\.com/(?P<acct>\d+)/blobs/(?P<uuid>[0-9a-f-]+)/previews/",
    re.IGNORECASE,
)
ATTACHMENT_RE = re.compile(r"/attachments/(?P<id>\d+)")
BASECAMP_PRIVATE_RE = re.compile(r"\b(?:preview|storage)(?:\.\d+)?\.basecamp\.com\b", re.IGNORECASE)
CLOUDFRONT_RE = re.compile(r"^https://[^/]+\.cloudfront\.net/", re.IGNORECASE)
GOOGLE_PRIVATE_RE = re.compile(r"(googleusercontent\.com|usercontent\.google\.com)", re.IGNORECASE)
EXPIRY_PRONE_RE = re.compile(r"(amazonaws\.com|cloudfront\.net|googleusercontent\.com|basecamp\.com)", re.IGNORECASE)
EMBEDDABLE_RE = re.compile(
    r"(?:^https?://|[/.])(giphy|youtube|youtu|vimeo|instagram|twitter|loom|figma|miro)\.(com|be)/", re.IGNORECASE
)
SIGNED_PARAMS = (
    ("x-amz-signature",),
    ("signature", "expires"),
    ("key-pair-id",),
    ("x-goog-signature",),
)


def strip_query(url: str) -> str:
    parsed = urlparse(url)
    return urlunparse(parsed._replace(query="", fragment=""))


def has_signed_params(url: str) -> bool:
    """True when the URL carries pre-authorized access parameters."""
    try:
        keys = {k.lower() for k in parse_qs(urlparse(url).query, keep_blank_values=True)}
    except ValueError:
        return False
    return any(all(p in keys for p in group) for group in SIGNED_PARAMS)


def unwrap_proxy(url: str) -> Optional[str]:
    """Return the target of a redirect-proxy URL (``?u=`` or ``?url=``)."""
    try:
        params = parse_qs(urlparse(url).query)
    except ValueError:
        return None
    for key in ("u", "url"):
        values = params.get(key)
        if values:
            target = unquote(values[0])
            if re.match(r"^https?://", target, re.IGNORECASE):
                return target
    return None


def preview_to_download(url: str) -> Optional[str]:
    m = PREVIEW_RE.match(url or "")
    if not m:
        return None
    return f"https://storage.3.basecamp.com/{m.group('acct')}/blobs/{m.group('uuid')}/download"


def download_to_preview(url: str) -> Optional[str]:
    m = DOWNLOAD_RE.match(url or "")
    if not m:
        return None
    return f"https://preview.3.basecamp.com/{m.group('acct')}/blobs/{m.group('uuid')}/previews/full"


def attachment_id(url: str) -> Optional[str]:
    m = ATTACHMENT_RE.search(urlparse(url).path or "")
    return m.group("id") if m else None


def account_id(url: str) -> Optional[str]:
    parts = [p for p in (urlparse(url).path or "").split("/") if p]
    return parts[0] if parts and parts[0].isdigit() else None


def is_basecamp_asset(url: str) -> bool:
    return bool(BASECAMP_PRIVATE_RE.search(url or ""))


def is_private_asset(url: Optional[str]) -> bool:
    """Host-pattern heuristic for assets that need authentication to fetch."""
    if not url:
        return True
    return bool(BASECAMP_PRIVATE_RE.search(url) or CLOUDFRONT_RE.match(url) or GOOGLE_PRIVATE_RE.search(url))


def is_google_asset(url: str) -> bool:
    return bool(GOOGLE_PRIVATE_RE.search(url or ""))


def is_expiry_prone(url: str) -> bool:
    return is_private_asset(url) or has_signed_params(url) or bool(EXPIRY_PRONE_RE.search(urlparse(url).netloc or ""))


def is_embeddable(url: Optional[str]) -> bool:
    return bool(url and EMBEDDABLE_RE.search(url))


def filename_from_url(url: str, default: str = "asset") -> str:
    name = os.path.basename(unquote(urlparse(url or "").path or ""))
    return name or default


def guess_mime(filename: Optional[str]) -> Optional[str]:
    if not filename:
        return None
    mime, _ = mimetypes.guess_type(filename)
    return mime


def media_kind(mime: Optional[str]) -> str:
    """Notion block type for a MIME type."""
    mime = (mime or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    if mime.startswith("audio/"):
        return "audio"
    if mime == "application/pdf":
        return "pdf"
    return "file"

"""
Downloading of asset bytes for re-hosting.

Strategies are tried in order and the first success wins:

1. ``anonymous``: a plain streamed GET;
2. ``basecamp_api``: the same GET with the Basecamp bearer token;
3. ``cookies``: the GET with the signed-in browser's cookies, retried on
   the preview URL when the download URL answers 404;
4. ``browser``: byte capture inside the signed-in browser.

A response only counts as a success when it is 2xx, non-empty, within
``max_bytes`` and not an HTML sign-in page standing in for the file.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote

import requests

from bc2notion.assets.urls import download_to_preview, filename_from_url, guess_mime
from bc2notion.models.asset import DownloadedAsset
from bc2notion.utils.logs import log_message

DEFAULT_MAX_BYTES = 5 * 1024 * 1024 * 1024
_FILENAME_STAR_RE = re.compile(r"filename\*\s*=\s*(?:UTF-8|utf-8)?''([^;]+)")
_FILENAME_RE = re.compile(r'filename\s*=\s*"?([^";]+)"?')


def filename_from_disposition(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    m = _FILENAME_STAR_RE.search(header)
    if m:
        return unquote(m.group(1).strip())
    m = _FILENAME_RE.search(header)
    return m.group(1).strip() if m else None


class AssetDownloader:
    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        basecamp_token: Optional[str] = None,
        browser: Any = None,
        timeout: float = 60.0,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self.session = session or requests.Session()
        self.basecamp_token = basecamp_token
        self.browser = browser
        self.timeout = timeout
        self.max_bytes = max_bytes

    def _get(self, url: str, headers: Dict[str, str], filename: Optional[str], source: str) -> Tuple[Optional[DownloadedAsset], Optional[int]]:
        with self.session.get(url, headers=headers, stream=True, timeout=self.timeout, allow_redirects=True) as resp:
            status = resp.status_code
            if not 200 <= status < 300:
                log_message(f"[Download] {source}: {status} for {url}", "DEBUG")
                return None, status
            mime = (resp.headers.get("Content-Type") or "").split(";")[0].strip().lower() or None
            name = filename_from_disposition(resp.headers.get("Content-Disposition")) or filename or filename_from_url(resp.url or url)
            if mime == "text/html" and not (name or "").lower().endswith((".html", ".htm")):
                log_message(f"[Download] {source}: HTML page instead of a file for {url}", "DEBUG")
                return None, status
            chunks: List[bytes] = []
            total = 0
            for chunk in resp.iter_content(chunk_size=1024 * 256):
                total += len(chunk)
                if total > self.max_bytes:
                    log_message(f"[Download] {source}: {url} exceeds {self.max_bytes} bytes", "WARNING")
                    return None, status
                chunks.append(chunk)
        content = b"".join(chunks)
        if not content:
            return None, status
        if not mime or mime == "application/octet-stream":
            mime = guess_mime(name) or mime
        return DownloadedAsset(content=content, filename=name or "asset", mime_type=mime, source=source), status

    def anonymous(self, url: str, filename: Optional[str]) -> Optional[DownloadedAsset]:
        return self._get(url, {}, filename, "anonymous")[0]

    def basecamp_api(self, url: str, filename: Optional[str]) -> Optional[DownloadedAsset]:
        if not self.basecamp_token:
            return None
        return self._get(url, {"Authorization": f"Bearer {self.basecamp_token}"}, filename, "basecamp_api")[0]

    def cookies(self, url: str, filename: Optional[str]) -> Optional[DownloadedAsset]:
        if self.browser is None:
            return None
        cookie = self.browser.cookie_header()
        if not cookie:
            return None
        asset, status = self._get(url, {"Cookie": cookie}, filename, "cookies")
        if asset is None and status == 404:
            preview = download_to_preview(url)
            if preview:
                log_message(f"[Download] cookies: 404 on download URL, trying preview {preview}", "DEBUG")
                asset, _ = self._get(preview, {"Cookie": cookie}, filename, "cookies")
        return asset

    def in_browser(self, url: str, filename: Optional[str]) -> Optional[DownloadedAsset]:
        if self.browser is None:
            return None
        asset = self.browser.capture_bytes(url, filename=filename or filename_from_url(url))
        if asset is not None and asset.size > self.max_bytes:
            return None
        return asset

    def strategies(self) -> List[Tuple[str, Callable[[str, Optional[str]], Optional[DownloadedAsset]]]]:
        return [
            ("anonymous", self.anonymous),
            ("basecamp_api", self.basecamp_api),
            ("cookies", self.cookies),
            ("browser", self.in_browser),
        ]

    def download(self, url: str, *, filename: Optional[str] = None, context: str = "") -> Optional[DownloadedAsset]:
        """Return the first successful download of ``url`` or ``None``."""
        for name, strategy in self.strategies():
            try:
                asset = strategy(url, filename)
            except requests.RequestException as e:
                log_message(f"[Download] {name} failed for {url} ({context}): {e}", "DEBUG")
                continue
            except RuntimeError as e:
                # browser supervision errors
                log_message(f"[Download] {name} unavailable for {url} ({context}): {e}", "WARNING")
                continue
            if asset is not None:
                log_message(f"[Download] {name}: {asset.filename} ({asset.size} bytes, {asset.mime_type}) ({context})", "DEBUG")
                return asset
        log_message(f"[Download] All strategies failed for {url} ({context})", "WARNING")
        return None

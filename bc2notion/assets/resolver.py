"""
Resolution and re-hosting of assets referenced from Basecamp content.

Every URL moves through one small state machine::

    unresolved → public | needs_auth | missing

:meth:`AssetResolver.resolve_url` short-circuits through, in order:

1. the cache (24 hour TTL; ``missing`` entries stay for the whole run);
2. URLs that already carry signed access parameters (accepted as public);
3. redirect-proxy URLs (``?u=`` / ``?url=``), unwrapped offline;
4. preview URLs, for which the ``/download`` URL is derived and preferred
   when a HEAD probe succeeds;
5. numbered attachments answering 404/410, looked up through the
   Basecamp API (``download_url``), or marked missing;
6. still-private URLs (a host-pattern heuristic), resolved through the
   signed-in browser when one is available;
7. anything else, with an anonymous request whose body is never read.

:meth:`AssetResolver.resolve` adds the re-hosting decision: when uploads
are enabled and the asset is private or lives on a host whose links
expire, it is downloaded, converted if needed and uploaded to Notion.
Failures never raise; the caller falls back to a link block.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from bc2notion.assets import urls
from bc2notion.assets.convert import convert_avif_to_png
from bc2notion.models.asset import AssetReference, AssetState, UploadOutcome
from bc2notion.utils.logs import log_message

DEFAULT_TTL = 24 * 60 * 60
DEFAULT_API_BASE = "https://3.basecampapi.com"


class AssetResolver:
    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        browser: Any = None,
        downloader: Any = None,
        uploader: Any = None,
        basecamp_token: Optional[str] = None,
        api_base: str = DEFAULT_API_BASE,
        ttl: float = DEFAULT_TTL,
        timeout: float = 20.0,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self.session = session or requests.Session()
        self.browser = browser
        self.downloader = downloader
        self.uploader = uploader
        self.basecamp_token = basecamp_token
        self.api_base = api_base.rstrip("/")
        self.ttl = ttl
        self.timeout = timeout
        self._time = time_fn
        self._cache: Dict[str, AssetReference] = {}
        self._lock = threading.Lock()

    # --- cache ---

    @staticmethod
    def cache_key(url: str) -> str:
        # proxied URLs differ only in their query
        return urls.strip_query(urls.unwrap_proxy(url) or url)

    def cached(self, url: str) -> Optional[AssetReference]:
        with self._lock:
            ref = self._cache.get(self.cache_key(url))
        if ref is None:
            return None
        if ref.state == AssetState.MISSING or not ref.expired(self.ttl, self._time()):
            return ref
        return None

    def remember(self, ref: AssetReference) -> AssetReference:
        if ref.state == AssetState.UNRESOLVED:
            return ref
        with self._lock:
            self._cache[self.cache_key(ref.raw_url)] = ref
        return ref

    def _ref(self, raw_url: str, state: AssetState, resolved_url: Optional[str] = None) -> AssetReference:
        return AssetReference(raw_url=raw_url, resolved_url=resolved_url, state=state, resolved_at=self._time())

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.basecamp_token}"} if self.basecamp_token else {}

    # --- probes ---

    def _head_ok(self, url: str) -> bool:
        try:
            resp = self.session.head(url, headers=self._auth_headers(), allow_redirects=True, timeout=self.timeout)
        except requests.RequestException as e:
            log_message(f"[Resolver] HEAD failed for {url}: {e}", "DEBUG")
            return False
        return 200 <= resp.status_code < 300

    def _attachment_gone(self, url: str) -> bool:
        try:
            resp = self.session.head(url, headers=self._auth_headers(), allow_redirects=True, timeout=self.timeout)
        except requests.RequestException:
            return False
        return resp.status_code in (404, 410)

    def _attachment_download_url(self, url: str, attachment: str) -> Optional[str]:
        acct = urls.account_id(url)
        if not acct or not self.basecamp_token:
            return None
        api_url = f"{self.api_base}/{acct}/attachments/{attachment}.json"
        try:
            resp = self.session.get(api_url, headers=self._auth_headers(), timeout=self.timeout)
        except requests.RequestException as e:
            log_message(f"[Resolver] Attachment lookup failed for {api_url}: {e}", "DEBUG")
            return None
        if resp.status_code != 200:
            return None
        try:
            return (resp.json() or {}).get("download_url")
        except ValueError:
            return None

    def _via_browser(self, raw_url: str, url: str, context: str) -> AssetReference:
        if self.browser is None:
            return self._ref(raw_url, AssetState.NEEDS_AUTH, url)
        try:
            final = self.browser.final_url(url)
        except RuntimeError as e:
            log_message(f"[Resolver] Browser could not resolve {url} ({context}): {e}", "WARNING")
            return self._ref(raw_url, AssetState.NEEDS_AUTH, url)
        if final and urls.has_signed_params(final):
            return self._ref(raw_url, AssetState.PUBLIC, final)
        if final and not urls.is_private_asset(final):
            return self._ref(raw_url, AssetState.PUBLIC, final)
        return self._ref(raw_url, AssetState.NEEDS_AUTH, final or url)

    def _anonymous(self, raw_url: str, url: str, context: str) -> AssetReference:
        try:
            with self.session.get(url, stream=True, allow_redirects=True, timeout=self.timeout) as resp:
                status, final = resp.status_code, resp.url or url
        except requests.RequestException as e:
            log_message(f"[Resolver] Could not reach {url} ({context}): {e}", "WARNING")
            return self._ref(raw_url, AssetState.UNRESOLVED, url)
        if 200 <= status < 300:
            return self._ref(raw_url, AssetState.PUBLIC, final)
        if status in (404, 410):
            return self._ref(raw_url, AssetState.MISSING, url)
        return self._ref(raw_url, AssetState.NEEDS_AUTH, url)

    # --- public API ---

    def resolve_url(self, url: str, *, context: str = "") -> AssetReference:
        """Classify ``url`` and find the best URL to reach it."""
        cached = self.cached(url)
        if cached is not None:
            log_message(f"[Resolver] Cache hit ({cached.state.value}) for {url}", "DEBUG")
            return cached
        ref = self._resolve(url, context)
        log_message(f"[Resolver] {url} → {ref.state.value} {ref.resolved_url or ''} ({context})", "DEBUG")
        return self.remember(ref)

    def _resolve(self, raw_url: str, context: str) -> AssetReference:
        if urls.has_signed_params(raw_url):
            return self._ref(raw_url, AssetState.PUBLIC, raw_url)

        url = urls.unwrap_proxy(raw_url) or raw_url
        if url != raw_url and urls.has_signed_params(url):
            return self._ref(raw_url, AssetState.PUBLIC, url)

        download = urls.preview_to_download(url)
        if download and self._head_ok(download):
            url = download

        attachment = urls.attachment_id(url)
        if attachment and self._attachment_gone(url):
            found = self._attachment_download_url(url, attachment)
            if not found:
                log_message(f"[Resolver] Attachment {attachment} is gone ({context})", "WARNING")
                return self._ref(raw_url, AssetState.MISSING, url)
            url = found

        if urls.is_private_asset(url):
            return self._via_browser(raw_url, url, context)
        return self._anonymous(raw_url, url, context)

    def should_rehost(self, ref: AssetReference) -> bool:
        if self.uploader is None or self.downloader is None:
            return False
        if not getattr(self.uploader.client, "uploads_enabled", False):
            return False
        return ref.state == AssetState.NEEDS_AUTH or urls.is_expiry_prone(ref.best_url)

    def resolve(
        self,
        url: str,
        *,
        page_id: Optional[str] = None,
        context: str = "",
        filename: Optional[str] = None,
    ) -> AssetReference:
        """
        Resolve ``url`` and, when worthwhile, re-host it on Notion.

        :return: The reference, with ``upload`` set when a re-host was attempted.
        """
        ref = self.resolve_url(url, context=context)
        if ref.state == AssetState.MISSING or ref.upload is not None or not self.should_rehost(ref):
            return ref

        asset = self.downloader.download(ref.best_url, filename=filename, context=context)
        if asset is None and ref.best_url != url:
            asset = self.downloader.download(url, filename=filename, context=context)
        if asset is None:
            outcome = UploadOutcome(success=False, filename=filename, error="download failed")
        else:
            outcome = self.uploader.upload(convert_avif_to_png(asset), context=context)
        if not outcome.success:
            log_message(f"[Resolver] Re-hosting failed for {url} on page {page_id or '?'} ({context}): {outcome.error}", "WARNING")
        return self.remember(ref.model_copy(update={"upload": outcome}))

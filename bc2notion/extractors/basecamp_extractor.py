"""
Read-only access to the Basecamp 3 API.

:meth:`BasecampClient.load_json` performs a bearer-authenticated GET and
follows ``Link: <...>; rel="next"`` headers, concatenating the pages of
list responses.  A 404 yields an empty list, so a tool whose collection
was deleted is simply empty.  Requests go through the shared
:class:`~bc2notion.migrators.http_client.ResilientHttpClient`.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from bc2notion.migrators.http_client import NonRetriableClientError, RateLimiter, ResilientHttpClient, RetryPolicy
from bc2notion.utils.logs import log_message

DEFAULT_API_BASE = "https://3.basecampapi.com"
USER_AGENT = "BasecampToNotion (migration)"
_NEXT_RE = re.compile(r'<([^>]+)>;\s*rel="next"')


def next_link(header: Optional[str]) -> Optional[str]:
    if not header or 'rel="next"' not in header:
        return None
    m = _NEXT_RE.search(header)
    return m.group(1) if m else None


def collection_url(url: str, suffix: str) -> str:
    """``.../message_boards/1.json`` + ``/messages.json`` → ``.../message_boards/1/messages.json``."""
    return re.sub(r"\.json$", "", url) + suffix


class BasecampClient:
    def __init__(
        self,
        cfg: Dict[str, Any],
        *,
        http: Optional[ResilientHttpClient] = None,
        run_context: Any = None,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.account_id = str(cfg.get("account_id") or "")
        self.api_base = (cfg.get("api_base") or DEFAULT_API_BASE).rstrip("/")
        self.access_token = cfg.get("access_token") or ""
        self.http = http or ResilientHttpClient(
            policy=policy,
            run_context=run_context,
            limiter=RateLimiter(int(cfg.get("rpm") or 600)),
            headers={"Authorization": f"Bearer {self.access_token}", "User-Agent": USER_AGENT},
        )

    def account_url(self, path: str) -> str:
        return f"{self.api_base}/{self.account_id}/{path.lstrip('/')}"

    def load_json(self, url: str) -> Any:
        """
        GET ``url`` and every following page.

        :return: The concatenated list for list endpoints, the object
            otherwise, or ``[]`` when the resource does not exist.
        """
        collected: List[Any] = []
        current: Optional[str] = url
        while current:
            try:
                resp = self.http.request("GET", current, context="Basecamp")
            except NonRetriableClientError as e:
                if e.status == 404:
                    log_message(f"[Basecamp] Not found (404): {current}", "WARNING")
                    return collected
                raise
            if not (resp.text or "").strip():
                log_message(f"[Basecamp] Empty response body for {current}", "WARNING")
                return collected
            data = resp.json()
            if not isinstance(data, list):
                return data
            collected.extend(data)
            log_message(f"[Basecamp] {current}: {len(data)} records", "DEBUG")
            current = next_link(resp.headers.get("Link"))
        return collected

    def projects(self, *, include_archived: bool = False) -> List[Dict[str, Any]]:
        projects = list(self.load_json(self.account_url("projects.json")) or [])
        log_message(f"Active projects fetched: {len(projects)}")
        if include_archived:
            archived = list(self.load_json(self.account_url("projects.json?status=archived")) or [])
            log_message(f"Archived projects fetched: {len(archived)}")
            projects.extend(archived)
        return projects

    def collection(self, url: str, suffix: str) -> List[Dict[str, Any]]:
        data = self.load_json(collection_url(url, suffix))
        return list(data) if isinstance(data, list) else []

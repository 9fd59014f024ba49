"""
Typed retries around ``requests``.

Every call to Notion (and the authenticated Basecamp reads) goes through
:class:`ResilientHttpClient`.  A single attempt either returns a 2xx
response or raises one of the typed errors below; :func:`with_retries`
then decides whether to wait and try again:

* :class:`RateLimitedError` (429) waits ``max(Retry-After, default)``
  with jitter;
* :class:`RetriableServerError` (500/502/503/504), :class:`ConflictError`
  (409) and :class:`NetworkError` use capped exponential backoff with
  jitter;
* :class:`NonRetriableClientError` and anything unclassified propagate
  immediately.

A :class:`~bc2notion.utils.run_context.RunContext` shutdown flag is
checked before each attempt, so no new attempt starts once a shutdown has
been requested.  In-flight requests are left to finish.
"""

from __future__ import annotations

import json
import random
import re
import threading
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import requests
from pydantic import BaseModel

from bc2notion.utils.logs import log_message, preview

T = TypeVar("T")

RETRIABLE_SERVER_STATUSES = (500, 502, 503, 504)
LARGE_PAYLOAD_WARNING_BYTES = 900_000
_CHILDREN_ENDPOINT_RE = re.compile(r"/blocks/[^/]+/children/?(?:\?.*)?$")


class HttpError(Exception):
    def __init__(self, message: str, *, status: Optional[int] = None, target: str = "", body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.target = target
        self.body = body


class RateLimitedError(HttpError):
    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class RetriableServerError(HttpError):
    pass


class ConflictError(HttpError):
    pass


class NonRetriableClientError(HttpError):
    pass


class NetworkError(HttpError):
    pass


class IllegalRequestError(ValueError):
    """A request that can never be correct; raised before any I/O."""


class RetryPolicy(BaseModel):
    max_attempts: int = 5
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    default_retry_after: float = 5.0
    jitter: float = 0.2

    def _jittered(self, base: float, rng: Callable[[], float]) -> float:
        return max(0.0, base + base * self.jitter * (rng() - 0.5) * 2)

    def backoff(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        base = min(self.max_backoff, self.initial_backoff * (2 ** max(0, attempt - 1)))
        return self._jittered(base, rng)

    def rate_limit_wait(self, retry_after: Optional[float], rng: Callable[[], float] = random.random) -> float:
        return self._jittered(max(retry_after or 0.0, self.default_retry_after), rng)


class RateLimiter:
    """
    Simple time-based rate limiter.  Ensures that no more than ``rpm``
    requests are dispatched per minute across all threads sharing it.
    Notion documents an average of three requests per second per
    integration.
    """

    def __init__(self, rpm: int = 180) -> None:
        self.rpm = max(1, rpm)
        self.interval = 60.0 / float(self.rpm)
        self._last = 0.0
        self._lock = threading.Lock()

    def wait(self, time_fn: Callable[[], float] = time.time, sleep_fn: Callable[[float], None] = time.sleep) -> None:
        with self._lock:
            now = time_fn()
            dt = now - self._last
            if dt < self.interval:
                sleep_fn(self.interval - dt)
            self._last = time_fn()


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def raise_for_status(resp: requests.Response, target: str) -> requests.Response:
    """Map a non-2xx response onto the error taxonomy."""
    status = resp.status_code
    if 200 <= status < 300:
        return resp
    body = preview(resp.text or "", 500)
    message = f"{status} from {target}: {body}"
    if status == 429:
        raise RateLimitedError(
            message, retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
            status=status, target=target, body=body,
        )
    if status in RETRIABLE_SERVER_STATUSES:
        raise RetriableServerError(message, status=status, target=target, body=body)
    if status == 409:
        raise ConflictError(message, status=status, target=target, body=body)
    raise NonRetriableClientError(message, status=status, target=target, body=body)


def with_retries(
    fn: Callable[[], T],
    *,
    policy: Optional[RetryPolicy] = None,
    target: str = "",
    run_context: Any = None,
    sleep: Optional[Callable[[float], Any]] = None,
    rng: Callable[[], float] = random.random,
) -> T:
    """
    Execute ``fn`` (one attempt, raising typed errors) until it succeeds,
    a non-retriable error is raised or the attempt ceiling is reached.

    :param fn: Zero-argument callable performing a single attempt.
    :param policy: Attempt ceiling and wait bounds.
    :param target: Human readable description used in log lines.
    :param run_context: Optional run context whose shutdown flag blocks new attempts.
    :param sleep: Override for waiting (tests); defaults to an interruptible wait.
    :return: Whatever ``fn`` returns.
    """
    policy = policy or RetryPolicy()
    if sleep is None:
        sleep = run_context.sleep if run_context is not None else time.sleep
    attempt = 1
    while True:
        if run_context is not None:
            run_context.check_shutdown(f"before attempt {attempt} of {target}")
        try:
            result = fn()
            if attempt > 1:
                log_message(f"[HTTP] {target} succeeded on attempt {attempt}")
            return result
        except RateLimitedError as e:
            if attempt >= policy.max_attempts:
                log_message(f"[HTTP] {target} rate limited; giving up after {attempt} attempts", "ERROR")
                raise
            wait = policy.rate_limit_wait(e.retry_after, rng)
            reason = f"rate limited (retry-after={e.retry_after})"
        except (RetriableServerError, ConflictError, NetworkError) as e:
            if attempt >= policy.max_attempts:
                log_message(f"[HTTP] {target} failed after {attempt} attempts: {e}", "ERROR")
                raise
            wait = policy.backoff(attempt, rng)
            reason = f"{type(e).__name__}: {e}"
        log_message(
            f"[HTTP] {target} attempt {attempt}/{policy.max_attempts} {reason}; retrying in {wait:.2f}s",
            "WARNING",
        )
        sleep(wait)
        attempt += 1


class ResilientHttpClient:
    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        policy: Optional[RetryPolicy] = None,
        run_context: Any = None,
        limiter: Optional[RateLimiter] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 60.0,
        sleep: Optional[Callable[[float], Any]] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.policy = policy or RetryPolicy()
        self.run_context = run_context
        self.limiter = limiter
        self.headers = dict(headers or {})
        self.timeout = timeout
        self._sleep = sleep

    @staticmethod
    def guard(method: str, url: str) -> None:
        if method.upper() == "POST" and _CHILDREN_ENDPOINT_RE.search(url):
            raise IllegalRequestError(
                f"Illegal POST to {url}: appending children must be a PATCH request"
            )

    def _attempt(self, method: str, url: str, target: str, kwargs: Dict[str, Any]) -> requests.Response:
        if self.limiter is not None:
            self.limiter.wait()
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(f"{type(e).__name__} for {target}: {e}", target=target) from e
        except requests.exceptions.ChunkedEncodingError as e:
            raise NetworkError(f"Interrupted response for {target}: {e}", target=target) from e
        return raise_for_status(resp, target)

    def request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        data: Any = None,
        files: Any = None,
        headers: Optional[Dict[str, str]] = None,
        context: str = "",
    ) -> requests.Response:
        self.guard(method, url)
        target = f"{method.upper()} {url}" + (f" ({context})" if context else "")
        kwargs: Dict[str, Any] = {"headers": {**self.headers, **(headers or {})}}
        if json_body is not None:
            payload = json.dumps(json_body, ensure_ascii=False)
            if len(payload.encode("utf-8")) > LARGE_PAYLOAD_WARNING_BYTES:
                log_message(f"[HTTP] Large payload ({len(payload.encode('utf-8'))} bytes) for {target}", "WARNING")
            kwargs["data"] = payload.encode("utf-8")
            kwargs["headers"].setdefault("Content-Type", "application/json")
        elif data is not None:
            kwargs["data"] = data
        if files is not None:
            kwargs["files"] = files
        log_message(f"[HTTP] {target}", "DEBUG")
        return with_retries(
            lambda: self._attempt(method, url, target, kwargs),
            policy=self.policy,
            target=target,
            run_context=self.run_context,
            sleep=self._sleep,
        )

    def get_json(self, url: str, **kwargs: Any) -> Any:
        return self.request("GET", url, **kwargs).json()

    def post_json(self, url: str, payload: Any, **kwargs: Any) -> Any:
        return self.request("POST", url, json_body=payload, **kwargs).json()

    def patch_json(self, url: str, payload: Any, **kwargs: Any) -> Any:
        return self.request("PATCH", url, json_body=payload, **kwargs).json()

"""
Authenticated browser used for assets that only open with a signed-in
Basecamp (or Google) session.

Selenium is an optional dependency (``pip install .[browser]``); it is
only imported when the first browser operation actually starts a
driver.  All navigation goes through one
:class:`~bc2notion.utils.supervisor.SupervisedSession`, so concurrent
callers are serialized and a misbehaving driver is restarted within the
configured budget.
"""

from __future__ import annotations

import base64
import os
import re
import time
from typing import Any, Callable, Dict, Optional

from bc2notion.models.asset import DownloadedAsset
from bc2notion.utils.logs import log_message
from bc2notion.utils.supervisor import SupervisedSession

DEFAULT_LOGIN_URL = "https://launchpad.37signals.com/signin"
BASECAMP_HOME = "https://3.basecamp.com"
GOOGLE_FORBIDDEN_MARKERS = ("403. That’s an error", "403. That's an error", "Your client does not have permission")
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+)?(?:;[^,]*)?;base64,(?P<data>.+)$", re.DOTALL)

_CAPTURE_SCRIPT = """
const done = arguments[arguments.length - 1];
fetch(arguments[0], {credentials: 'include'})
  .then(r => r.ok ? r.blob() : null)
  .then(blob => {
    if (!blob) { done(null); return; }
    const reader = new FileReader();
    reader.onload = () => done(reader.result);
    reader.onerror = () => done(null);
    reader.readAsDataURL(blob);
  })
  .catch(() => done(null));
"""


class AccessDeniedPage(RuntimeError):
    """The browser landed on a permission error page."""


def chrome_factory(cfg: Dict[str, Any]) -> Callable[[], Any]:
    """Build a factory that starts a Chrome driver with a persistent profile."""

    def start() -> Any:
        from selenium import webdriver

        options = webdriver.ChromeOptions()
        profile_dir = os.path.expanduser(cfg.get("profile_dir") or "~/.bc_chrome")
        options.add_argument(f"--user-data-dir={profile_dir}")
        options.add_argument("--profile-directory=Default")
        if cfg.get("headless"):
            options.add_argument("--headless=new")
        driver = webdriver.Chrome(options=options)
        driver.set_page_load_timeout(int(cfg.get("page_load_timeout") or 60))
        return driver

    return start


def _quit(driver: Any) -> None:
    driver.quit()


class BrowserSession:
    def __init__(
        self,
        cfg: Optional[Dict[str, Any]] = None,
        *,
        driver_factory: Optional[Callable[[], Any]] = None,
        run_context: Any = None,
        sleep_fn: Optional[Callable[[float], Any]] = None,
        time_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cfg = cfg or {}
        self.run_context = run_context
        self._sleep = sleep_fn or (run_context.sleep if run_context is not None else time.sleep)
        self._time = time_fn
        self.session: SupervisedSession[Any] = SupervisedSession(
            driver_factory or chrome_factory(self.cfg),
            name="BrowserSession",
            closer=_quit,
            max_consecutive_failures=int(self.cfg.get("max_consecutive_failures") or 3),
            max_restarts_per_operation=int(self.cfg.get("max_restarts_per_operation") or 2),
            max_global_restarts=int(self.cfg.get("max_global_restarts") or 10),
            permanent_errors=(AccessDeniedPage,),
        )
        self._cookie_header: Optional[str] = None
        self._logged_in = False

    # --- login ---

    @staticmethod
    def authenticated(driver: Any) -> bool:
        url = driver.current_url or ""
        on_login_screen = any(marker in url for marker in ("signin", "login", "two-factor"))
        has_session = any(
            re.search(r"bc3_session|_session", c.get("name", ""), re.IGNORECASE) for c in driver.get_cookies()
        )
        return has_session and not on_login_screen

    def _login(self, driver: Any) -> str:
        login_url = self.cfg.get("login_url") or DEFAULT_LOGIN_URL
        timeout = float(self.cfg.get("login_timeout") or 300)
        log_message(f"[Browser] Opening Basecamp login page: {login_url}")
        driver.get(login_url)
        log_message(f"[Browser] Please sign in to Basecamp if prompted (timeout: {int(timeout)}s)")
        deadline = self._time() + timeout
        while not self.authenticated(driver):
            if self._time() >= deadline:
                log_message(f"[Browser] Login timeout after {int(timeout)}s; continuing with current cookies", "WARNING")
                break
            if self.run_context is not None:
                self.run_context.check_shutdown("waiting for browser login")
            self._sleep(1.0)
        if not (driver.current_url or "").startswith(BASECAMP_HOME):
            driver.get(BASECAMP_HOME)
        cookies = [c for c in driver.get_cookies() if "basecamp.com" in (c.get("domain") or "")]
        return "; ".join(f"{c['name']}={c['value']}" for c in cookies)

    def login(self) -> Optional[str]:
        if self._logged_in:
            return self._cookie_header
        self._cookie_header = self.session.run(self._login, "login") or None
        self._logged_in = True
        log_message("[Browser] Basecamp cookies captured")
        return self._cookie_header

    def cookie_header(self) -> Optional[str]:
        return self.login()

    # --- operations ---

    def final_url(self, url: str, timeout: float = 20.0) -> Optional[str]:
        """Navigate to ``url`` and return where the redirects end up."""
        self.login()

        def navigate(driver: Any) -> Optional[str]:
            driver.get(url)
            deadline = self._time() + timeout
            while True:
                source = driver.page_source or ""
                if any(marker in source for marker in GOOGLE_FORBIDDEN_MARKERS):
                    raise AccessDeniedPage(f"permission error page for {url}")
                current = driver.current_url or ""
                if current and current != url and not current.startswith("about:"):
                    return current
                if self._time() >= deadline:
                    log_message(f"[Browser] No redirect after {timeout:.0f}s for {url}", "DEBUG")
                    return current or None
                self._sleep(0.5)

        return self.session.run(navigate, f"resolve {url}")

    def capture_bytes(self, url: str, *, filename: str = "asset") -> Optional[DownloadedAsset]:
        """Fetch ``url`` from inside the signed-in browser."""
        self.login()

        def capture(driver: Any) -> Optional[str]:
            original = driver.current_window_handle
            driver.execute_script("window.open('about:blank','asset_capture');")
            driver.switch_to.window("asset_capture")
            try:
                driver.get(url)
                return driver.execute_async_script(_CAPTURE_SCRIPT, url)
            finally:
                driver.close()
                driver.switch_to.window(original)

        data_url = self.session.run(capture, f"capture {url}")
        m = _DATA_URL_RE.match(data_url or "")
        if not m:
            log_message(f"[Browser] Unable to capture bytes for {url}", "WARNING")
            return None
        content = base64.b64decode(m.group("data"))
        log_message(f"[Browser] Captured {url} ({m.group('mime') or 'unknown mime'}, {len(content)} bytes)", "DEBUG")
        return DownloadedAsset(content=content, filename=filename, mime_type=m.group("mime"), source="browser")

    def close(self) -> None:
        self.session.close()

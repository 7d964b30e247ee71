"""Browser page source for search-result pages.

Drives a persistent Chromium profile through Playwright's async API, one
keyword at a time. Pages are returned as rendered HTML snapshots; all parsing
happens in :mod:`extraction`.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote, urlsplit

from playwright.async_api import BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import SerpAdsConfig
from .extraction import OFFSET_ATTRIBUTE
from .logging_config import get_logger
from .models import LocationProfile, RenderedPage
from .parser_utils import utc_now

logger = get_logger("browser")

RESULTS_SELECTOR = "main, #search, #rso, #center_col, h1"
CONSENT_SELECTOR = 'button:has-text("Accept all"), button:has-text("Accept")'
LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled"]
DEFAULT_PROFILE_DIR = ".playwright-profile"

STAMP_OFFSETS_JS = """
(attribute) => {
  const nodes = document.querySelectorAll('[data-text-ad], [role="heading"], h3');
  for (const node of nodes) {
    const rect = node.getBoundingClientRect();
    node.setAttribute(attribute, String(Math.round(rect.top)));
  }
  return nodes.length;
}
"""

_UNSAFE_FILENAME = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def build_search_url(keyword: str, profile: LocationProfile, language: str = "en") -> str:
    """Build the results URL for ``keyword`` in the profile's market."""
    url = (
        f"https://{profile.search_domain}/search"
        f"?q={quote(keyword, safe='')}"
        f"&gl={quote(profile.region_code, safe='')}"
        f"&hl={quote(language, safe='')}"
    )
    if profile.location_token:
        url += f"&uule={quote(profile.location_token, safe='')}"
    return url


def parse_proxy(proxy_url: Optional[str]) -> Optional[Dict[str, str]]:
    """Convert a proxy URL into Playwright's proxy settings.

    Credentials embedded as ``user:pass@host`` are split out. Strings that do
    not parse as URLs are passed through as the server value.
    """
    if not proxy_url:
        return None
    try:
        parsed = urlsplit(proxy_url)
        username = parsed.username
        password = parsed.password
        host = parsed.hostname
        port = parsed.port
    except ValueError:
        return {"server": proxy_url}

    if not username or not parsed.scheme or not host:
        return {"server": proxy_url}

    server = f"{parsed.scheme}://{host}"
    if port:
        server += f":{port}"
    return {
        "server": server,
        "username": unquote(username),
        "password": unquote(password or ""),
    }


def debug_file_stem(keyword: str) -> str:
    return _UNSAFE_FILENAME.sub("_", keyword)[:50]


@dataclass
class BrowserSettings:
    """Launch and timing options for the browser page source."""

    profile_dir: Path
    headless: bool = False
    language: str = "en"
    navigation_timeout_ms: int = 20000
    results_timeout_ms: int = 15000
    consent_timeout_ms: int = 3000
    settle_seconds: float = 2.0
    proxy: Optional[Dict[str, str]] = None

    @classmethod
    def from_config(
        cls,
        config: SerpAdsConfig,
        root: Path,
        proxy: Optional[str] = None,
    ) -> "BrowserSettings":
        profile_dir = Path(config.get_setting("profile_dir", DEFAULT_PROFILE_DIR))
        if not profile_dir.is_absolute():
            profile_dir = root / profile_dir
        return cls(
            profile_dir=profile_dir,
            headless=bool(config.get_setting("headless", False)),
            language=str(config.get_setting("language", "en")),
            navigation_timeout_ms=int(config.get_setting("navigation_timeout_ms", 20000)),
            results_timeout_ms=int(config.get_setting("results_timeout_ms", 15000)),
            consent_timeout_ms=int(config.get_setting("consent_timeout_ms", 3000)),
            settle_seconds=float(config.get_setting("settle_seconds", 2.0)),
            proxy=parse_proxy(proxy),
        )


class BrowserPageSource:
    """Async context manager yielding rendered result pages per keyword."""

    def __init__(self, profile: LocationProfile, settings: BrowserSettings) -> None:
        self.profile = profile
        self.settings = settings
        self._playwright: Any = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserPageSource":
        launch_options: Dict[str, Any] = {
            "headless": self.settings.headless,
            "locale": self.profile.locale,
            "timezone_id": self.profile.timezone_id,
            "args": LAUNCH_ARGS,
        }
        if self.settings.proxy:
            launch_options["proxy"] = self.settings.proxy
            logger.info(f"Proxy configured: {self.settings.proxy['server']}")

        self.settings.profile_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()
        try:
            self._context = await self._playwright.chromium.launch_persistent_context(
                str(self.settings.profile_dir),
                **launch_options,
            )
            pages = self._context.pages
            self._page = pages[0] if pages else await self._context.new_page()
            await self._open_home()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
            logger.info("Browser closed")
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self._page = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser page source is not open")
        return self._page

    async def _open_home(self) -> None:
        await self.page.goto(
            f"https://{self.profile.search_domain}",
            wait_until="domcontentloaded",
            timeout=self.settings.navigation_timeout_ms,
        )
        try:
            await self.page.locator(CONSENT_SELECTOR).first.click(
                timeout=self.settings.consent_timeout_ms
            )
            logger.info("Cookie consent accepted")
            await asyncio.sleep(1)
        except PlaywrightError:
            logger.debug("No consent dialog shown")

    async def fetch(self, keyword: str) -> RenderedPage:
        """Navigate to the results page for ``keyword`` and snapshot it."""
        url = build_search_url(keyword, self.profile, self.settings.language)
        logger.debug(f"Navigating to {url}")
        await self.page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self.settings.navigation_timeout_ms,
        )
        await self.page.wait_for_selector(RESULTS_SELECTOR, timeout=self.settings.results_timeout_ms)
        await asyncio.sleep(self.settings.settle_seconds)

        stamped = await self.page.evaluate(STAMP_OFFSETS_JS, OFFSET_ATTRIBUTE)
        logger.debug(f"Stamped offsets on {stamped} elements")

        html = await self.page.content()
        return RenderedPage(html=html, url=self.page.url, captured_at=utc_now())

    async def capture_debug(self, keyword: str, debug_dir: Path) -> List[Path]:
        """Save viewport and full-page screenshots of the current page."""
        debug_dir.mkdir(parents=True, exist_ok=True)
        stem = debug_file_stem(keyword)
        viewport_path = debug_dir / f"{stem}.png"
        full_path = debug_dir / f"{stem}_full.png"

        await self.page.screenshot(path=str(viewport_path), full_page=False)
        await self.page.screenshot(path=str(full_path), full_page=True)
        return [viewport_path, full_path]

"""
Headless-browser page loading behind a small driver interface.

The crawl logic only needs "load this URL and give me the rendered HTML,
status and headers". PlaywrightPageDriver does that with one Chromium
process per crawl and a fresh tab per URL; tests substitute a fake driver
that serves canned HTML.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import structlog
from playwright.async_api import Browser, Page, Playwright, async_playwright

from site_analyzer.core.config import get_settings
from site_analyzer.engines.base import BrowserLaunchError

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass
class PageSnapshot:
    """Raw result of one navigation. `error` is set when the load failed."""
    url: str
    status: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    html: str = ""
    load_time_ms: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class PageDriver(ABC):
    """
    Browser capability used by the crawler.

    Usage:
        async with driver:
            snapshot = await driver.load(url)
    """

    async def __aenter__(self) -> PageDriver:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @abstractmethod
    async def start(self) -> None:
        """Acquire the browser. Raises BrowserLaunchError on failure."""

    @abstractmethod
    async def load(self, url: str) -> PageSnapshot:
        """Navigate to url and capture the rendered page. Must not raise for navigation errors."""

    @abstractmethod
    async def close(self) -> None:
        """Release every browser resource. Safe to call more than once."""


class PlaywrightPageDriver(PageDriver):
    """Chromium via Playwright, waiting for network idle on every page."""

    def __init__(
        self,
        timeout_ms: int | None = None,
        user_agent: str | None = None,
        browser_args: list[str] | None = None,
    ):
        self.timeout_ms = timeout_ms or settings.CRAWLER_PAGE_LOAD_TIMEOUT_MS
        self.user_agent = user_agent or settings.CRAWLER_USER_AGENT
        self.browser_args = browser_args if browser_args is not None else settings.CRAWLER_BROWSER_ARGS
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def start(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=True, args=self.browser_args)
        except Exception as e:
            await self.close()
            raise BrowserLaunchError(f"Could not launch headless browser: {e}") from e
        logger.debug("Browser launched")

    async def load(self, url: str) -> PageSnapshot:
        if self._browser is None:
            raise RuntimeError("PlaywrightPageDriver.load() called before start()")

        start = time.perf_counter()
        page: Page | None = None
        try:
            page = await self._browser.new_page(user_agent=self.user_agent)
            response = await page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
            load_time_ms = int((time.perf_counter() - start) * 1000)
            html = await page.content()

            return PageSnapshot(
                url=url,
                status=response.status if response else 0,
                headers={k.lower(): v for k, v in (await response.all_headers()).items()} if response else {},
                html=html,
                load_time_ms=load_time_ms,
            )

        except Exception as e:
            logger.warning("Page load failed", url=url, error=str(e))
            return PageSnapshot(
                url=url,
                load_time_ms=int((time.perf_counter() - start) * 1000),
                error=str(e) or e.__class__.__name__,
            )
        finally:
            if page:
                await page.close()

    async def close(self) -> None:
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning("Browser close failed", error=str(e))
        if playwright is not None:
            await playwright.stop()
        logger.debug("Browser closed")

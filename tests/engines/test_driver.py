"""
Tests for PlaywrightPageDriver.load() with a mocked browser. No Chromium is launched.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from site_analyzer.engines.crawler.driver import PlaywrightPageDriver

URL = "https://example.com/page"


def driver_with_page(page: MagicMock) -> PlaywrightPageDriver:
    driver = PlaywrightPageDriver(timeout_ms=1000, user_agent="test-agent", browser_args=[])
    browser = MagicMock()
    browser.new_page = AsyncMock(return_value=page)
    driver._browser = browser
    return driver


def mock_page(response=None, html: str = "<html><body>ok</body></html>") -> MagicMock:
    page = MagicMock()
    page.goto = AsyncMock(return_value=response)
    page.content = AsyncMock(return_value=html)
    page.close = AsyncMock()
    return page


class TestPlaywrightPageDriver:

    @pytest.mark.asyncio
    async def test_navigation_response_status_and_headers(self):
        response = MagicMock(status=301)
        response.all_headers = AsyncMock(return_value={"X-Robots-Tag": "noindex"})
        page = mock_page(response)

        snapshot = await driver_with_page(page).load(URL)

        assert snapshot.status == 301
        assert snapshot.headers == {"x-robots-tag": "noindex"}
        assert not snapshot.failed
        page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_navigation_response_has_status_zero(self):
        page = mock_page(response=None)

        snapshot = await driver_with_page(page).load(URL)

        assert snapshot.status == 0
        assert snapshot.headers == {}
        assert snapshot.html == "<html><body>ok</body></html>"
        assert not snapshot.failed
        page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_navigation_error_is_captured(self):
        page = mock_page()
        page.goto = AsyncMock(side_effect=TimeoutError("Timeout 1000ms exceeded"))

        snapshot = await driver_with_page(page).load(URL)

        assert snapshot.failed
        assert snapshot.status == 0
        assert "Timeout" in snapshot.error
        page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_load_before_start_raises(self):
        with pytest.raises(RuntimeError):
            await PlaywrightPageDriver().load(URL)

"""
Shared fixtures: a canned-HTML page driver and a mock HTTP client.
No browser or network is touched by the test suite.
"""

import httpx
import pytest

from site_analyzer.engines.base import BrowserLaunchError
from site_analyzer.engines.crawler.driver import PageDriver, PageSnapshot

NOT_FOUND_HTML = "<html><head><title>Not Found</title></head><body>Gone</body></html>"


class FakePageDriver(PageDriver):
    """
    Serves canned HTML per URL.

    Unknown URLs answer 404. URLs listed in `failures` behave like a
    navigation timeout. `launch_error` makes start() fail.
    """

    def __init__(
        self,
        pages: dict[str, str] | None = None,
        statuses: dict[str, int] | None = None,
        headers: dict[str, dict[str, str]] | None = None,
        failures: set[str] | None = None,
        load_times: dict[str, int] | None = None,
        launch_error: bool = False,
    ):
        self.pages = pages or {}
        self.statuses = statuses or {}
        self.headers = headers or {}
        self.failures = failures or set()
        self.load_times = load_times or {}
        self.launch_error = launch_error
        self.loaded: list[str] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        if self.launch_error:
            raise BrowserLaunchError("chromium executable not found")
        self.started = True

    async def load(self, url: str) -> PageSnapshot:
        self.loaded.append(url)
        if url in self.failures:
            return PageSnapshot(url=url, load_time_ms=30_000, error="Timeout 30000ms exceeded")
        if url not in self.pages:
            return PageSnapshot(url=url, status=404, html=NOT_FOUND_HTML, load_time_ms=100)
        return PageSnapshot(
            url=url,
            status=self.statuses.get(url, 200),
            headers={k.lower(): v for k, v in self.headers.get(url, {}).items()},
            html=self.pages[url],
            load_time_ms=self.load_times.get(url, 250),
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_driver():
    """The FakePageDriver class, for tests to build with their own pages."""
    return FakePageDriver


@pytest.fixture
def mock_http():
    """
    Build an httpx.AsyncClient answering from a {url: response} map.
    Values are a body (str/bytes, served as 200) or an httpx.Response.
    Anything else is a 404.
    """
    def factory(routes: dict) -> httpx.AsyncClient:
        def handler(request: httpx.Request) -> httpx.Response:
            route = routes.get(str(request.url))
            if route is None:
                return httpx.Response(404, text="not found")
            if isinstance(route, httpx.Response):
                return route
            if isinstance(route, bytes):
                return httpx.Response(200, content=route)
            return httpx.Response(200, text=route)

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


def html_page(
    title: str = "Page",
    body: str = "",
    head: str = "",
    canonical: str | None = None,
) -> str:
    canonical_tag = f'<link rel="canonical" href="{canonical}">' if canonical else ""
    return (
        f"<html><head><title>{title}</title>{canonical_tag}{head}</head>"
        f"<body>{body}</body></html>"
    )


@pytest.fixture
def make_html():
    return html_page

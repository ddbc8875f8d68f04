"""
End-to-end tests for SiteAnalyzerEngine with a fake driver and mocked HTTP.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from site_analyzer.engines.base import SiteAnalysisRequest
from site_analyzer.engines.issues.engine import IssueSynthesizer, RuleBasedIssueSynthesizer
from site_analyzer.engines.site.engine import SiteAnalyzerEngine, crawl_and_analyze_site, resolve_max_pages

ROOT = "https://example.com"


class RecordingFactory:
    """Driver factory that remembers the drivers it built."""

    def __init__(self, driver_cls, **driver_kwargs):
        self.driver_cls = driver_cls
        self.driver_kwargs = driver_kwargs
        self.built = []

    def __call__(self):
        driver = self.driver_cls(**self.driver_kwargs)
        self.built.append(driver)
        return driver


class FailingSynthesizer(IssueSynthesizer):
    name = "failing"

    async def synthesize(self, report, url, category):
        raise RuntimeError("model unavailable")


@pytest.fixture
def site(make_html):
    return {
        ROOT: make_html(title="Home", canonical=f"{ROOT}/", body='<a href="/about">About</a><a href="/private/x">P</a>'),
        f"{ROOT}/about": make_html(title="About", canonical=f"{ROOT}/about"),
        f"{ROOT}/private/x": make_html(title="Private"),
    }


class TestResolveMaxPages:

    def test_default(self):
        assert resolve_max_pages(None) == 15

    def test_capped(self):
        assert resolve_max_pages(10_000) == 200

    def test_rejects_below_one(self):
        from site_analyzer.engines.base import InvalidCrawlBudgetError
        with pytest.raises(InvalidCrawlBudgetError):
            resolve_max_pages(0)


class TestSiteAnalyzerEngine:

    @pytest.mark.asyncio
    async def test_single_page_without_sitemap(self, fake_driver, mock_http, make_html):
        factory = RecordingFactory(fake_driver, pages={ROOT: make_html(title="Solo")})
        engine = SiteAnalyzerEngine(
            driver_factory=factory,
            http_client=mock_http({}),
            synthesizer=RuleBasedIssueSynthesizer(),
        )

        result = await engine.execute(SiteAnalysisRequest(base_url=f"{ROOT}/", max_pages=1))

        assert result.success
        assert result.status == "success"
        assert result.report.summary.total_pages == 1
        assert not result.report.sitemap.has_sitemap
        assert result.report.sitemap.crawled_not_in_sitemap.count == 1
        assert "sitemap-missing" in [i.rule_id for i in result.issues]
        assert factory.built[0].started and factory.built[0].closed

    @pytest.mark.asyncio
    async def test_full_pipeline(self, fake_driver, mock_http, site):
        http = mock_http({
            f"{ROOT}/robots.txt": "User-agent: *\nDisallow: /private\n",
            f"{ROOT}/sitemap.xml": (
                '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
                f"<url><loc>{ROOT}/</loc></url><url><loc>{ROOT}/pricing</loc></url></urlset>"
            ),
        })
        engine = SiteAnalyzerEngine(
            driver_factory=RecordingFactory(fake_driver, pages=site),
            http_client=http,
            synthesizer=RuleBasedIssueSynthesizer(),
        )

        result = await engine.execute(SiteAnalysisRequest(base_url=ROOT, max_pages=10))
        report = result.report

        assert [p.url for p in report.pages] == [ROOT, f"{ROOT}/about", f"{ROOT}/private/x"]
        assert report.robots_txt.has_robots_txt
        assert report.robots_txt.blocked_urls == [f"{ROOT}/private/x"]
        assert report.indexing_health.blocked_by_robots_txt.count == 1
        assert report.sitemap.in_sitemap_not_crawled.urls == [f"{ROOT}/pricing"]
        assert report.sitemap.crawled_not_in_sitemap.urls == [f"{ROOT}/about", f"{ROOT}/private/x"]
        assert report.canonical_health.canonical_pages.count == 2
        assert result.metadata["sitemap_urls_found"] == 2
        assert result.metadata["issue_source"] == "rules"

    @pytest.mark.asyncio
    async def test_invalid_url_fails_before_browser(self, fake_driver, mock_http):
        factory = RecordingFactory(fake_driver)
        engine = SiteAnalyzerEngine(driver_factory=factory, http_client=mock_http({}))

        result = await engine.execute(SiteAnalysisRequest(base_url="not-a-url"))

        assert not result.success
        assert result.status == "failed"
        assert result.error["type"] == "invalid_url"
        assert result.report is None
        assert factory.built == []

    @pytest.mark.asyncio
    async def test_invalid_budget(self, fake_driver, mock_http):
        factory = RecordingFactory(fake_driver)
        engine = SiteAnalyzerEngine(driver_factory=factory, http_client=mock_http({}))
        result = await engine.execute(SiteAnalysisRequest(base_url=ROOT, max_pages=0))
        assert result.error["type"] == "invalid_max_pages"
        assert factory.built == []

    @pytest.mark.asyncio
    async def test_browser_launch_failure(self, fake_driver, mock_http):
        engine = SiteAnalyzerEngine(
            driver_factory=RecordingFactory(fake_driver, launch_error=True),
            http_client=mock_http({}),
            synthesizer=RuleBasedIssueSynthesizer(),
        )
        result = await engine.execute(SiteAnalysisRequest(base_url=ROOT))
        assert not result.success
        assert result.error["type"] == "browser_launch_failed"

    @pytest.mark.asyncio
    async def test_synthesizer_failure_keeps_report(self, fake_driver, mock_http, site):
        engine = SiteAnalyzerEngine(
            driver_factory=RecordingFactory(fake_driver, pages=site),
            http_client=mock_http({}),
            synthesizer=FailingSynthesizer(),
        )
        result = await engine.execute(SiteAnalysisRequest(base_url=ROOT))
        assert result.success
        assert result.report.summary.total_pages == 3
        assert result.issues is None
        assert result.metadata["issue_source"] is None

    @pytest.mark.asyncio
    async def test_synthesizer_receives_report_and_url(self, fake_driver, mock_http, site):
        synthesizer = RuleBasedIssueSynthesizer()
        synthesizer.synthesize = AsyncMock(return_value=[])
        engine = SiteAnalyzerEngine(
            driver_factory=RecordingFactory(fake_driver, pages=site),
            http_client=mock_http({}),
            synthesizer=synthesizer,
            category="technical",
        )
        result = await engine.execute(SiteAnalysisRequest(base_url=ROOT))

        report, url, category = synthesizer.synthesize.await_args.args
        assert report == result.report
        assert url == ROOT
        assert category == "technical"
        assert result.category == "technical"

    @pytest.mark.asyncio
    async def test_cancelled_crawl_is_partial(self, fake_driver, mock_http, site):
        cancel = asyncio.Event()
        cancel.set()
        engine = SiteAnalyzerEngine(
            driver_factory=RecordingFactory(fake_driver, pages=site),
            http_client=mock_http({}),
            synthesizer=RuleBasedIssueSynthesizer(),
            cancel_event=cancel,
        )
        result = await engine.execute(SiteAnalysisRequest(base_url=ROOT))
        assert result.success
        assert result.status == "partial"
        assert result.report.summary.total_pages == 0

    @pytest.mark.asyncio
    async def test_payload_is_camel_case(self, fake_driver, mock_http, site):
        result = await crawl_and_analyze_site(
            ROOT,
            max_pages=2,
            driver_factory=RecordingFactory(fake_driver, pages=site),
            http_client=mock_http({}),
            synthesizer=RuleBasedIssueSynthesizer(),
        )
        payload = result.to_payload()

        assert payload["success"] is True
        assert payload["report"]["summary"]["totalPages"] == 2
        assert "isSoft404" in payload["report"]["pages"][0]
        assert "links" not in payload["report"]["pages"][0]
        assert payload["issues"][0]["rule_id"]

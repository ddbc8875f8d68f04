"""
Site Analyzer Engine - crawlAndAnalyzeSite end to end.

Flow:
1. Validate the seed URL and page budget (before any browser exists)
2. Fetch robots.txt and the sitemap over plain HTTP
3. Launch one headless browser and run the BFS crawl
4. Aggregate pages + robots + sitemap into the SiteWideReport
5. Hand the report (with its URL) to the issue synthesizer
"""

from __future__ import annotations

import asyncio
from typing import Callable

import httpx

from site_analyzer.core.config import get_settings
from site_analyzer.engines.aggregator.engine import build_site_wide_report
from site_analyzer.engines.base import (
    AuditEngine,
    EngineStatus,
    InvalidCrawlBudgetError,
    Issue,
    SiteAnalysisRequest,
    SiteAnalysisResult,
    SiteWideReport,
)
from site_analyzer.engines.crawler.driver import PageDriver, PlaywrightPageDriver
from site_analyzer.engines.crawler.engine import CrawlOrchestrator, CrawlSession
from site_analyzer.engines.crawler.extractor import PageExtractor
from site_analyzer.engines.crawler.normalizer import validate_base_url
from site_analyzer.engines.crawler.robots import RobotsTxtData, RobotsTxtFetcher
from site_analyzer.engines.crawler.sitemap import SitemapData, SitemapFetcher
from site_analyzer.engines.issues.engine import IssueSynthesizer, get_issue_synthesizer

settings = get_settings()


def resolve_max_pages(max_pages: int | None) -> int:
    """Default when omitted, capped at the configured ceiling."""
    if max_pages is None:
        return settings.CRAWLER_DEFAULT_MAX_PAGES
    if max_pages < 1:
        raise InvalidCrawlBudgetError(f"max_pages must be at least 1, got {max_pages}")
    return min(max_pages, settings.CRAWLER_MAX_PAGES_CEILING)


class SiteAnalyzerEngine(AuditEngine):
    """
    Crawl a site with a headless browser and build its site-wide SEO report.

    Collaborators are injectable so the crawl can run against fakes:
    - driver_factory: builds the PageDriver (Playwright by default)
    - http_client: used for robots.txt and sitemap fetches
    - synthesizer: produces the issue list from the finished report
    """

    ENGINE_NAME = "site_analyzer"

    def __init__(
        self,
        driver_factory: Callable[[], PageDriver] | None = None,
        http_client: httpx.AsyncClient | None = None,
        synthesizer: IssueSynthesizer | None = None,
        category: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        super().__init__()
        self.driver_factory = driver_factory or PlaywrightPageDriver
        self.http_client = http_client
        self.synthesizer = synthesizer or get_issue_synthesizer()
        self.category = category or settings.ISSUE_CATEGORY
        self.cancel_event = cancel_event

    async def run(self, request: SiteAnalysisRequest) -> SiteAnalysisResult:
        base_url = validate_base_url(request.base_url)
        max_pages = resolve_max_pages(request.max_pages)

        robots, sitemap = await self._fetch_site_files(base_url)

        session = CrawlSession(base_url=base_url, max_pages=max_pages)
        async with self.driver_factory() as driver:
            extractor = PageExtractor(driver=driver, robots=robots, hostname=session.hostname)
            orchestrator = CrawlOrchestrator(extractor, cancel_event=self.cancel_event)
            pages = await orchestrator.crawl(session)

        report = build_site_wide_report(pages, robots, sitemap)
        issues = await self._synthesize(report, base_url)
        stats = orchestrator.stats.as_dict()

        return SiteAnalysisResult(
            success=True,
            status=EngineStatus.PARTIAL if orchestrator.stats.cancelled else EngineStatus.SUCCESS,
            url=base_url,
            category=self.category,
            report=report,
            issues=issues,
            metadata={
                "crawl_stats": stats,
                "max_pages": max_pages,
                "sitemap_urls_found": len(sitemap.urls),
                "issue_source": self.synthesizer.name if issues is not None else None,
            },
        )

    async def _fetch_site_files(self, base_url: str) -> tuple[RobotsTxtData, SitemapData]:
        if self.http_client is not None:
            return await self._fetch_with(self.http_client, base_url)

        headers = {
            "User-Agent": settings.CRAWLER_USER_AGENT,
            "Accept": "application/xml,text/xml,text/plain,*/*;q=0.8",
        }
        async with httpx.AsyncClient(headers=headers, follow_redirects=True) as client:
            return await self._fetch_with(client, base_url)

    async def _fetch_with(self, client: httpx.AsyncClient, base_url: str) -> tuple[RobotsTxtData, SitemapData]:
        robots = await RobotsTxtFetcher(client).fetch(base_url)
        sitemap = await SitemapFetcher(client).fetch(base_url, declared=robots.sitemap_directives)
        return robots, sitemap

    async def _synthesize(self, report: SiteWideReport, url: str) -> list[Issue] | None:
        try:
            return await self.synthesizer.synthesize(report, url, self.category)
        except Exception as e:
            self.logger.warning(
                "Issue synthesis failed",
                synthesizer=self.synthesizer.name,
                url=url,
                error=str(e),
                exc_info=True,
            )
            return None


async def crawl_and_analyze_site(
    base_url: str,
    max_pages: int | None = None,
    **engine_kwargs,
) -> SiteAnalysisResult:
    """Run a full site analysis. Always returns a result carrying a `success` flag."""
    engine = SiteAnalyzerEngine(**engine_kwargs)
    return await engine.execute(SiteAnalysisRequest(base_url=base_url, max_pages=max_pages))

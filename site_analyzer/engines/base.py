"""
Base class and type contracts for the site analysis engines.
Every engine MUST inherit from AuditEngine and implement run().

Design principles:
- Engines are stateless: all per-crawl state lives in the CrawlSession
- Engines return a standardized SiteAnalysisResult
- Fatal conditions surface as SiteAnalysisError subclasses and are turned
  into a structured error payload by execute()
- Per-page and per-resource failures never escape an engine
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────

class SiteAnalysisError(Exception):
    """Base class for conditions that abort a site analysis."""

    error_type = "site_analysis_error"


class InvalidSiteURLError(SiteAnalysisError, ValueError):
    """The seed URL is not an absolute http(s) URL."""

    error_type = "invalid_url"


class InvalidCrawlBudgetError(SiteAnalysisError, ValueError):
    """max_pages is below 1."""

    error_type = "invalid_max_pages"


class BrowserLaunchError(SiteAnalysisError):
    """The headless browser could not be started."""

    error_type = "browser_launch_failed"


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class Severity(str, Enum):
    CRITICAL = "critical"   # Prevents indexing or crawling
    HIGH = "high"           # Major ranking or crawl-efficiency impact
    MEDIUM = "medium"       # Relevance or performance optimization
    LOW = "low"             # Best-practice improvement
    INFO = "info"


class IssueCategory(str, Enum):
    CRAWLABILITY = "crawlability"
    INDEXING = "indexing"
    CANONICAL = "canonical"
    ON_PAGE = "on_page"
    PERFORMANCE = "performance"
    SOCIAL = "social"
    SCHEMA = "schema"
    SITEMAP = "sitemap"


class EngineStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"       # Crawl cancelled before the budget was spent
    FAILED = "failed"


class CanonicalType(str, Enum):
    SELF = "self"
    CROSS_DOMAIN = "cross-domain"
    MISSING = "missing"
    CONFLICTING = "conflicting"


class PerformanceBucket(str, Enum):
    FAST = "fast"
    MODERATE = "moderate"
    SLOW = "slow"
    ERROR = "error"


class SiteType(str, Enum):
    STATIC = "static"
    HYBRID = "hybrid"
    DYNAMIC = "dynamic"


class SocialPlatform(str, Enum):
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"
    INSTAGRAM = "instagram"
    WHATSAPP = "whatsapp"
    SLACK = "slack"
    DISCORD = "discord"
    TWITTER = "twitter"
    PINTEREST = "pinterest"


# ─────────────────────────────────────────────
# Page-level types
# ─────────────────────────────────────────────

class ReportModel(BaseModel):
    """Report models serialize with camelCase keys (model_dump(by_alias=True))."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class SocialMedia(ReportModel):
    open_graph: dict[str, str] = Field(default_factory=dict)
    twitter: dict[str, str] = Field(default_factory=dict)
    platforms_covered: list[str] = Field(default_factory=list)
    platforms_not_covered: list[str] = Field(default_factory=list)


class StructuredData(ReportModel):
    has_schema: bool = False
    total_schemas: int = 0
    schemas: list[Any] = Field(default_factory=list)


class PageAnalysis(ReportModel):
    """Everything learned about one crawled URL. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    url: str
    status: int = 0
    load_time_ms: int = Field(ge=0, default=0)
    size_kb: int = 0
    on_page_performance: PerformanceBucket = PerformanceBucket.ERROR

    title: str = ""
    meta_description: str = ""
    h1_count: int = 0
    image_count: int = 0
    images_with_alt: int = 0
    dynamic_score: int = Field(ge=0, le=100, default=0)

    robots_meta_tag: str | None = None
    x_robots_tag: str | None = None
    is_indexable: bool = True
    indexing_issues: list[str] = Field(default_factory=list)

    canonical_url: str | None = None
    canonical_type: CanonicalType = CanonicalType.MISSING
    canonical_issues: list[str] = Field(default_factory=list)

    is_soft404: bool = Field(default=False, alias="isSoft404")
    is_server_error: bool = False
    crawl_error: str | None = None

    social_media: SocialMedia = Field(default_factory=SocialMedia)
    structured_data: StructuredData = Field(default_factory=StructuredData)

    # Same-host links discovered on the page; feeds the frontier, not the report
    links: list[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="after")
    def check_alt_coverage(self) -> PageAnalysis:
        if self.images_with_alt > self.image_count:
            raise ValueError("images_with_alt cannot exceed image_count")
        return self


# ─────────────────────────────────────────────
# Site-wide report types
# ─────────────────────────────────────────────

class ImageSummary(ReportModel):
    total: int = 0
    with_alt: int = 0
    alt_coverage_percent: int = 0


class HeadingSummary(ReportModel):
    average_h1_per_page: float = 0.0


class PerformanceSummary(ReportModel):
    total_pages: int = 0
    on_page_performance_score: int = 50
    average_load_time_ms: int = 0
    fast_pages: int = 0
    moderate_pages: int = 0
    slow_pages: int = 0
    error_pages: int = 0
    dynamic_score_average: int = 0
    site_type: SiteType = SiteType.STATIC
    images: ImageSummary = Field(default_factory=ImageSummary)
    headings: HeadingSummary = Field(default_factory=HeadingSummary)


class PageGroup(ReportModel):
    """A counted bucket of pages with per-page detail rows."""
    count: int = 0
    pages: list[dict[str, Any]] = Field(default_factory=list)


class UrlGroup(ReportModel):
    count: int = 0
    pages: list[str] = Field(default_factory=list)


class IndexingHealth(ReportModel):
    index_health_score: int = 0
    indexed_pages: int = 0
    not_indexed_pages: int = 0
    crawl_success_rate: str = "0%"
    blocked_by_robots_txt: PageGroup = Field(default_factory=PageGroup)
    noindex_pages: PageGroup = Field(default_factory=PageGroup)
    crawled_not_indexed: PageGroup = Field(default_factory=PageGroup)
    soft404_pages: PageGroup = Field(default_factory=PageGroup, alias="soft404Pages")
    server_error_pages: PageGroup = Field(default_factory=PageGroup)
    note: str | None = None


class DuplicateCanonicalGroup(ReportModel):
    canonical_url: str
    duplicate_urls: list[str] = Field(default_factory=list)
    count: int = 0


class DuplicateCanonicals(ReportModel):
    count: int = 0
    groups: list[DuplicateCanonicalGroup] = Field(default_factory=list)


class CanonicalHealth(ReportModel):
    canonical_health_score: int = 0
    canonical_pages: UrlGroup = Field(default_factory=UrlGroup)
    non_canonical_pages: PageGroup = Field(default_factory=PageGroup)
    conflicting_canonicals: PageGroup = Field(default_factory=PageGroup)
    duplicate_canonicals: DuplicateCanonicals = Field(default_factory=DuplicateCanonicals)
    cross_domain_canonicals: PageGroup = Field(default_factory=PageGroup)
    missing_canonicals: UrlGroup = Field(default_factory=UrlGroup)
    note: str | None = None


class RobotsTxtSection(ReportModel):
    has_robots_txt: bool = False
    blocked_urls_count: int = 0
    blocked_urls: list[str] = Field(default_factory=list)


class UrlSample(ReportModel):
    """A capped example list; `note` explains truncation."""
    count: int = 0
    urls: list[str] = Field(default_factory=list)
    note: str | None = None


class SitemapSection(ReportModel):
    has_sitemap: bool = False
    total_urls_in_sitemap: int = 0
    sitemap_urls: list[str] = Field(default_factory=list)
    in_sitemap_not_crawled: UrlSample = Field(default_factory=UrlSample)
    crawled_not_in_sitemap: UrlSample = Field(default_factory=UrlSample)
    urls_in_multiple_sitemaps: UrlSample = Field(default_factory=UrlSample)
    # to_camel would capitalize the letter after the digits
    sitemaps_over_50k_urls: UrlGroup = Field(default_factory=UrlGroup, alias="sitemapsOver50kUrls")
    sitemaps_over_50mb: UrlGroup = Field(default_factory=UrlGroup, alias="sitemapsOver50mb")
    total_nested_sitemaps: int = 0


class SiteWideReport(ReportModel):
    summary: PerformanceSummary = Field(default_factory=PerformanceSummary)
    indexing_health: IndexingHealth = Field(default_factory=IndexingHealth)
    canonical_health: CanonicalHealth = Field(default_factory=CanonicalHealth)
    robots_txt: RobotsTxtSection = Field(default_factory=RobotsTxtSection)
    sitemap: SitemapSection = Field(default_factory=SitemapSection)
    pages: list[PageAnalysis] = Field(default_factory=list)


# ─────────────────────────────────────────────
# Issues and results
# ─────────────────────────────────────────────

class Issue(BaseModel):
    """A single SEO issue derived from a finished report."""
    rule_id: str
    title: str
    description: str = ""
    severity: Severity
    category: IssueCategory = IssueCategory.CRAWLABILITY
    affected_urls: list[str] = Field(default_factory=list)
    affected_count: int = 0
    impact_score: float = Field(ge=0.0, le=100.0, default=0.0)
    effort_score: float = Field(ge=0.0, le=10.0, default=5.0)  # 1-10 scale
    priority_score: float = 0.0
    recommendation: str = ""
    source: str = "rules"    # rules | ai

    model_config = ConfigDict(use_enum_values=True)


class SiteAnalysisRequest(BaseModel):
    base_url: str
    max_pages: int | None = None


class SiteAnalysisResult(BaseModel):
    """Standardized output of a site analysis. `success` is always present."""
    success: bool
    status: EngineStatus
    url: str
    category: str = "site-analysis"
    report: SiteWideReport | None = None
    issues: list[Issue] | None = None
    error: dict[str, str] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    execution_time_ms: float = 0.0

    model_config = ConfigDict(use_enum_values=True)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase report keys."""
        payload = self.model_dump(mode="json", exclude={"report"})
        if self.report is not None:
            payload["report"] = self.report.model_dump(mode="json", by_alias=True)
        return payload


# ─────────────────────────────────────────────
# Base Engine
# ─────────────────────────────────────────────

class AuditEngine(ABC):
    """
    Abstract base class for site analysis engines.

    All engines MUST:
    1. Implement run(request) -> SiteAnalysisResult
    2. Raise SiteAnalysisError only for conditions that make the run impossible
    3. Be stateless - store nothing on self between calls
    """

    ENGINE_NAME: str = "base"

    def __init__(self):
        self.logger = structlog.get_logger(self.__class__.__name__)

    @abstractmethod
    async def run(self, request: SiteAnalysisRequest) -> SiteAnalysisResult:
        """
        Execute the engine against one site.

        Args:
            request: Seed URL and crawl budget

        Returns:
            SiteAnalysisResult with the report and synthesized issues
        """
        ...

    async def execute(self, request: SiteAnalysisRequest) -> SiteAnalysisResult:
        """
        Wrapper around run() that adds timing, logging, and error handling.
        Call this instead of run() directly.
        """
        start = time.perf_counter()
        self.logger.info(
            "Engine starting",
            engine=self.ENGINE_NAME,
            url=request.base_url,
            max_pages=request.max_pages,
        )

        try:
            result = await self.run(request)
            elapsed = (time.perf_counter() - start) * 1000
            result.execution_time_ms = elapsed
            self.logger.info(
                "Engine complete",
                engine=self.ENGINE_NAME,
                url=request.base_url,
                status=result.status,
                page_count=len(result.report.pages) if result.report else 0,
                elapsed_ms=round(elapsed, 2),
            )
            return result

        except SiteAnalysisError as exc:
            elapsed = (time.perf_counter() - start) * 1000
            self.logger.error(
                "Engine aborted",
                engine=self.ENGINE_NAME,
                url=request.base_url,
                error_type=exc.error_type,
                error=str(exc),
                elapsed_ms=round(elapsed, 2),
            )
            return self._failure(request, exc.error_type, str(exc), elapsed)

        except Exception as exc:
            elapsed = (time.perf_counter() - start) * 1000
            self.logger.error(
                "Engine failed",
                engine=self.ENGINE_NAME,
                url=request.base_url,
                error=str(exc),
                elapsed_ms=round(elapsed, 2),
                exc_info=True,
            )
            return self._failure(request, "internal_error", "Site analysis failed unexpectedly", elapsed)

    @staticmethod
    def _failure(request: SiteAnalysisRequest, error_type: str, message: str, elapsed: float) -> SiteAnalysisResult:
        return SiteAnalysisResult(
            success=False,
            status=EngineStatus.FAILED,
            url=request.base_url,
            error={"type": error_type, "message": message},
            execution_time_ms=elapsed,
        )

"""
Site-Wide Aggregator - derives the SiteWideReport from crawled pages.

Pure: no network I/O, no mutation of its inputs. Formulas:
- averageLoadTimeMs      mean load time (0 with no pages)
- onPagePerformanceScore 90 / 80 / 70 / 50 for < 1s / < 2s / < 3s / slower
- siteType               mean dynamicScore > 50 dynamic, > 20 hybrid, else static
- indexHealthScore       indexable / total x 100, rounded
- canonicalHealthScore   self-canonical / total x 100, rounded
- sitemap reconciliation set differences of normalized URLs, 20 examples max
"""

from __future__ import annotations

import structlog

from site_analyzer.core.config import get_settings
from site_analyzer.engines.base import (
    CanonicalHealth,
    CanonicalType,
    DuplicateCanonicalGroup,
    DuplicateCanonicals,
    HeadingSummary,
    ImageSummary,
    IndexingHealth,
    PageAnalysis,
    PageGroup,
    PerformanceBucket,
    PerformanceSummary,
    RobotsTxtSection,
    SitemapSection,
    SiteType,
    SiteWideReport,
    UrlGroup,
    UrlSample,
)
from site_analyzer.engines.crawler.extractor import REASON_ROBOTS_TXT
from site_analyzer.engines.crawler.normalizer import URLNormalizer
from site_analyzer.engines.crawler.robots import RobotsTxtData
from site_analyzer.engines.crawler.sitemap import SitemapData

logger = structlog.get_logger(__name__)
settings = get_settings()

# Discrete buckets: (upper bound exclusive, score)
PERFORMANCE_SCORE_TABLE = ((1000, 90), (2000, 80), (3000, 70))
PERFORMANCE_SCORE_FLOOR = 50


def performance_score(average_load_time_ms: float) -> int:
    for upper, score in PERFORMANCE_SCORE_TABLE:
        if average_load_time_ms < upper:
            return score
    return PERFORMANCE_SCORE_FLOOR


def classify_site_type(dynamic_average: float) -> SiteType:
    if dynamic_average > 50:
        return SiteType.DYNAMIC
    if dynamic_average > 20:
        return SiteType.HYBRID
    return SiteType.STATIC


def percent(part: int, total: int) -> int:
    return round(part / total * 100) if total else 0


def capped_sample(urls: list[str], limit: int) -> UrlSample:
    note = f"Showing first {limit} of {len(urls)} URLs" if len(urls) > limit else None
    return UrlSample(count=len(urls), urls=urls[:limit], note=note)


def build_summary(pages: list[PageAnalysis]) -> PerformanceSummary:
    total = len(pages)
    average_load = round(sum(p.load_time_ms for p in pages) / total) if total else 0
    dynamic_average = round(sum(p.dynamic_score for p in pages) / total) if total else 0

    def bucket_count(bucket: PerformanceBucket) -> int:
        return sum(1 for p in pages if p.on_page_performance == bucket)

    total_images = sum(p.image_count for p in pages)
    with_alt = sum(p.images_with_alt for p in pages)
    average_h1 = round(sum(p.h1_count for p in pages) / total, 1) if total else 0.0

    return PerformanceSummary(
        total_pages=total,
        on_page_performance_score=performance_score(average_load),
        average_load_time_ms=average_load,
        fast_pages=bucket_count(PerformanceBucket.FAST),
        moderate_pages=bucket_count(PerformanceBucket.MODERATE),
        slow_pages=bucket_count(PerformanceBucket.SLOW),
        error_pages=bucket_count(PerformanceBucket.ERROR),
        dynamic_score_average=dynamic_average,
        site_type=classify_site_type(dynamic_average),
        images=ImageSummary(
            total=total_images,
            with_alt=with_alt,
            alt_coverage_percent=percent(with_alt, total_images),
        ),
        headings=HeadingSummary(average_h1_per_page=average_h1),
    )


def build_indexing_health(pages: list[PageAnalysis], partial_note: bool) -> IndexingHealth:
    total = len(pages)
    indexable = [p for p in pages if p.is_indexable]
    blocked = [p for p in pages if REASON_ROBOTS_TXT in p.indexing_issues]
    noindex = [p for p in pages if any("noindex" in reason for reason in p.indexing_issues)]
    crawled_not_indexed = [p for p in pages if not p.is_indexable and p.status == 200 and not p.is_soft404]
    soft_404 = [p for p in pages if p.is_soft404]
    server_errors = [p for p in pages if p.is_server_error]
    ok_count = sum(1 for p in pages if p.status == 200)

    return IndexingHealth(
        index_health_score=percent(len(indexable), total),
        indexed_pages=len(indexable),
        not_indexed_pages=total - len(indexable),
        crawl_success_rate=f"{percent(ok_count, total)}%",
        blocked_by_robots_txt=PageGroup(
            count=len(blocked),
            pages=[{"url": p.url, "issues": p.indexing_issues} for p in blocked],
        ),
        noindex_pages=PageGroup(
            count=len(noindex),
            pages=[
                {"url": p.url, "robotsTag": p.robots_meta_tag, "xRobotsTag": p.x_robots_tag, "issues": p.indexing_issues}
                for p in noindex
            ],
        ),
        crawled_not_indexed=PageGroup(
            count=len(crawled_not_indexed),
            pages=[{"url": p.url, "reason": ", ".join(p.indexing_issues)} for p in crawled_not_indexed],
        ),
        soft404_pages=PageGroup(
            count=len(soft_404),
            pages=[{"url": p.url, "title": p.title} for p in soft_404],
        ),
        server_error_pages=PageGroup(
            count=len(server_errors),
            pages=[{"url": p.url, "status": p.status, "error": p.crawl_error} for p in server_errors],
        ),
        note=f"Only {total} pages crawled. Full site may have more indexing issues." if partial_note else None,
    )


def build_canonical_health(pages: list[PageAnalysis], partial_note: bool) -> CanonicalHealth:
    total = len(pages)
    self_canonical = [p for p in pages if p.canonical_type == CanonicalType.SELF]
    missing = [p for p in pages if p.canonical_type == CanonicalType.MISSING]
    conflicting = [p for p in pages if p.canonical_type == CanonicalType.CONFLICTING]
    cross_domain = [p for p in pages if p.canonical_type == CanonicalType.CROSS_DOMAIN]

    # Pages pointing their canonical somewhere else, grouped by target
    duplicates: dict[str, list[str]] = {}
    for p in pages:
        if p.canonical_url and URLNormalizer.normalize(p.canonical_url) != URLNormalizer.normalize(p.url):
            duplicates.setdefault(p.canonical_url, []).append(p.url)

    return CanonicalHealth(
        canonical_health_score=percent(len(self_canonical), total),
        canonical_pages=UrlGroup(count=len(self_canonical), pages=[p.url for p in self_canonical]),
        non_canonical_pages=PageGroup(
            count=len(missing),
            pages=[{"url": p.url, "issues": p.canonical_issues} for p in missing],
        ),
        conflicting_canonicals=PageGroup(
            count=len(conflicting),
            pages=[
                {"url": p.url, "canonicalUrl": p.canonical_url, "issues": p.canonical_issues}
                for p in conflicting
            ],
        ),
        duplicate_canonicals=DuplicateCanonicals(
            count=len(duplicates),
            groups=[
                DuplicateCanonicalGroup(canonical_url=target, duplicate_urls=urls, count=len(urls))
                for target, urls in duplicates.items()
            ],
        ),
        cross_domain_canonicals=PageGroup(
            count=len(cross_domain),
            pages=[{"url": p.url, "canonicalUrl": p.canonical_url} for p in cross_domain],
        ),
        missing_canonicals=UrlGroup(count=len(missing), pages=[p.url for p in missing]),
        note=f"Only {total} pages checked. Full site may have more canonical issues." if partial_note else None,
    )


def build_sitemap_section(pages: list[PageAnalysis], sitemap: SitemapData, limit: int) -> SitemapSection:
    # dict.fromkeys keeps first-seen order for reproducible examples
    crawled = list(dict.fromkeys(URLNormalizer.normalize(p.url) for p in pages))
    listed = list(dict.fromkeys(URLNormalizer.normalize(u) for u in sitemap.urls))
    crawled_set, listed_set = set(crawled), set(listed)
    over_count, over_bytes = sitemap.oversized_by_count(), sitemap.oversized_by_bytes()

    return SitemapSection(
        has_sitemap=sitemap.has_sitemap,
        total_urls_in_sitemap=len(sitemap.urls),
        sitemap_urls=list(sitemap.sitemap_urls),
        in_sitemap_not_crawled=capped_sample([u for u in listed if u not in crawled_set], limit),
        crawled_not_in_sitemap=capped_sample([u for u in crawled if u not in listed_set], limit),
        urls_in_multiple_sitemaps=capped_sample(sitemap.urls_in_multiple_sitemaps(), limit),
        sitemaps_over_50k_urls=UrlGroup(count=len(over_count), pages=over_count),
        sitemaps_over_50mb=UrlGroup(count=len(over_bytes), pages=over_bytes),
        total_nested_sitemaps=sitemap.nested_sitemaps,
    )


def build_site_wide_report(
    pages: list[PageAnalysis],
    robots: RobotsTxtData,
    sitemap: SitemapData,
    sample_limit: int | None = None,
    partial_crawl_threshold: int | None = None,
) -> SiteWideReport:
    """Aggregate per-page analyses, robots.txt and sitemap data into one report."""
    limit = sample_limit if sample_limit is not None else settings.REPORT_SAMPLE_LIMIT
    threshold = partial_crawl_threshold if partial_crawl_threshold is not None else settings.PARTIAL_CRAWL_THRESHOLD
    partial = len(pages) < threshold

    report = SiteWideReport(
        summary=build_summary(pages),
        indexing_health=build_indexing_health(pages, partial),
        canonical_health=build_canonical_health(pages, partial),
        robots_txt=RobotsTxtSection(
            has_robots_txt=robots.has_robots_txt,
            blocked_urls_count=len(robots.blocked_urls),
            blocked_urls=list(robots.blocked_urls),
        ),
        sitemap=build_sitemap_section(pages, sitemap, limit),
        pages=list(pages),
    )

    logger.debug(
        "Site-wide report built",
        pages=len(pages),
        index_health=report.indexing_health.index_health_score,
        canonical_health=report.canonical_health.canonical_health_score,
    )
    return report

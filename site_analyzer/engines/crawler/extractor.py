"""
Page Fetch & Extract.

Turns one rendered page into a PageAnalysis: basic on-page facts, indexability
from three independent signals, canonical classification, soft-404 / server
error detection, social meta tags and JSON-LD blocks.
"""

from __future__ import annotations

import json
import re
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup

from site_analyzer.engines.base import (
    CanonicalType,
    PageAnalysis,
    PerformanceBucket,
    SocialMedia,
    SocialPlatform,
    StructuredData,
)
from site_analyzer.engines.crawler.driver import PageDriver, PageSnapshot
from site_analyzer.engines.crawler.normalizer import URLNormalizer
from site_analyzer.engines.crawler.robots import RobotsTxtData

logger = structlog.get_logger(__name__)

SCRIPT_WEIGHT = 8
FAST_THRESHOLD_MS = 1000
MODERATE_THRESHOLD_MS = 3000

# Heuristic: Open Graph tags are what these platforms read for link previews.
# Not verified against each platform's crawler.
OPEN_GRAPH_PLATFORMS = (
    SocialPlatform.FACEBOOK,
    SocialPlatform.LINKEDIN,
    SocialPlatform.INSTAGRAM,
    SocialPlatform.WHATSAPP,
    SocialPlatform.SLACK,
    SocialPlatform.DISCORD,
    SocialPlatform.PINTEREST,
)
TWITTER_PLATFORMS = (SocialPlatform.TWITTER,)

REASON_META_NOINDEX = "noindex in meta robots"
REASON_META_NOFOLLOW = "nofollow in meta robots"
REASON_HEADER_NOINDEX = "noindex in X-Robots-Tag header"
REASON_HEADER_NOFOLLOW = "nofollow in X-Robots-Tag header"
REASON_ROBOTS_TXT = "blocked by robots.txt"
REASON_LOAD_FAILED = "page failed to load"

_ROBOTS_NAME = re.compile(r"^robots$", re.IGNORECASE)
_DESCRIPTION_NAME = re.compile(r"^description$", re.IGNORECASE)


def performance_bucket(load_time_ms: int) -> PerformanceBucket:
    if load_time_ms < FAST_THRESHOLD_MS:
        return PerformanceBucket.FAST
    if load_time_ms < MODERATE_THRESHOLD_MS:
        return PerformanceBucket.MODERATE
    return PerformanceBucket.SLOW


def dynamic_score(script_count: int) -> int:
    return min(100, script_count * SCRIPT_WEIGHT)


def platform_coverage(open_graph: dict[str, str], twitter: dict[str, str]) -> tuple[list[str], list[str]]:
    covered: set[SocialPlatform] = set()
    if open_graph:
        covered.update(OPEN_GRAPH_PLATFORMS)
    if twitter:
        covered.update(TWITTER_PLATFORMS)
    # Enum order keeps both lists stable
    return (
        [p.value for p in SocialPlatform if p in covered],
        [p.value for p in SocialPlatform if p not in covered],
    )


def evaluate_indexability(
    url: str,
    robots_meta: str | None,
    x_robots: str | None,
    robots: RobotsTxtData,
) -> tuple[bool, list[str]]:
    """Each signal can independently make a page non-indexable. nofollow is reported only."""
    indexable = True
    reasons: list[str] = []

    if robots_meta:
        lowered = robots_meta.lower()
        if "noindex" in lowered:
            indexable = False
            reasons.append(REASON_META_NOINDEX)
        if "nofollow" in lowered:
            reasons.append(REASON_META_NOFOLLOW)

    if x_robots:
        lowered = x_robots.lower()
        if "noindex" in lowered:
            indexable = False
            reasons.append(REASON_HEADER_NOINDEX)
        if "nofollow" in lowered:
            reasons.append(REASON_HEADER_NOFOLLOW)

    if robots.is_blocked(url):
        indexable = False
        reasons.append(REASON_ROBOTS_TXT)

    return indexable, reasons


def classify_canonical(url: str, hrefs: list[str]) -> tuple[str | None, CanonicalType, list[str]]:
    """
    Classify the page's <link rel="canonical"> tags.

    More than one tag is always `conflicting`, whatever the targets are.
    """
    if not hrefs:
        return None, CanonicalType.MISSING, ["missing canonical tag"]

    first = hrefs[0].strip()
    canonical_url = urljoin(url, first) if first else None
    issues: list[str] = []

    if canonical_url is None:
        canonical_type = CanonicalType.MISSING
        issues.append("canonical tag has no href")
    elif URLNormalizer.normalize(canonical_url) == URLNormalizer.normalize(url):
        canonical_type = CanonicalType.SELF
    elif URLNormalizer.hostname(canonical_url) != URLNormalizer.hostname(url):
        canonical_type = CanonicalType.CROSS_DOMAIN
        issues.append("points to different domain")
    else:
        canonical_type = CanonicalType.CONFLICTING
        issues.append("points to different URL on same domain")

    if len(hrefs) > 1:
        canonical_type = CanonicalType.CONFLICTING
        issues.append(f"multiple canonical tags ({len(hrefs)})")

    return canonical_url, canonical_type, issues


def is_soft_404(status: int, title: str, body_text: str) -> bool:
    if status != 200:
        return False
    title_lower = title.lower()
    return "not found" in title_lower or "404" in title_lower or "page not found" in body_text.lower()


def parse_json_ld(soup: BeautifulSoup, url: str) -> list:
    schemas = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string if script.string is not None else script.get_text()
        try:
            schemas.append(json.loads(raw))
        except (json.JSONDecodeError, TypeError) as e:
            logger.debug("Skipping malformed JSON-LD block", url=url, error=str(e))
    return schemas


def discover_links(soup: BeautifulSoup, page_url: str, hostname: str) -> list[str]:
    """Normalized same-host links in document order, without duplicates."""
    seen: set[str] = set()
    links: list[str] = []
    for a in soup.find_all("a", href=True):
        resolved = URLNormalizer.resolve(a["href"], page_url)
        if resolved and resolved not in seen and URLNormalizer.is_internal(resolved, hostname):
            seen.add(resolved)
            links.append(resolved)
    return links


class PageExtractor:
    """
    Loads pages through a PageDriver and extracts their SEO signals.

    robots is the crawl's RobotsTxtData; hostname scopes link discovery.
    """

    def __init__(self, driver: PageDriver, robots: RobotsTxtData, hostname: str):
        self.driver = driver
        self.robots = robots
        self.hostname = hostname.lower()

    async def extract(self, url: str) -> PageAnalysis:
        snapshot = await self.driver.load(url)
        if snapshot.failed:
            return self.failed_analysis(url, snapshot.error or "navigation failed", snapshot.load_time_ms)
        return self.analyze(url, snapshot)

    def analyze(self, url: str, snapshot: PageSnapshot) -> PageAnalysis:
        html = snapshot.html
        soup = BeautifulSoup(html, "lxml")

        # ── Basic SEO ────────────────────────────────
        title = soup.title.get_text(strip=True) if soup.title else ""
        description_tag = soup.find("meta", attrs={"name": _DESCRIPTION_NAME})
        meta_description = (description_tag.get("content") or "").strip() if description_tag else ""
        h1_count = len(soup.find_all("h1"))

        images = soup.find_all("img")
        images_with_alt = sum(1 for img in images if img.get("alt"))
        script_count = len(soup.find_all("script"))

        # ── Indexing ─────────────────────────────────
        robots_tag = soup.find("meta", attrs={"name": _ROBOTS_NAME})
        robots_meta = robots_tag.get("content") if robots_tag else None
        x_robots = snapshot.headers.get("x-robots-tag")
        indexable, indexing_issues = evaluate_indexability(url, robots_meta, x_robots, self.robots)

        # ── Canonical ────────────────────────────────
        canonical_hrefs = [link.get("href") or "" for link in soup.find_all("link", rel="canonical")]
        canonical_url, canonical_type, canonical_issues = classify_canonical(url, canonical_hrefs)

        # ── Status ───────────────────────────────────
        body = soup.body
        body_text = body.get_text(" ") if body else ""
        soft_404 = is_soft_404(snapshot.status, title, body_text)
        server_error = snapshot.status >= 500

        # ── Social meta ──────────────────────────────
        open_graph = {
            tag["property"]: tag["content"]
            for tag in soup.select('meta[property^="og:"]')
            if tag.get("property") and tag.get("content")
        }
        twitter = {
            tag["name"]: tag["content"]
            for tag in soup.select('meta[name^="twitter:"]')
            if tag.get("name") and tag.get("content")
        }
        covered, not_covered = platform_coverage(open_graph, twitter)

        schemas = parse_json_ld(soup, url)

        return PageAnalysis(
            url=url,
            status=snapshot.status,
            load_time_ms=snapshot.load_time_ms,
            size_kb=round(len(html.encode("utf-8")) / 1024),
            on_page_performance=performance_bucket(snapshot.load_time_ms),
            title=title,
            meta_description=meta_description,
            h1_count=h1_count,
            image_count=len(images),
            images_with_alt=images_with_alt,
            dynamic_score=dynamic_score(script_count),
            robots_meta_tag=robots_meta,
            x_robots_tag=x_robots,
            is_indexable=indexable,
            indexing_issues=indexing_issues,
            canonical_url=canonical_url,
            canonical_type=canonical_type,
            canonical_issues=canonical_issues,
            is_soft404=soft_404,
            is_server_error=server_error,
            crawl_error=f"HTTP {snapshot.status}" if server_error else None,
            social_media=SocialMedia(
                open_graph=open_graph,
                twitter=twitter,
                platforms_covered=covered,
                platforms_not_covered=not_covered,
            ),
            structured_data=StructuredData(
                has_schema=bool(schemas),
                total_schemas=len(schemas),
                schemas=schemas,
            ),
            links=discover_links(soup, url, self.hostname),
        )

    def failed_analysis(self, url: str, error: str, load_time_ms: int = 0) -> PageAnalysis:
        """Record a page that could not be loaded so the crawl can carry on."""
        _, not_covered = platform_coverage({}, {})
        reasons = [REASON_LOAD_FAILED]
        if self.robots.is_blocked(url):
            reasons.append(REASON_ROBOTS_TXT)
        return PageAnalysis(
            url=url,
            status=0,
            load_time_ms=max(0, load_time_ms),
            on_page_performance=PerformanceBucket.ERROR,
            is_indexable=False,
            indexing_issues=reasons,
            canonical_type=CanonicalType.MISSING,
            is_server_error=True,
            crawl_error=error,
            social_media=SocialMedia(platforms_not_covered=not_covered),
        )

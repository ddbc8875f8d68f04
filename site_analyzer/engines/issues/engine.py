"""
Issue Synthesizer - turns a finished SiteWideReport into prioritized issues.

Two implementations share one interface:
- RuleBasedIssueSynthesizer: deterministic checks over the report
- OpenAIIssueSynthesizer: asks a chat model for a strict JSON issue list

The site engine treats any synthesizer failure as non-fatal.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any

import structlog
from openai import AsyncOpenAI

from site_analyzer.core.config import get_settings
from site_analyzer.core.scoring import calculate_impact_score, prioritize
from site_analyzer.engines.base import (
    Issue,
    IssueCategory,
    PageAnalysis,
    PerformanceBucket,
    Severity,
    SiteWideReport,
)

logger = structlog.get_logger(__name__)
settings = get_settings()

MAX_AFFECTED_URLS = 50


class IssueSynthesizer(ABC):
    """Receives the report with its URL attached and returns issues."""

    name: str = "base"

    @abstractmethod
    async def synthesize(self, report: SiteWideReport, url: str, category: str) -> list[Issue]:
        ...


# ─────────────────────────────────────────────
# Rule-based synthesizer
# ─────────────────────────────────────────────

class RuleBasedIssueSynthesizer(IssueSynthesizer):
    """Deterministic issue checks over the aggregate report."""

    name = "rules"

    SLOW_PAGE_SCORE = 70
    MIN_ALT_COVERAGE = 90

    async def synthesize(self, report: SiteWideReport, url: str, category: str) -> list[Issue]:
        pages = report.pages
        total = max(1, len(pages))
        issues: list[Issue] = []

        def add(
            rule_id: str,
            title: str,
            description: str,
            severity: Severity,
            issue_category: IssueCategory,
            affected: list[str],
            base_impact: float,
            recommendation: str,
            effort: float = 5.0,
        ) -> None:
            issues.append(Issue(
                rule_id=rule_id,
                title=title,
                description=description,
                severity=severity,
                category=issue_category,
                affected_urls=affected[:MAX_AFFECTED_URLS],
                affected_count=len(affected),
                impact_score=calculate_impact_score(severity, len(affected), total, base_impact),
                effort_score=effort,
                recommendation=recommendation,
            ))

        health = report.indexing_health

        # ── Indexing ───────────────────────────────────
        if health.server_error_pages.count:
            add(
                "index-server-errors",
                "Pages failing with server errors",
                f"{health.server_error_pages.count} pages returned 5xx or could not be loaded.",
                Severity.CRITICAL,
                IssueCategory.INDEXING,
                [row["url"] for row in health.server_error_pages.pages],
                95.0,
                "Investigate server logs and hosting capacity. These pages cannot be indexed.",
                effort=6.0,
            )

        if health.blocked_by_robots_txt.count:
            add(
                "index-robots-blocked",
                "Pages blocked by robots.txt",
                f"{health.blocked_by_robots_txt.count} crawled pages match a Disallow rule.",
                Severity.CRITICAL,
                IssueCategory.INDEXING,
                [row["url"] for row in health.blocked_by_robots_txt.pages],
                90.0,
                "Remove or narrow Disallow rules for pages that should appear in search results.",
                effort=2.0,
            )

        if health.noindex_pages.count:
            add(
                "index-noindex",
                "Pages excluded with noindex",
                f"{health.noindex_pages.count} pages carry a noindex directive in meta robots or X-Robots-Tag.",
                Severity.HIGH,
                IssueCategory.INDEXING,
                [row["url"] for row in health.noindex_pages.pages],
                80.0,
                "Remove noindex from pages intended for indexation.",
                effort=2.0,
            )

        if health.soft404_pages.count:
            add(
                "index-soft-404",
                "Soft 404 pages",
                f"{health.soft404_pages.count} pages return HTTP 200 but look like error pages.",
                Severity.HIGH,
                IssueCategory.INDEXING,
                [row["url"] for row in health.soft404_pages.pages],
                70.0,
                "Return a real 404/410 status for missing content, or restore the page.",
                effort=3.0,
            )

        # ── Canonical ──────────────────────────────────
        canonical = report.canonical_health
        if canonical.conflicting_canonicals.count:
            add(
                "canonical-conflicting",
                "Conflicting canonical tags",
                f"{canonical.conflicting_canonicals.count} pages declare multiple canonicals or canonicalize to another URL.",
                Severity.HIGH,
                IssueCategory.CANONICAL,
                [row["url"] for row in canonical.conflicting_canonicals.pages],
                70.0,
                "Keep exactly one rel=canonical per page and point it at the preferred URL.",
                effort=3.0,
            )

        if canonical.cross_domain_canonicals.count:
            add(
                "canonical-cross-domain",
                "Canonical tags pointing to another domain",
                f"{canonical.cross_domain_canonicals.count} pages hand their ranking signals to a different host.",
                Severity.MEDIUM,
                IssueCategory.CANONICAL,
                [row["url"] for row in canonical.cross_domain_canonicals.pages],
                60.0,
                "Confirm cross-domain canonicals are intentional (syndication); otherwise self-reference.",
                effort=3.0,
            )

        if canonical.missing_canonicals.count:
            add(
                "canonical-missing",
                "Pages without canonical tags",
                f"{canonical.missing_canonicals.count} pages are missing canonical link elements.",
                Severity.MEDIUM,
                IssueCategory.CANONICAL,
                canonical.missing_canonicals.pages,
                50.0,
                "Add self-referencing canonical tags to all indexable pages.",
                effort=2.0,
            )

        # ── Sitemap ────────────────────────────────────
        sitemap = report.sitemap
        if not sitemap.has_sitemap:
            add(
                "sitemap-missing",
                "No XML sitemap found",
                "None of the conventional sitemap locations returned a valid sitemap.",
                Severity.MEDIUM,
                IssueCategory.SITEMAP,
                [url],
                45.0,
                "Publish /sitemap.xml and reference it from robots.txt.",
                effort=2.0,
            )
        elif sitemap.crawled_not_in_sitemap.count:
            add(
                "sitemap-missing-pages",
                "Crawled pages missing from the sitemap",
                f"{sitemap.crawled_not_in_sitemap.count} internally linked pages are not listed in the sitemap.",
                Severity.LOW,
                IssueCategory.SITEMAP,
                sitemap.crawled_not_in_sitemap.urls,
                35.0,
                "Regenerate the sitemap so it lists every indexable page.",
                effort=2.0,
            )

        oversized = list(dict.fromkeys(sitemap.sitemaps_over_50k_urls.pages + sitemap.sitemaps_over_50mb.pages))
        if oversized:
            add(
                "sitemap-oversized",
                "Sitemap files over the protocol limits",
                f"{len(oversized)} sitemap files exceed 50,000 URLs or 50MB uncompressed; "
                "search engines may ignore them.",
                Severity.MEDIUM,
                IssueCategory.SITEMAP,
                oversized,
                50.0,
                "Split large sitemaps and list the parts from a sitemap index.",
                effort=3.0,
            )

        if sitemap.urls_in_multiple_sitemaps.count:
            add(
                "sitemap-duplicate-listings",
                "URLs listed in more than one sitemap",
                f"{sitemap.urls_in_multiple_sitemaps.count} URLs appear in several sitemap files.",
                Severity.LOW,
                IssueCategory.SITEMAP,
                sitemap.urls_in_multiple_sitemaps.urls,
                20.0,
                "List each URL in exactly one sitemap file.",
                effort=2.0,
            )

        # ── Performance ────────────────────────────────
        summary = report.summary
        slow = [p.url for p in pages if p.on_page_performance == PerformanceBucket.SLOW]
        if slow or summary.on_page_performance_score < self.SLOW_PAGE_SCORE:
            add(
                "perf-slow-pages",
                "Slow page loads",
                f"Average load time is {summary.average_load_time_ms} ms; {len(slow)} pages took 3 s or more.",
                Severity.HIGH if summary.on_page_performance_score < self.SLOW_PAGE_SCORE else Severity.MEDIUM,
                IssueCategory.PERFORMANCE,
                slow,
                65.0,
                "Reduce render-blocking scripts, compress images and enable caching.",
                effort=7.0,
            )

        # ── On-page ────────────────────────────────────
        healthy = [p for p in pages if p.status == 200]
        self._on_page_checks(add, healthy, summary.images.alt_coverage_percent, summary.images.total)

        logger.info("Rule-based issues synthesized", url=url, category=category, issues=len(issues))
        return prioritize(issues)

    def _on_page_checks(self, add, pages: list[PageAnalysis], alt_coverage: int, total_images: int) -> None:
        missing_title = [p.url for p in pages if not p.title]
        if missing_title:
            add(
                "onpage-missing-title",
                "Pages missing title tags",
                f"{len(missing_title)} pages have no title tag.",
                Severity.HIGH,
                IssueCategory.ON_PAGE,
                missing_title,
                75.0,
                "Add unique, descriptive title tags (30-60 chars) to every page.",
                effort=2.0,
            )

        missing_meta = [p.url for p in pages if not p.meta_description]
        if missing_meta:
            add(
                "onpage-missing-meta-description",
                "Pages missing meta descriptions",
                f"{len(missing_meta)} pages have no meta description tag.",
                Severity.MEDIUM,
                IssueCategory.ON_PAGE,
                missing_meta,
                55.0,
                "Write meta descriptions (70-160 chars) to improve click-through from results.",
                effort=2.0,
            )

        h1_problems = [p.url for p in pages if p.h1_count != 1]
        if h1_problems:
            add(
                "onpage-h1-count",
                "Pages without exactly one H1",
                f"{len(h1_problems)} pages have no H1 or several H1 headings.",
                Severity.LOW,
                IssueCategory.ON_PAGE,
                h1_problems,
                40.0,
                "Use a single H1 per page and H2-H6 for subheadings.",
                effort=2.0,
            )

        if total_images and alt_coverage < self.MIN_ALT_COVERAGE:
            missing_alt = [p.url for p in pages if p.images_with_alt < p.image_count]
            add(
                "onpage-missing-alt-text",
                "Images missing alt text",
                f"Only {alt_coverage}% of {total_images} images have alt text.",
                Severity.MEDIUM,
                IssueCategory.ON_PAGE,
                missing_alt,
                45.0,
                "Add descriptive alt text to meaningful images; use alt='' for decorative ones.",
                effort=3.0,
            )

        no_social = [p.url for p in pages if not p.social_media.open_graph and not p.social_media.twitter]
        if no_social:
            add(
                "social-missing-meta",
                "Pages without social sharing metadata",
                f"{len(no_social)} pages have neither Open Graph nor Twitter card tags.",
                Severity.LOW,
                IssueCategory.SOCIAL,
                no_social,
                30.0,
                "Add og:title, og:description, og:image and twitter:card tags.",
                effort=2.0,
            )

        no_schema = [p.url for p in pages if not p.structured_data.has_schema]
        if no_schema:
            add(
                "schema-missing",
                "Pages without structured data",
                f"{len(no_schema)} pages have no JSON-LD structured data.",
                Severity.LOW,
                IssueCategory.SCHEMA,
                no_schema,
                30.0,
                "Add schema.org JSON-LD appropriate to each page type.",
                effort=4.0,
            )


# ─────────────────────────────────────────────
# OpenAI synthesizer
# ─────────────────────────────────────────────

AI_PROMPT = """You are a senior technical SEO auditor.

Analyze the provided SEO audit data and identify actionable SEO issues.

STRICT RULES:
- Return ONLY valid JSON
- Do NOT include explanations, comments, or markdown
- If no issues exist, return an empty array: []
- Do NOT invent URLs that are not in the data
- Each issue must be specific, actionable, and non-duplicated
- Priority must be one of: Critical, High, Medium, Low

OUTPUT FORMAT (STRICT):
[
  {{
    "issueName": "Clear and concise SEO issue description",
    "priority": "Critical | High | Medium | Low",
    "affectedUrls": ["https://example.com/page-1"]
  }}
]

AUDIT CATEGORY: {category}

SEO AUDIT DATA:
{data}
"""

PRIORITY_TO_SEVERITY = {
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
}
PRIORITY_IMPACT = {
    Severity.CRITICAL: 90.0,
    Severity.HIGH: 70.0,
    Severity.MEDIUM: 50.0,
    Severity.LOW: 25.0,
}

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_ai_issues(text: str) -> list[dict[str, Any]]:
    """Strip markdown fences and parse a JSON array; anything else yields []."""
    cleaned = _FENCE.sub("", text or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("AI issue response was not valid JSON", preview=cleaned[:200])
        return []
    return [item for item in parsed if isinstance(item, dict)] if isinstance(parsed, list) else []


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:60] or "issue"


class OpenAIIssueSynthesizer(IssueSynthesizer):
    """Chat-completions backed synthesizer with a strict JSON contract."""

    name = "ai"

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None):
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.OPENAI_TIMEOUT)
        self.model = model or settings.OPENAI_MODEL

    async def synthesize(self, report: SiteWideReport, url: str, category: str) -> list[Issue]:
        payload = report.model_dump(mode="json", by_alias=True)
        payload["url"] = url
        prompt = AI_PROMPT.format(category=category, data=json.dumps(payload))

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.1,
        )
        content = response.choices[0].message.content or ""

        issues: list[Issue] = []
        for item in parse_ai_issues(content):
            name = str(item.get("issueName") or "").strip()
            if not name:
                continue
            severity = PRIORITY_TO_SEVERITY.get(str(item.get("priority", "")).lower(), Severity.MEDIUM)
            affected = [u for u in item.get("affectedUrls") or [] if isinstance(u, str)]
            issues.append(Issue(
                rule_id=f"ai-{slugify(name)}",
                title=name,
                severity=severity,
                affected_urls=affected[:MAX_AFFECTED_URLS],
                affected_count=len(affected),
                impact_score=PRIORITY_IMPACT[severity],
                source="ai",
            ))

        logger.info("AI issues synthesized", url=url, category=category, model=self.model, issues=len(issues))
        return prioritize(issues)


def get_issue_synthesizer() -> IssueSynthesizer:
    """OpenAI when an API key is configured, otherwise the rule-based checks."""
    if settings.use_ai_issues:
        return OpenAIIssueSynthesizer()
    return RuleBasedIssueSynthesizer()

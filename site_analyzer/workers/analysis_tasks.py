"""
Site analysis tasks.

Flow:
1. run_site_analysis() runs the full crawl + aggregation + issue synthesis
2. The result payload is saved to the report store under (url, category)
3. A compact summary is returned as the Celery task result

Error handling:
- Fatal analysis conditions come back as success=False payloads and are
  stored like any other result; they are not retried
- Report store failures are retried up to CELERY_MAX_RETRIES times
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from celery.exceptions import SoftTimeLimitExceeded
from redis.exceptions import RedisError

from site_analyzer.core.config import get_settings
from site_analyzer.core.logging import bind_analysis_context
from site_analyzer.core.redis import CacheManager, ReportStore, open_redis_client
from site_analyzer.engines.base import SiteAnalysisResult
from site_analyzer.engines.site.engine import crawl_and_analyze_site
from site_analyzer.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
settings = get_settings()


def run_async(coro):
    """
    Run an async coroutine in a Celery (sync) task context.

    asyncio.run() cancels whatever is still pending before closing the loop,
    so a SoftTimeLimitExceeded raised mid-crawl still unwinds the crawl
    coroutine and its `async with` browser block.
    """
    return asyncio.run(coro)


def summarize(result: SiteAnalysisResult) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "success": result.success,
        "status": result.status,
        "url": result.url,
        "category": result.category,
    }
    if result.report is not None:
        summary["total_pages"] = result.report.summary.total_pages
        summary["index_health_score"] = result.report.indexing_health.index_health_score
        summary["canonical_health_score"] = result.report.canonical_health.canonical_health_score
    if result.issues is not None:
        summary["issues_found"] = len(result.issues)
    if result.error:
        summary["error"] = result.error
    return summary


async def _analyze_and_store(base_url: str, max_pages: int | None, category: str) -> dict[str, Any]:
    result = await crawl_and_analyze_site(base_url, max_pages=max_pages, category=category)

    redis = open_redis_client()
    try:
        store = ReportStore(CacheManager(redis))
        await store.save(result.url, result.category, result.to_payload())
    finally:
        await redis.aclose()

    return summarize(result)


@celery_app.task(
    name="site_analyzer.workers.analysis_tasks.run_site_analysis",
    bind=True,
    queue="crawl_queue",
    soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    time_limit=settings.CELERY_TASK_TIME_LIMIT,
    max_retries=settings.CELERY_MAX_RETRIES,
    acks_late=True,
)
def run_site_analysis(self, base_url: str, max_pages: int | None = None, category: str | None = None) -> dict:
    """Crawl and analyze one site, then persist the report."""
    category = category or settings.ISSUE_CATEGORY
    bind_analysis_context(base_url, category, task_id=self.request.id)
    logger.info("Starting site analysis task", url=base_url, max_pages=max_pages, category=category)

    try:
        summary = run_async(_analyze_and_store(base_url, max_pages, category))
        logger.info("Site analysis task complete", **summary)
        return summary

    except SoftTimeLimitExceeded:
        logger.error("Site analysis timed out", url=base_url)
        return {"success": False, "status": "failed", "url": base_url, "category": category,
                "error": {"type": "timeout", "message": "Site analysis exceeded its time limit"}}

    except RedisError as exc:
        logger.error("Report store unavailable", url=base_url, error=str(exc))
        raise self.retry(exc=exc, countdown=30)

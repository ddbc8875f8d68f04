"""
Site Analysis API Routes

No business logic lives here.
Routes validate input, dispatch the crawl task, and read stored reports.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from site_analyzer.core.config import get_settings
from site_analyzer.core.redis import CacheManager, RedisClient, ReportStore
from site_analyzer.engines.base import InvalidSiteURLError
from site_analyzer.engines.crawler.normalizer import validate_base_url
from site_analyzer.workers.analysis_tasks import run_site_analysis

logger = structlog.get_logger(__name__)
settings = get_settings()
router = APIRouter()


# ─────────────────────────────────────────────
# Request / Response Schemas
# ─────────────────────────────────────────────

class CreateSiteAnalysisRequest(BaseModel):
    url: str
    max_pages: int | None = None
    category: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        try:
            return validate_base_url(v)
        except InvalidSiteURLError as e:
            raise ValueError(str(e)) from e

    @field_validator("max_pages")
    @classmethod
    def validate_max_pages(cls, v: int | None) -> int | None:
        if v is not None and not 1 <= v <= settings.CRAWLER_MAX_PAGES_CEILING:
            raise ValueError(f"max_pages must be between 1 and {settings.CRAWLER_MAX_PAGES_CEILING}")
        return v


class SiteAnalysisAccepted(BaseModel):
    task_id: str
    url: str
    category: str
    max_pages: int
    message: str = ""


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.post(
    "",
    response_model=SiteAnalysisAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a site crawl and analysis",
)
async def create_site_analysis(request: CreateSiteAnalysisRequest) -> SiteAnalysisAccepted:
    category = request.category or settings.ISSUE_CATEGORY
    max_pages = request.max_pages or settings.CRAWLER_DEFAULT_MAX_PAGES

    task = run_site_analysis.apply_async(
        kwargs={"base_url": request.url, "max_pages": max_pages, "category": category},
    )
    logger.info("Site analysis queued", task_id=task.id, url=request.url, max_pages=max_pages)

    return SiteAnalysisAccepted(
        task_id=task.id,
        url=request.url,
        category=category,
        max_pages=max_pages,
        message="Site analysis queued. Fetch the report once the task completes.",
    )


@router.get("/report", summary="Fetch the stored report for a URL")
async def get_site_report(
    redis: RedisClient,
    url: str = Query(..., description="The analyzed base URL"),
    category: str | None = Query(None),
) -> dict:
    store = ReportStore(CacheManager(redis))
    report = await store.load(url, category or settings.ISSUE_CATEGORY)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No report stored for this URL")
    return report

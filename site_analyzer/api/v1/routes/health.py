"""
Service status routes.

/health reports Redis and which issue synthesizer is active. /health/ready
fails with 503 while Redis is unreachable, since no report can be read or
queued without it. /health/live only says the process answers.
"""

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from redis.exceptions import RedisError

from site_analyzer.core.config import get_settings
from site_analyzer.core.redis import get_redis_client

logger = structlog.get_logger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    checks: dict[str, str]


async def redis_status() -> str:
    try:
        redis = await get_redis_client()
        await redis.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis health check failed", error=str(e))
        return f"unhealthy: {e}"
    return "healthy"


@router.get("", response_model=HealthResponse, include_in_schema=False)
async def health_check() -> HealthResponse:
    settings = get_settings()
    checks = {
        "redis": await redis_status(),
        "issue_synthesizer": "ai" if settings.use_ai_issues else "rules",
    }
    overall = "degraded" if checks["redis"] != "healthy" else "healthy"
    return HealthResponse(status=overall, version=settings.APP_VERSION, checks=checks)


@router.get("/ready", include_in_schema=False)
async def readiness():
    redis = await redis_status()
    if redis != "healthy":
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            content={"ready": False, "redis": redis})
    return {"ready": True}


@router.get("/live", include_in_schema=False)
async def liveness() -> dict:
    return {"alive": True}

"""
Site Analyzer - Main Application Entry Point
FastAPI surface over the crawl workers: queue analyses, read stored reports.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from site_analyzer.api.v1.routes import health, site_analysis
from site_analyzer.core.config import get_settings
from site_analyzer.core.logging import configure_logging
from site_analyzer.core.redis import get_redis_client

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Manage application lifecycle: startup and shutdown."""
    configure_logging()
    logger.info("Starting Site Analyzer", version=settings.APP_VERSION, env=settings.ENV)

    redis = await get_redis_client()
    await redis.ping()
    logger.info("Redis connection verified")

    yield

    await redis.aclose()
    logger.info("Application shutdown complete")


def create_application() -> FastAPI:
    app = FastAPI(
        title="Site Analyzer API",
        description="Headless-browser site crawler producing site-wide SEO reports.",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.ENV != "production" else None,
        redoc_url="/redoc" if settings.ENV != "production" else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(site_analysis.router, prefix="/api/v1/site-analysis", tags=["Site Analysis"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request.headers.get("x-request-id")},
        )

    return app


app = create_application()

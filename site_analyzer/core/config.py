"""
Configuration system with environment-based settings.
Uses pydantic-settings for validation and type safety.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Application
    APP_VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Redis
    REDIS_DSN: RedisDsn = Field("redis://localhost:6379/0", description="Redis connection string")
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    CELERY_TASK_SOFT_TIME_LIMIT: int = 1800   # 30 minutes
    CELERY_TASK_TIME_LIMIT: int = 3600        # 1 hour hard limit
    CELERY_MAX_RETRIES: int = 2
    CELERY_WORKER_CONCURRENCY: int = 2          # one Chromium per slot
    CELERY_MAX_TASKS_PER_CHILD: int = 20        # recycle workers to release browser memory

    # Crawler
    CRAWLER_DEFAULT_MAX_PAGES: int = 15
    CRAWLER_MAX_PAGES_CEILING: int = 200
    CRAWLER_PAGE_LOAD_TIMEOUT_MS: int = 30_000   # Playwright navigation timeout
    CRAWLER_HTTP_TIMEOUT: float = 10.0           # robots.txt / sitemap fetches
    CRAWLER_USER_AGENT: str = "SiteAnalyzerBot/1.0 (+https://siteanalyzer.dev/bot)"
    CRAWLER_BROWSER_ARGS: list[str] = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]

    # Reporting
    REPORT_SAMPLE_LIMIT: int = 20
    PARTIAL_CRAWL_THRESHOLD: int = 15
    REPORT_TTL_SECONDS: int = 86400 * 7

    # Issue synthesis
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_TIMEOUT: float = 60.0
    ISSUE_CATEGORY: str = "site-analysis"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("CORS_ORIGINS", "CRAWLER_BROWSER_ARGS", mode="before")
    @classmethod
    def parse_csv(cls, v: str | list) -> list:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def use_ai_issues(self) -> bool:
        return bool(self.OPENAI_API_KEY)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - created once per process."""
    return Settings()

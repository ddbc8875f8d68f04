"""
Celery Application Configuration

Queue Architecture:
- crawl_queue: browser-heavy workers running site analyses (one crawl each)
- default:     general tasks

Crawl workers hold a Chromium process per task, so keep concurrency low and
prefetch at 1.
"""

from celery import Celery
from celery.signals import after_setup_logger, task_postrun, worker_ready
from kombu import Exchange, Queue

from site_analyzer.core.config import get_settings

settings = get_settings()

# ─────────────────────────────────────────────
# Celery App
# ─────────────────────────────────────────────

celery_app = Celery(
    "site_analyzer",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["site_analyzer.workers.analysis_tasks"],
)

default_exchange = Exchange("default", type="direct")
crawl_exchange = Exchange("crawl", type="direct")

celery_app.conf.task_queues = (
    Queue("default", default_exchange, routing_key="default"),
    Queue("crawl_queue", crawl_exchange, routing_key="crawl"),
)

celery_app.conf.task_default_queue = "default"
celery_app.conf.task_default_exchange = "default"
celery_app.conf.task_default_routing_key = "default"

celery_app.conf.task_routes = {
    "site_analyzer.workers.analysis_tasks.*": {"queue": "crawl_queue"},
}

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Reliability
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.CELERY_WORKER_CONCURRENCY,
    worker_max_tasks_per_child=settings.CELERY_MAX_TASKS_PER_CHILD,
    task_track_started=True,

    # Timeouts
    task_soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

    # Retries
    task_max_retries=settings.CELERY_MAX_RETRIES,

    # Results
    result_expires=settings.REPORT_TTL_SECONDS,
)


# ─────────────────────────────────────────────
# Signals
# ─────────────────────────────────────────────

@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    import structlog
    logger = structlog.get_logger("celery.worker")
    logger.info("Celery worker ready", hostname=sender.hostname)


@after_setup_logger.connect
def setup_celery_logging(logger, *args, **kwargs):
    from site_analyzer.core.logging import configure_logging
    configure_logging()


@task_postrun.connect
def clear_log_context(*args, **kwargs):
    # Log context is per task
    import structlog
    structlog.contextvars.clear_contextvars()

"""
Crawl Orchestrator - sequential breadth-first crawl of one site.

Architecture:
- CrawlSession holds the frontier (FIFO), the visited set and the page budget
- Lifecycle Idle -> Running -> Done, driven by CrawlOrchestrator.crawl()
- A URL enters `visited` exactly once, when it is popped, before it is fetched
- Discovered same-host links are appended to the tail (BFS order)
- One page at a time through a single PageDriver
- Per-page failures are recorded and the loop continues
- An optional asyncio.Event cancels the crawl between pages
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

import structlog

from site_analyzer.engines.base import PageAnalysis
from site_analyzer.engines.crawler.extractor import PageExtractor
from site_analyzer.engines.crawler.normalizer import URLNormalizer

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Data Structures
# ─────────────────────────────────────────────

class CrawlState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"


@dataclass
class CrawlStats:
    """Live crawl statistics."""
    total_crawled: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    cancelled: bool = False
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_second(self) -> float:
        elapsed = self.elapsed_seconds
        return self.total_crawled / elapsed if elapsed > 0 else 0

    def as_dict(self) -> dict:
        return {
            "total_crawled": self.total_crawled,
            "total_failed": self.total_failed,
            "total_skipped": self.total_skipped,
            "cancelled": self.cancelled,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "pages_per_second": round(self.pages_per_second, 2),
        }


@dataclass
class CrawlSession:
    """
    Frontier, visited set and budget for one crawl. Never shared between crawls.
    """
    base_url: str
    max_pages: int
    hostname: str = field(init=False)
    visited: set[str] = field(default_factory=set, init=False)
    frontier: deque[str] = field(default_factory=deque, init=False)
    state: CrawlState = field(default=CrawlState.IDLE, init=False)
    _queued: set[str] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self):
        if self.max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        self.hostname = URLNormalizer.hostname(self.base_url)
        self.enqueue(URLNormalizer.normalize(self.base_url))

    def enqueue(self, url: str) -> bool:
        """Append to the tail unless already visited or waiting."""
        if url in self.visited or url in self._queued:
            return False
        self.frontier.append(url)
        self._queued.add(url)
        return True

    def has_capacity(self) -> bool:
        return bool(self.frontier) and len(self.visited) < self.max_pages

    def next_url(self) -> str | None:
        """
        Pop the next unvisited URL and mark it visited.
        Returns None when the frontier is exhausted or the budget is spent.
        """
        while self.has_capacity():
            url = self.frontier.popleft()
            self._queued.discard(url)
            if url in self.visited:
                continue
            self.visited.add(url)
            return url
        return None


# ─────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────

class CrawlOrchestrator:
    """
    Sequential BFS crawler.

    Flow:
    1. Seed the session frontier with the normalized base URL
    2. Pop -> mark visited -> extract -> enqueue discovered links
    3. Stop when the frontier is empty, the budget is spent or cancel is set
    """

    PROGRESS_EVERY = 10

    def __init__(self, extractor: PageExtractor, cancel_event: asyncio.Event | None = None):
        self.extractor = extractor
        self.cancel_event = cancel_event
        self.stats = CrawlStats()

    async def crawl(self, session: CrawlSession) -> list[PageAnalysis]:
        pages: list[PageAnalysis] = []
        session.state = CrawlState.RUNNING
        self.stats = CrawlStats()

        try:
            while True:
                if self.cancel_event is not None and self.cancel_event.is_set():
                    self.stats.cancelled = True
                    logger.info("Crawl cancelled", crawled=len(pages), queued=len(session.frontier))
                    break

                url = session.next_url()
                if url is None:
                    break

                page = await self._extract(url)
                pages.append(page)
                self.stats.total_crawled += 1
                if page.crawl_error and page.status == 0:
                    self.stats.total_failed += 1

                for link in page.links:
                    if not session.enqueue(link):
                        self.stats.total_skipped += 1

                if self.stats.total_crawled % self.PROGRESS_EVERY == 0:
                    logger.info(
                        "Crawl progress",
                        crawled=self.stats.total_crawled,
                        queued=len(session.frontier),
                        pps=round(self.stats.pages_per_second, 2),
                    )
        finally:
            session.state = CrawlState.DONE

        logger.info("Crawl finished", base_url=session.base_url, **self.stats.as_dict())
        return pages

    async def _extract(self, url: str) -> PageAnalysis:
        try:
            return await self.extractor.extract(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Page analysis failed", url=url, error=str(e), exc_info=True)
            return self.extractor.failed_analysis(url, str(e) or e.__class__.__name__)

"""
robots.txt fetching and Disallow matching for the `User-agent: *` group.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx
import structlog

from site_analyzer.core.config import get_settings
from site_analyzer.engines.crawler.normalizer import URLNormalizer

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass
class RobotsTxtData:
    """
    Parsed robots.txt rules for the wildcard user agent.

    blocked_urls holds each distinct URL that is_blocked() matched, in the
    order first seen. Checking the same URL again does not add it twice.
    """
    has_robots_txt: bool = False
    raw_content: str = ""
    disallow_rules: list[str] = field(default_factory=list)
    sitemap_directives: list[str] = field(default_factory=list)
    blocked_urls: list[str] = field(default_factory=list)
    _blocked_seen: set[str] = field(default_factory=set, init=False, repr=False)

    def is_blocked(self, url: str) -> bool:
        try:
            path = urlparse(url).path or "/"
        except ValueError:
            return False

        for rule in self.disallow_rules:
            if rule == "/" or path.startswith(rule):
                if url not in self._blocked_seen:
                    self._blocked_seen.add(url)
                    self.blocked_urls.append(url)
                return True
        return False

    @classmethod
    def absent(cls) -> RobotsTxtData:
        return cls(has_robots_txt=False)


def parse_robots_txt(content: str) -> RobotsTxtData:
    """
    Collect Disallow rules that apply to `User-agent: *`.

    Consecutive User-agent lines form one group; the group applies when any of
    its agents is `*`. Rules for other agents are ignored. Sitemap directives
    are global and collected regardless of group.
    """
    disallow: list[str] = []
    sitemaps: list[str] = []
    applies = False
    in_agent_run = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, _, value = line.partition(":")
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            is_wildcard = value == "*"
            applies = (applies or is_wildcard) if in_agent_run else is_wildcard
            in_agent_run = True
            continue

        in_agent_run = False
        if key == "disallow" and applies and value:
            disallow.append(value)
        elif key == "sitemap" and value:
            sitemaps.append(value)

    return RobotsTxtData(
        has_robots_txt=True,
        raw_content=content,
        disallow_rules=disallow,
        sitemap_directives=sitemaps,
    )


class RobotsTxtFetcher:
    """Fetch {origin}/robots.txt; any failure means "no restrictions"."""

    def __init__(self, client: httpx.AsyncClient, timeout: float | None = None):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.CRAWLER_HTTP_TIMEOUT

    async def fetch(self, base_url: str) -> RobotsTxtData:
        robots_url = f"{URLNormalizer.origin(base_url)}/robots.txt"
        try:
            response = await self.client.get(robots_url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.debug("Could not fetch robots.txt", url=robots_url, error=str(e))
            return RobotsTxtData.absent()

        if response.status_code != 200:
            logger.debug("robots.txt not present", url=robots_url, status=response.status_code)
            return RobotsTxtData.absent()

        data = parse_robots_txt(response.text)
        logger.info(
            "robots.txt parsed",
            url=robots_url,
            disallow_rules=len(data.disallow_rules),
            sitemaps=len(data.sitemap_directives),
        )
        return data

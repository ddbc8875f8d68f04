"""
Sitemap discovery and parsing.

Candidates are tried in order (sitemap.xml, sitemap_index.xml, sitemap1.xml,
then any Sitemap: directives from robots.txt); the first one that parses as a
<urlset> or <sitemapindex> wins. A sitemap index is expanded one level deep.

Every fetched file is kept as a SitemapFile so the report can flag files over
the sitemaps.org limits (50,000 URLs or 50MB uncompressed) and URLs listed in
more than one file.
"""

from __future__ import annotations

import gzip
from dataclasses import dataclass, field

import httpx
import structlog
from bs4 import BeautifulSoup

from site_analyzer.core.config import get_settings
from site_analyzer.engines.crawler.normalizer import URLNormalizer

logger = structlog.get_logger(__name__)
settings = get_settings()

DEFAULT_SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap1.xml")
GZIP_MAGIC = b"\x1f\x8b"

MAX_SITEMAP_URLS = 50_000
MAX_SITEMAP_BYTES = 50 * 1024 * 1024


class SitemapParseError(ValueError):
    """Body is neither a <urlset> nor a <sitemapindex>."""


@dataclass
class ParsedSitemap:
    is_index: bool
    locs: list[str]
    size_bytes: int = 0


@dataclass
class SitemapFile:
    """One fetched sitemap document. For an index, `locs` are its child sitemaps."""
    url: str
    is_index: bool
    locs: list[str] = field(default_factory=list)
    size_bytes: int = 0

    @property
    def url_count(self) -> int:
        return 0 if self.is_index else len(self.locs)


@dataclass
class SitemapData:
    urls: list[str] = field(default_factory=list)
    has_sitemap: bool = False
    sitemap_urls: list[str] = field(default_factory=list)
    files: list[SitemapFile] = field(default_factory=list)
    nested_sitemaps: int = 0

    @classmethod
    def absent(cls) -> SitemapData:
        return cls()

    def urls_in_multiple_sitemaps(self) -> list[str]:
        """Normalized page URLs listed by two or more <urlset> files, in first-seen order."""
        listed_in: dict[str, set[str]] = {}
        for sitemap in self.files:
            if sitemap.is_index:
                continue
            for loc in sitemap.locs:
                listed_in.setdefault(URLNormalizer.normalize(loc), set()).add(sitemap.url)
        return [url for url, sources in listed_in.items() if len(sources) > 1]

    def oversized_by_count(self) -> list[str]:
        return [f.url for f in self.files if f.url_count > MAX_SITEMAP_URLS]

    def oversized_by_bytes(self) -> list[str]:
        return [f.url for f in self.files if f.size_bytes > MAX_SITEMAP_BYTES]


def decompress_sitemap_body(url: str, content: bytes) -> bytes:
    """Gunzip sitemaps recognized by extension or magic bytes; other bodies pass through."""
    if url.endswith(".gz") or content[:2] == GZIP_MAGIC:
        try:
            return gzip.decompress(content)
        except OSError as e:
            raise SitemapParseError(f"Invalid gzip sitemap: {e}") from e
    return content


def decode_sitemap_body(url: str, content: bytes) -> str:
    return decompress_sitemap_body(url, content).decode("utf-8", errors="replace")


def parse_sitemap_xml(xml: str) -> ParsedSitemap:
    soup = BeautifulSoup(xml, "xml")

    index = soup.find("sitemapindex")
    if index is not None:
        locs = [loc.get_text(strip=True) for sm in index.find_all("sitemap") for loc in sm.find_all("loc", limit=1)]
        return ParsedSitemap(is_index=True, locs=[u for u in locs if u])

    urlset = soup.find("urlset")
    if urlset is not None:
        locs = [loc.get_text(strip=True) for u in urlset.find_all("url") for loc in u.find_all("loc", limit=1)]
        return ParsedSitemap(is_index=False, locs=[u for u in locs if u])

    raise SitemapParseError("Not a sitemap document")


class SitemapFetcher:
    """Discover and flatten a site's sitemap into a list of page URLs."""

    def __init__(self, client: httpx.AsyncClient, timeout: float | None = None):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.CRAWLER_HTTP_TIMEOUT

    def candidates(self, base_url: str, declared: list[str] | None = None) -> list[str]:
        origin = URLNormalizer.origin(base_url)
        urls = [f"{origin}{path}" for path in DEFAULT_SITEMAP_PATHS]
        for url in declared or []:
            if url not in urls:
                urls.append(url)
        return urls

    async def fetch(self, base_url: str, declared: list[str] | None = None) -> SitemapData:
        for candidate in self.candidates(base_url, declared):
            try:
                parsed = await self._fetch_one(candidate)
            except (httpx.HTTPError, SitemapParseError) as e:
                logger.debug("Sitemap candidate rejected", url=candidate, error=str(e))
                continue

            root = SitemapFile(url=candidate, is_index=parsed.is_index, locs=parsed.locs, size_bytes=parsed.size_bytes)
            files = [root]
            if parsed.is_index:
                files.extend(await self._expand_index(candidate, parsed.locs))

            urls = [loc for f in files if not f.is_index for loc in f.locs]
            logger.info("Sitemap parsed", url=candidate, is_index=parsed.is_index, urls=len(urls), files=len(files))
            return SitemapData(
                urls=urls,
                has_sitemap=True,
                sitemap_urls=[candidate],
                files=files,
                nested_sitemaps=len(parsed.locs) if parsed.is_index else 0,
            )

        logger.info("No sitemap found", base_url=base_url)
        return SitemapData.absent()

    async def _fetch_one(self, url: str) -> ParsedSitemap:
        response = await self.client.get(url, timeout=self.timeout)
        response.raise_for_status()
        body = decompress_sitemap_body(url, response.content)
        parsed = parse_sitemap_xml(body.decode("utf-8", errors="replace"))
        parsed.size_bytes = len(body)
        return parsed

    async def _expand_index(self, index_url: str, children: list[str]) -> list[SitemapFile]:
        files: list[SitemapFile] = []
        for child in children:
            try:
                parsed = await self._fetch_one(child)
            except (httpx.HTTPError, SitemapParseError) as e:
                logger.warning("Child sitemap failed", index=index_url, url=child, error=str(e))
                continue
            files.append(SitemapFile(url=child, is_index=parsed.is_index, locs=parsed.locs, size_bytes=parsed.size_bytes))
            if parsed.is_index:
                # Only one level of nesting is followed
                logger.debug("Nested sitemap index skipped", index=index_url, url=child)
        return files

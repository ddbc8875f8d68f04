"""
URL canonicalization and same-host membership.

Every other crawler component compares URLs through normalize(), so the
visited set, the frontier, sitemap reconciliation and canonical checks all
agree on what "the same URL" means.
"""

from __future__ import annotations

from urllib.parse import urljoin, urlparse

from site_analyzer.engines.base import InvalidSiteURLError

SKIPPED_HREF_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:")


class URLNormalizer:
    """Normalizes URLs for deduplication and comparison."""

    @classmethod
    def normalize(cls, url: str) -> str:
        """Drop the fragment and any trailing slashes. Pure string operation."""
        return url.split("#", 1)[0].rstrip("/")

    @classmethod
    def is_internal(cls, url: str, hostname: str) -> bool:
        """Exact hostname match; subdomains are external. Never raises."""
        try:
            host = urlparse(url).hostname
        except ValueError:
            return False
        return bool(host) and host == hostname.lower()

    @classmethod
    def resolve(cls, href: str, page_url: str) -> str | None:
        """
        Resolve an anchor href against the page it was found on.
        Returns None for non-navigational or non-http(s) targets.
        """
        href = href.strip()
        if not href or href.lower().startswith(SKIPPED_HREF_PREFIXES):
            return None
        try:
            absolute = urljoin(page_url, href)
            scheme = urlparse(absolute).scheme
        except ValueError:
            return None
        if scheme not in ("http", "https"):
            return None
        return cls.normalize(absolute)

    @classmethod
    def hostname(cls, url: str) -> str:
        return (urlparse(url).hostname or "").lower()

    @classmethod
    def origin(cls, url: str) -> str:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}"


def validate_base_url(url: str) -> str:
    """
    Check that a crawl seed is an absolute http(s) URL with a host.
    Raises InvalidSiteURLError before any browser resource exists.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidSiteURLError("A base URL is required")
    try:
        parsed = urlparse(url.strip())
    except ValueError as exc:
        raise InvalidSiteURLError(f"Unparseable URL: {url!r}") from exc
    if parsed.scheme not in ("http", "https"):
        raise InvalidSiteURLError(f"URL must use http or https: {url!r}")
    if not parsed.hostname:
        raise InvalidSiteURLError(f"URL has no host: {url!r}")
    return url.strip()

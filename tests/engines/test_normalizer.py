"""
Tests for URL normalization and the robots.txt rules.
Uses httpx MockTransport to avoid real network calls.
"""

import httpx
import pytest

from site_analyzer.engines.base import InvalidSiteURLError
from site_analyzer.engines.crawler.normalizer import URLNormalizer, validate_base_url
from site_analyzer.engines.crawler.robots import RobotsTxtData, RobotsTxtFetcher, parse_robots_txt


# ─────────────────────────────────────────────
# URL Normalizer Tests
# ─────────────────────────────────────────────

class TestURLNormalizer:

    def test_removes_fragment(self):
        assert URLNormalizer.normalize("https://example.com/page#section") == "https://example.com/page"

    def test_removes_trailing_slash(self):
        assert URLNormalizer.normalize("https://example.com/page/") == "https://example.com/page"

    def test_root_collapses_to_origin(self):
        assert URLNormalizer.normalize("https://example.com/") == "https://example.com"

    def test_keeps_query_string(self):
        assert URLNormalizer.normalize("https://example.com/p?id=1#x") == "https://example.com/p?id=1"

    @pytest.mark.parametrize("url", [
        "https://example.com/",
        "https://example.com/a//",
        "https://example.com/a/#frag",
        "https://example.com/a?b=1/",
    ])
    def test_idempotent(self, url):
        once = URLNormalizer.normalize(url)
        assert URLNormalizer.normalize(once) == once

    def test_internal_exact_host(self):
        assert URLNormalizer.is_internal("https://example.com/page", "example.com")
        assert URLNormalizer.is_internal("http://EXAMPLE.com/page", "example.com")

    def test_subdomain_is_external(self):
        assert not URLNormalizer.is_internal("https://blog.example.com/page", "example.com")
        assert not URLNormalizer.is_internal("https://other.com/page", "example.com")

    def test_malformed_url_is_not_internal(self):
        assert not URLNormalizer.is_internal("http://[::1", "example.com")
        assert not URLNormalizer.is_internal("not a url", "example.com")

    def test_resolves_relative_href(self):
        assert URLNormalizer.resolve("/about/", "https://example.com/team") == "https://example.com/about"
        assert URLNormalizer.resolve("contact", "https://example.com/a/b") == "https://example.com/a/contact"

    @pytest.mark.parametrize("href", ["#top", "mailto:a@b.c", "tel:123", "javascript:void(0)", "ftp://x.org/f", ""])
    def test_skips_non_navigational_hrefs(self, href):
        assert URLNormalizer.resolve(href, "https://example.com") is None


class TestValidateBaseURL:

    def test_accepts_http_and_https(self):
        assert validate_base_url(" https://example.com/ ") == "https://example.com/"
        assert validate_base_url("http://example.com") == "http://example.com"

    @pytest.mark.parametrize("url", ["", "example.com", "ftp://example.com", "https://", None])
    def test_rejects_invalid(self, url):
        with pytest.raises(InvalidSiteURLError):
            validate_base_url(url)


# ─────────────────────────────────────────────
# robots.txt Tests
# ─────────────────────────────────────────────

ROBOTS = """
User-agent: Googlebot
Disallow: /no-google

# everyone else
User-agent: *
Disallow: /private
Disallow: /tmp/   # scratch
Disallow:

Sitemap: https://example.com/custom-sitemap.xml
"""


class TestRobotsTxt:

    def test_collects_wildcard_rules_only(self):
        data = parse_robots_txt(ROBOTS)
        assert data.has_robots_txt
        assert data.disallow_rules == ["/private", "/tmp/"]
        assert data.sitemap_directives == ["https://example.com/custom-sitemap.xml"]

    def test_grouped_user_agents_share_rules(self):
        data = parse_robots_txt("User-agent: Bingbot\nUser-agent: *\nDisallow: /admin\n")
        assert data.disallow_rules == ["/admin"]

    def test_blocks_matching_prefix(self):
        data = parse_robots_txt(ROBOTS)
        assert data.is_blocked("https://example.com/private/page")
        assert not data.is_blocked("https://example.com/public")
        assert not data.is_blocked("https://example.com/no-google")

    def test_disallow_root_blocks_everything(self):
        data = parse_robots_txt("User-agent: *\nDisallow: /\n")
        assert data.is_blocked("https://example.com")
        assert data.is_blocked("https://example.com/any/page")
        assert data.blocked_urls == ["https://example.com", "https://example.com/any/page"]

    def test_blocked_urls_are_distinct(self):
        data = parse_robots_txt(ROBOTS)
        for _ in range(3):
            data.is_blocked("https://example.com/private/page")
        data.is_blocked("https://example.com/tmp/x")
        assert data.blocked_urls == ["https://example.com/private/page", "https://example.com/tmp/x"]

    def test_absent_blocks_nothing(self):
        data = RobotsTxtData.absent()
        assert not data.has_robots_txt
        assert not data.is_blocked("https://example.com/private")
        assert data.blocked_urls == []

    @pytest.mark.asyncio
    async def test_fetch_parses_robots(self, mock_http):
        client = mock_http({"https://example.com/robots.txt": ROBOTS})
        data = await RobotsTxtFetcher(client).fetch("https://example.com/some/page")
        assert data.has_robots_txt
        assert "/private" in data.disallow_rules

    @pytest.mark.asyncio
    async def test_fetch_404_means_no_restrictions(self, mock_http):
        client = mock_http({})
        data = await RobotsTxtFetcher(client).fetch("https://example.com")
        assert not data.has_robots_txt
        assert data.disallow_rules == []

    @pytest.mark.asyncio
    async def test_fetch_network_error_means_no_restrictions(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        data = await RobotsTxtFetcher(client).fetch("https://example.com")
        assert not data.has_robots_txt

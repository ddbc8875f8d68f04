"""
Tests for the Redis-backed report store. Redis is an AsyncMock.
"""

import json
from unittest.mock import AsyncMock

import pytest

from site_analyzer.core.redis import CacheManager, ReportStore


@pytest.fixture
def redis():
    return AsyncMock()


class TestReportStore:

    def test_key_is_stable_and_scoped_by_category(self):
        a = ReportStore.report_key("https://example.com", "site-analysis")
        assert a == ReportStore.report_key("https://example.com", "site-analysis")
        assert a != ReportStore.report_key("https://example.com", "technical")
        assert a.startswith("report:site-analysis:")

    @pytest.mark.asyncio
    async def test_save_writes_json_with_ttl(self, redis):
        store = ReportStore(CacheManager(redis), ttl=60)
        key = await store.save("https://example.com", "site-analysis", {"success": True})

        redis.setex.assert_awaited_once()
        stored_key, ttl, body = redis.setex.await_args.args
        assert stored_key == f"site-analyzer:{key}"
        assert ttl == 60
        assert json.loads(body) == {"success": True}

    @pytest.mark.asyncio
    async def test_load_round_trip(self, redis):
        redis.get.return_value = json.dumps({"success": False})
        store = ReportStore(CacheManager(redis))
        assert await store.load("https://example.com", "site-analysis") == {"success": False}

    @pytest.mark.asyncio
    async def test_load_missing(self, redis):
        redis.get.return_value = None
        store = ReportStore(CacheManager(redis))
        assert await store.load("https://example.com", "site-analysis") is None

    def test_key_ignores_trailing_slash_and_fragment(self):
        key = ReportStore.report_key("https://example.com", "site-analysis")
        assert ReportStore.report_key("https://example.com/", "site-analysis") == key
        assert ReportStore.report_key("https://example.com/#top", "site-analysis") == key

    @pytest.mark.asyncio
    async def test_report_saved_without_slash_loads_with_slash(self, redis):
        store = ReportStore(CacheManager(redis))
        await store.save("https://example.com", "site-analysis", {"success": True})
        saved_key = redis.setex.await_args.args[0]

        redis.get.return_value = json.dumps({"success": True})
        assert await store.load("https://example.com/", "site-analysis") == {"success": True}
        assert redis.get.await_args.args[0] == saved_key

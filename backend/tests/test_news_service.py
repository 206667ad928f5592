"""
Tests for NewsService.
"""

import pytest

from looptrading.core.cache import TTLCache
from looptrading.services.market_data import NewsItem, RateLimiter
from looptrading.services.market_data_service import MarketDataGateway
from looptrading.services.news_service import NewsService
from tests.conftest import FakeProvider, news_item


def make_service(provider):
    gateway = MarketDataGateway(provider=provider, cache=TTLCache(), rate_limiter=RateLimiter(0))
    return NewsService(gateway)


class TestNewsService:
    @pytest.mark.asyncio
    async def test_newest_first_and_filtered(self):
        provider = FakeProvider(
            news=[
                news_item("Older", 60),
                NewsItem(title="", link="https://example.com/empty"),
                news_item("Newest", 5),
                news_item("Middle", 30),
            ]
        )
        service = make_service(provider)

        news = await service.get_news_by_symbol("AAPL")

        assert [n.title for n in news] == ["Newest", "Middle", "Older"]

    @pytest.mark.asyncio
    async def test_cached_and_limited(self):
        provider = FakeProvider(news=[news_item(f"Item {i}", i) for i in range(6)])
        service = make_service(provider)

        first = await service.get_news_by_symbol("AAPL", limit=2)
        second = await service.get_news_by_symbol("aapl", limit=4)

        assert len(first) == 2
        assert len(second) == 4
        assert [c for c in provider.calls if c[0] == "news"] == [("news", "AAPL", 10)]

    @pytest.mark.asyncio
    async def test_count_recent_news(self):
        provider = FakeProvider(news=[news_item(f"Item {i}", i) for i in range(3)])
        service = make_service(provider)
        assert await service.count_recent_news("MSFT") == 3

    @pytest.mark.asyncio
    async def test_merged_feed_dedups_by_link(self):
        shared = news_item("Shared", 1, link="https://example.com/shared")
        provider = FakeProvider(news=[shared, news_item("Other", 10)])
        service = make_service(provider)

        news = await service.get_news_for_symbols(["AAPL", "MSFT"])

        assert [n.title for n in news] == ["Shared", "Other"]

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from looptrading.core.cache import TTLCache, cache_key
from looptrading.core.config import settings
from looptrading.services.market_data import NewsItem
from looptrading.services.market_data_service import MarketDataGateway

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class NewsService:
    """Per-symbol news, newest first, cached for NEWS_CACHE_TTL_SEC."""

    def __init__(self, gateway: MarketDataGateway, cache: Optional[TTLCache] = None):
        self.gateway = gateway
        self.cache = cache if cache is not None else gateway.cache

    async def get_news_by_symbol(self, symbol: str, limit: Optional[int] = None) -> List[NewsItem]:
        limit = settings.NEWS_LIMIT if limit is None else limit
        news = await self.cache.get_or_set(
            cache_key("news", symbol.upper()),
            lambda: self._fetch_news(symbol),
            settings.NEWS_CACHE_TTL_SEC,
        )
        return news[:limit]

    async def _fetch_news(self, symbol: str) -> List[NewsItem]:
        items = await self.gateway.search_news(symbol, settings.NEWS_LIMIT)
        return sorted(
            (item for item in items if item.title and item.link),
            key=lambda item: item.published_at or _EPOCH,
            reverse=True,
        )

    async def get_news_for_symbols(
        self, symbols: List[str], limit: Optional[int] = None
    ) -> List[NewsItem]:
        """Merged feed for several symbols, deduplicated by link."""
        limit = settings.NEWS_LIMIT if limit is None else limit
        results = await asyncio.gather(
            *(self.get_news_by_symbol(symbol) for symbol in symbols),
            return_exceptions=True,
        )

        merged: List[NewsItem] = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                logger.warning(f"News lookup failed for {symbol}: {result}")
                continue
            merged.extend(result)

        seen = set()
        unique = []
        for item in sorted(merged, key=lambda i: i.published_at or _EPOCH, reverse=True):
            if item.link in seen:
                continue
            seen.add(item.link)
            unique.append(item)
        return unique[:limit]

    async def count_recent_news(self, symbol: str) -> int:
        return len(await self.get_news_by_symbol(symbol))

from typing import Dict, Type
from looptrading.services.market_data.base import (
    MarketDataProvider,
    NewsItem,
    OHLCVBar,
    StockHistory,
    StockQuote,
)
from looptrading.services.market_data.rate_limiter import RateLimiter
from looptrading.services.market_data.yfinance_provider import YFinanceProvider
from looptrading.core.config import settings

PROVIDERS: Dict[str, Type[MarketDataProvider]] = {
    "yfinance": YFinanceProvider,
}


def get_market_data_provider(name: str | None = None) -> MarketDataProvider:
    """Factory to get provider instance."""
    name = name or settings.MARKET_DATA_PROVIDER
    provider_class = PROVIDERS.get(name)
    if not provider_class:
        raise ValueError(f"Unknown provider: {name}")
    return provider_class()


__all__ = [
    "MarketDataProvider",
    "NewsItem",
    "OHLCVBar",
    "RateLimiter",
    "StockHistory",
    "StockQuote",
    "YFinanceProvider",
    "get_market_data_provider",
]

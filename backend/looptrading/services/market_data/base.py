from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Optional
import pandas as pd

HISTORY_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


@dataclass
class StockQuote:
    symbol: str
    price: float
    change: float
    change_percent: float
    volume: int
    high: float
    low: float
    open: float
    previous_close: float
    currency: str
    market_state: str
    name: str
    exchange: str
    fetched_at: datetime


@dataclass
class OHLCVBar:
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int


@dataclass
class StockHistory:
    symbol: str
    period: str
    bars: List[OHLCVBar] = field(default_factory=list)
    fetched_at: Optional[datetime] = None


@dataclass
class NewsItem:
    title: str
    link: str
    publisher: Optional[str] = None
    published_at: Optional[datetime] = None


class MarketDataProvider(ABC):
    """
    Abstract base class for market data providers.

    Implementations are blocking; the gateway runs them in a worker thread
    and owns caching, rate limiting and retries.
    """

    @abstractmethod
    def fetch_quote(self, symbol: str) -> dict[str, Any]:
        """
        Fetch a quote snapshot.
        Returns a dict keyed like StockQuote (without symbol/fetched_at);
        missing values may be None.
        """
        pass

    @abstractmethod
    def fetch_history(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval: str,
    ) -> pd.DataFrame:
        """
        Fetch OHLCV bars between start and end.
        Returns DataFrame with columns: [date, open, high, low, close, volume]
        """
        pass

    @abstractmethod
    def search_news(self, symbol: str, count: int) -> List[NewsItem]:
        """Fetch recent news items for a symbol."""
        pass

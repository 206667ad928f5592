from datetime import datetime, timezone
from typing import Any, List, Optional
import logging

import pandas as pd
import yfinance as yf

from looptrading.core.config import settings
from looptrading.core.exceptions import NoDataError
from looptrading.services.market_data.base import (
    HISTORY_COLUMNS,
    MarketDataProvider,
    NewsItem,
)

logger = logging.getLogger(__name__)


class YFinanceProvider(MarketDataProvider):
    """Yahoo Finance via yfinance."""

    def __init__(self, timeout_sec: Optional[float] = None):
        self.timeout_sec = (
            settings.MARKET_DATA_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        )

    def fetch_quote(self, symbol: str) -> dict[str, Any]:
        info = yf.Ticker(symbol).get_info()
        price = info.get("regularMarketPrice", info.get("currentPrice")) if info else None
        if not info or (price is None and not info.get("shortName")):
            raise NoDataError(symbol, "quote")

        return {
            "price": price,
            "change": info.get("regularMarketChange"),
            "change_percent": info.get("regularMarketChangePercent"),
            "volume": info.get("regularMarketVolume"),
            "high": info.get("regularMarketDayHigh"),
            "low": info.get("regularMarketDayLow"),
            "open": info.get("regularMarketOpen"),
            "previous_close": info.get("regularMarketPreviousClose"),
            "currency": info.get("currency"),
            "market_state": info.get("marketState"),
            "name": info.get("shortName") or info.get("longName"),
            "exchange": info.get("fullExchangeName") or info.get("exchange"),
        }

    def fetch_history(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval: str,
    ) -> pd.DataFrame:
        hist = yf.Ticker(symbol).history(
            start=start,
            end=end,
            interval=interval,
            auto_adjust=False,
            timeout=self.timeout_sec,
            raise_errors=True,
        )
        if hist is None or hist.empty:
            return pd.DataFrame(columns=HISTORY_COLUMNS)

        # history() columns: [Open, High, Low, Close, Adj Close, Volume, Dividends, Stock Splits]
        df = hist.reset_index()
        df = df.rename(
            columns={
                "Date": "date",
                "Datetime": "date",
                "Open": "open",
                "High": "high",
                "Low": "low",
                "Close": "close",
                "Volume": "volume",
            }
        )
        df["date"] = pd.to_datetime(df["date"]).dt.date
        return df[HISTORY_COLUMNS]

    def search_news(self, symbol: str, count: int) -> List[NewsItem]:
        search = yf.Search(symbol, news_count=count, max_results=0, timeout=self.timeout_sec)
        items: List[NewsItem] = []
        for raw in search.news or []:
            title = raw.get("title")
            link = raw.get("link")
            if not title or not link:
                continue
            published = raw.get("providerPublishTime")
            items.append(
                NewsItem(
                    title=title,
                    link=link,
                    publisher=raw.get("publisher"),
                    published_at=(
                        datetime.fromtimestamp(published, tz=timezone.utc)
                        if published
                        else None
                    ),
                )
            )
        return items

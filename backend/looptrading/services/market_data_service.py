"""
Market data gateway.

Single entry point to the external provider: TTL caching, a global
minimum gap between dispatches and retry with exponential backoff on
provider rate-limit responses.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, TypeVar

import pandas as pd

from looptrading.core.cache import TTLCache, cache_key
from looptrading.core.config import settings
from looptrading.core.exceptions import MarketDataError, NoDataError
from looptrading.services.market_data import (
    MarketDataProvider,
    NewsItem,
    OHLCVBar,
    RateLimiter,
    StockHistory,
    StockQuote,
    get_market_data_provider,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PeriodConfig:
    lookback: pd.DateOffset
    interval: str


PERIOD_CONFIG: dict[str, PeriodConfig] = {
    "1d": PeriodConfig(pd.DateOffset(days=5), "1d"),
    "1w": PeriodConfig(pd.DateOffset(months=1), "1d"),
    "1m": PeriodConfig(pd.DateOffset(months=1), "1d"),
    "3m": PeriodConfig(pd.DateOffset(months=3), "1d"),
    "1y": PeriodConfig(pd.DateOffset(years=1), "1wk"),
}

EU_MARKET_SUFFIXES: dict[str, str] = {
    "PA": "Euronext Paris",
    "DE": "XETRA Frankfurt",
    "AS": "Euronext Amsterdam",
    "MI": "Borsa Italiana",
    "MC": "Bolsa de Madrid",
    "L": "London Stock Exchange",
    "BR": "Euronext Brussels",
    "LS": "Euronext Lisbon",
    "HE": "Helsinki",
    "ST": "Stockholm",
    "CO": "Copenhagen",
    "OL": "Oslo",
    "SW": "SIX Swiss Exchange",
    "VI": "Vienna",
}


def _suffix(symbol: str) -> Optional[str]:
    parts = symbol.split(".")
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1].upper()


def detect_market(symbol: str) -> str:
    """"EU" for a known European exchange suffix, otherwise "US"."""
    return "EU" if _suffix(symbol) in EU_MARKET_SUFFIXES else "US"


def get_exchange_name(symbol: str) -> Optional[str]:
    suffix = _suffix(symbol)
    return EU_MARKET_SUFFIXES.get(suffix) if suffix else None


def is_rate_limit_error(error: BaseException) -> bool:
    message = str(error)
    return "429" in message or "Too Many Requests" in message


class MarketDataGateway:
    """Cached, rate-limited and retrying access to a MarketDataProvider."""

    def __init__(
        self,
        provider: Optional[MarketDataProvider] = None,
        cache: Optional[TTLCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider or get_market_data_provider()
        self.cache = cache if cache is not None else TTLCache(default_ttl=settings.QUOTE_CACHE_TTL_SEC)
        self.rate_limiter = rate_limiter or RateLimiter(settings.RATE_LIMIT_DELAY_MS / 1000)
        self.max_retries = max(
            1, settings.MARKET_DATA_MAX_RETRIES if max_retries is None else max_retries
        )
        self.retry_base_delay = (
            settings.MARKET_DATA_RETRY_BASE_DELAY_MS / 1000
            if retry_base_delay is None
            else retry_base_delay
        )
        self._sleep = sleep

    detect_market = staticmethod(detect_market)
    get_exchange_name = staticmethod(get_exchange_name)

    async def _fetch_with_retry(self, symbol: str, label: str, fn: Callable[[], T]) -> T:
        """
        Run a blocking provider call in a worker thread.

        Each attempt waits on the rate limiter. Only rate-limit errors are
        retried (delays base, 2*base, ...); anything else fails at once.
        """
        for attempt in range(self.max_retries):
            await self.rate_limiter.acquire()
            try:
                return await asyncio.to_thread(fn)
            except NoDataError:
                raise
            except Exception as e:
                if is_rate_limit_error(e) and attempt < self.max_retries - 1:
                    delay = self.retry_base_delay * (2 ** attempt)
                    logger.warning(
                        "Rate limited on %s (attempt %s/%s), retrying in %.1fs",
                        label,
                        attempt + 1,
                        self.max_retries,
                        delay,
                    )
                    await self._sleep(delay)
                    continue
                raise MarketDataError(f"Provider call failed for {label}: {e}", symbol=symbol) from e

        # Unreachable: the last attempt either returns or raises
        raise MarketDataError(f"Provider call failed for {label}", symbol=symbol)

    async def get_quote(self, symbol: str) -> StockQuote:
        symbol = symbol.upper()
        return await self.cache.get_or_set(
            cache_key("market", "quote", symbol),
            lambda: self._fetch_quote(symbol),
            settings.QUOTE_CACHE_TTL_SEC,
        )

    async def _fetch_quote(self, symbol: str) -> StockQuote:
        data = await self._fetch_with_retry(
            symbol, f"quote {symbol}", lambda: self.provider.fetch_quote(symbol)
        )
        return StockQuote(
            symbol=symbol,
            price=float(data.get("price") or 0),
            change=float(data.get("change") or 0),
            change_percent=float(data.get("change_percent") or 0),
            volume=int(data.get("volume") or 0),
            high=float(data.get("high") or 0),
            low=float(data.get("low") or 0),
            open=float(data.get("open") or 0),
            previous_close=float(data.get("previous_close") or 0),
            currency=data.get("currency") or "USD",
            market_state=data.get("market_state") or "CLOSED",
            name=data.get("name") or symbol,
            exchange=data.get("exchange") or "",
            fetched_at=datetime.now(timezone.utc),
        )

    async def get_history(self, symbol: str, period: str = "3m") -> StockHistory:
        if period not in PERIOD_CONFIG:
            raise ValueError(f"Unknown history period: {period}")

        symbol = symbol.upper()
        return await self.cache.get_or_set(
            cache_key("market", "history", symbol, period),
            lambda: self._fetch_history(symbol, period),
            settings.HISTORY_CACHE_TTL_SEC,
        )

    async def _fetch_history(self, symbol: str, period: str) -> StockHistory:
        config = PERIOD_CONFIG[period]
        end = datetime.now(timezone.utc)
        start = (pd.Timestamp(end) - config.lookback).to_pydatetime()

        df = await self._fetch_with_retry(
            symbol,
            f"history {symbol} {period}",
            lambda: self.provider.fetch_history(symbol, start, end, config.interval),
        )
        return StockHistory(
            symbol=symbol,
            period=period,
            bars=self._to_bars(df),
            fetched_at=datetime.now(timezone.utc),
        )

    async def search_news(self, symbol: str, count: Optional[int] = None) -> List[NewsItem]:
        """Uncached news lookup; NewsService owns caching and ordering."""
        symbol = symbol.upper()
        count = settings.NEWS_LIMIT if count is None else count
        return await self._fetch_with_retry(
            symbol, f"news {symbol}", lambda: self.provider.search_news(symbol, count)
        )

    def invalidate_cache(self, symbol: str) -> None:
        symbol = symbol.upper()
        keys = [cache_key("market", "quote", symbol)]
        keys.extend(cache_key("market", "history", symbol, p) for p in PERIOD_CONFIG)
        removed = self.cache.delete_many(keys)
        logger.debug("Invalidated %s cache entries for %s", removed, symbol)

    @staticmethod
    def _to_bars(df: pd.DataFrame) -> List[OHLCVBar]:
        if df is None or df.empty:
            return []
        df = df.fillna(0)
        bars = []
        for row in df.itertuples(index=False):
            bar_date = row.date
            if isinstance(bar_date, (pd.Timestamp, datetime)):
                bar_date = bar_date.date()
            bars.append(
                OHLCVBar(
                    date=bar_date,
                    open=float(row.open),
                    high=float(row.high),
                    low=float(row.low),
                    close=float(row.close),
                    volume=int(row.volume),
                )
            )
        return sorted(bars, key=lambda b: b.date)

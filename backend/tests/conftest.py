"""Pytest configuration and fixtures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pandas as pd
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from looptrading.core.database import Base
from looptrading.services.market_data import MarketDataProvider, NewsItem


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Throwaway SQLite database with all tables created."""
    import looptrading.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    yield async_sessionmaker(db_engine, expire_on_commit=False)


def trading_days(count: int, end: date = date(2026, 2, 6)) -> list[date]:
    """``count`` consecutive weekdays ending at ``end`` (ascending)."""
    days: list[date] = []
    current = end
    while len(days) < count:
        if current.weekday() < 5:
            days.append(current)
        current -= timedelta(days=1)
    return list(reversed(days))


@dataclass
class AlertRow:
    """Plain stand-in for a StockData row."""
    date: date
    close: float
    high: float
    volume: float
    low: Optional[float] = None
    sma50: Optional[float] = None
    sma200: Optional[float] = None
    rsi14: Optional[float] = None
    macd_line: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_hist: Optional[float] = None
    avg_vol20: Optional[float] = None
    score: Optional[int] = None


class FakeProvider(MarketDataProvider):
    """In-memory provider. ``errors`` are raised (in order) before any result."""

    def __init__(
        self,
        quotes: Optional[dict[str, dict[str, Any]]] = None,
        history: Optional[pd.DataFrame] = None,
        news: Optional[list[NewsItem]] = None,
        errors: Optional[list[Exception]] = None,
    ):
        self.quotes = quotes or {}
        self.history = history if history is not None else pd.DataFrame(
            columns=["date", "open", "high", "low", "close", "volume"]
        )
        self.news = news or []
        self.errors = list(errors or [])
        self.calls: list[tuple] = []

    def _maybe_raise(self) -> None:
        if self.errors:
            raise self.errors.pop(0)

    def fetch_quote(self, symbol: str) -> dict[str, Any]:
        self.calls.append(("quote", symbol))
        self._maybe_raise()
        return self.quotes.get(symbol, {"price": 100.0, "name": f"{symbol} Inc."})

    def fetch_history(self, symbol: str, start: datetime, end: datetime, interval: str) -> pd.DataFrame:
        self.calls.append(("history", symbol, interval))
        self._maybe_raise()
        return self.history

    def search_news(self, symbol: str, count: int) -> list[NewsItem]:
        self.calls.append(("news", symbol, count))
        self._maybe_raise()
        return self.news[:count]


def news_item(title: str, minutes_ago: int, link: Optional[str] = None) -> NewsItem:
    return NewsItem(
        title=title,
        link=link or f"https://example.com/{title.replace(' ', '-').lower()}",
        publisher="Example Wire",
        published_at=datetime(2026, 2, 9, 12, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago),
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


async def seed_stock(
    session_factory,
    symbol: str,
    market: str = "US",
    closes: Optional[list[float]] = None,
    volumes: Optional[list[int]] = None,
    active: bool = True,
) -> None:
    """Insert a Stock and (optionally) one StockData bar per close."""
    from looptrading.models import Stock, StockData

    closes = closes or []
    volumes = volumes or [1000 + 10 * i for i in range(len(closes))]
    async with session_factory() as session:
        session.add(Stock(symbol=symbol, name=f"{symbol} Inc.", market=market, active=active))
        for day, close, volume in zip(trading_days(len(closes)), closes, volumes):
            session.add(
                StockData(
                    symbol=symbol,
                    date=day,
                    open=close - 0.5,
                    high=close + 1,
                    low=close - 1,
                    close=close,
                    volume=volume,
                )
            )
        await session.commit()

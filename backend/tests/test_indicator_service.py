"""
Tests for IndicatorService against a SQLite database.
"""

import math

import pytest
from sqlalchemy import select

from looptrading.models import StockData
from looptrading.services.indicator_service import IndicatorService
from looptrading.strategy import indicators as ind
from tests.conftest import seed_stock

CLOSES = [100 + 0.3 * i + 2 * math.sin(i / 3) for i in range(60)]


async def load_rows(session_factory, symbol):
    async with session_factory() as session:
        result = await session.execute(
            select(StockData).where(StockData.symbol == symbol).order_by(StockData.date)
        )
        return result.scalars().all()


class TestComputeIndicators:
    @pytest.mark.asyncio
    async def test_latest_snapshot(self, session_factory):
        await seed_stock(session_factory, "AAPL", closes=CLOSES)
        service = IndicatorService(session_factory)

        snapshot = await service.compute_indicators("aapl")

        assert snapshot.symbol == "AAPL"
        assert snapshot.sma20 == pytest.approx(ind.sma(CLOSES, 20))
        assert snapshot.sma50 == pytest.approx(ind.sma(CLOSES, 50))
        assert snapshot.sma200 is None
        assert snapshot.rsi14 == pytest.approx(ind.rsi(CLOSES, 14))
        assert snapshot.macd_hist == pytest.approx(ind.macd(CLOSES).histogram)
        assert snapshot.volume_ratio is not None
        assert snapshot.calculated_at is not None

    @pytest.mark.asyncio
    async def test_rows_recomputed_over_prefix(self, session_factory):
        """Each row holds the indicator computed from history up to that row."""
        await seed_stock(session_factory, "AAPL", closes=CLOSES)
        await IndicatorService(session_factory).compute_indicators("AAPL")

        rows = await load_rows(session_factory, "AAPL")

        assert rows[18].sma20 is None
        assert rows[19].sma20 == pytest.approx(ind.sma(CLOSES[:20], 20))
        assert rows[48].sma50 is None
        assert rows[49].sma50 == pytest.approx(ind.sma(CLOSES[:50], 50))
        assert all(r.sma200 is None for r in rows)
        assert rows[7].ema9 is None
        assert rows[8].ema9 == pytest.approx(ind.sma(CLOSES[:9], 9))
        assert rows[13].rsi14 is None
        assert rows[14].rsi14 == pytest.approx(ind.rsi(CLOSES[:15], 14))
        assert rows[32].macd_line is None
        assert rows[33].macd_line is not None
        assert rows[0].obv == 0
        assert rows[19].avg_vol20 == pytest.approx(sum(r.volume for r in rows[:20]) / 20)
        assert rows[-1].bb_middle == pytest.approx(ind.sma(CLOSES, 20))

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, session_factory):
        service = IndicatorService(session_factory)
        assert await service.compute_indicators("NOPE") is None
        assert await service.get_indicators("NOPE") is None


class TestGetIndicators:
    @pytest.mark.asyncio
    async def test_reads_stored_latest_row(self, session_factory):
        await seed_stock(session_factory, "MSFT", closes=CLOSES)
        service = IndicatorService(session_factory)
        computed = await service.compute_indicators("MSFT")

        stored = await service.get_indicators("msft")

        assert stored.date == computed.date
        assert stored.sma20 == pytest.approx(computed.sma20)
        assert stored.macd_signal == pytest.approx(computed.macd_signal)
        assert stored.volume_ratio is None
        assert stored.calculated_at is not None

    @pytest.mark.asyncio
    async def test_no_recompute(self, session_factory):
        """Without compute_indicators() the stored columns stay empty."""
        await seed_stock(session_factory, "MSFT", closes=CLOSES)
        stored = await IndicatorService(session_factory).get_indicators("MSFT")
        assert stored.sma20 is None

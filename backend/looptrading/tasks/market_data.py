"""
updateMarketData job.

Every tick during market hours: fetch recent history for each active stock
of the open market(s), store bars for dates not seen before, refresh the
latest bar and recompute indicators. One symbol failing does not stop the
run.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from looptrading.core.config import settings
from looptrading.core.database import AsyncSessionLocal, upsert
from looptrading.core.market_hours import MarketStatus, is_market_open
from looptrading.models.stock import Stock
from looptrading.models.stock_data import StockData
from looptrading.scheduler.celery_app import app
from looptrading.scheduler.scheduler import Scheduler
from looptrading.services.indicator_service import IndicatorService
from looptrading.services.market_data_service import MarketDataGateway

logger = logging.getLogger(__name__)

JOB_NAME = "updateMarketData"
PROGRESS_MILESTONES = (10, 50, 100)


@dataclass
class UpdateSummary:
    status: str
    markets: list[str] = field(default_factory=list)
    total: int = 0
    success: int = 0
    failed: int = 0
    duration_ms: int = 0


class MarketDataUpdater:
    def __init__(
        self,
        gateway: MarketDataGateway,
        indicator_service: IndicatorService,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        backfill_threshold: Optional[int] = None,
        market_status: Callable[[Optional[datetime]], MarketStatus] = is_market_open,
    ):
        self.gateway = gateway
        self.indicator_service = indicator_service
        self.session_factory = session_factory
        self.backfill_threshold = (
            settings.BACKFILL_THRESHOLD_BARS if backfill_threshold is None else backfill_threshold
        )
        self.market_status = market_status

    async def run(self, now: Optional[datetime] = None) -> UpdateSummary:
        markets = self.market_status(now)
        if not markets.any_open:
            logger.info("[updateMarketData] Skipped - markets closed")
            return UpdateSummary(status="skipped")

        open_markets = markets.open_markets()
        async with self.session_factory() as session:
            result = await session.execute(
                select(Stock.symbol)
                .where(Stock.active.is_(True), Stock.market.in_(open_markets))
                .order_by(Stock.symbol)
            )
            symbols = list(result.scalars().all())

        if not symbols:
            logger.info("[updateMarketData] No active stocks to update")
            return UpdateSummary(status="empty", markets=open_markets)

        start = time.monotonic()
        logger.info(
            f"[updateMarketData] Starting update for {len(symbols)} stocks "
            f"(markets: {', '.join(open_markets)})"
        )

        summary = UpdateSummary(status="completed", markets=open_markets, total=len(symbols))
        last_milestone = 0
        for i, symbol in enumerate(symbols, start=1):
            try:
                await self.update_single_stock(symbol)
                summary.success += 1
            except Exception as e:
                summary.failed += 1
                logger.error(f"[updateMarketData] Failed: {symbol} - {e}")

            pct = round(i / len(symbols) * 100)
            for milestone in PROGRESS_MILESTONES:
                if pct >= milestone > last_milestone:
                    logger.info(f"[updateMarketData] Progress: {milestone}% ({i}/{len(symbols)})")
                    last_milestone = milestone

        summary.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"[updateMarketData] Done: {summary.success} success, "
            f"{summary.failed} failed, {summary.duration_ms}ms total"
        )
        return summary

    async def update_single_stock(self, symbol: str) -> int:
        """Store new bars for one symbol and recompute its indicators. Returns bars inserted."""
        symbol = symbol.upper()

        async with self.session_factory() as session:
            existing_count = await session.scalar(
                select(func.count()).select_from(StockData).where(StockData.symbol == symbol)
            )
        period = "1y" if (existing_count or 0) < self.backfill_threshold else "1m"

        history = await self.gateway.get_history(symbol, period)
        if not history.bars:
            return 0

        bars = history.bars
        latest = bars[-1]

        async with self.session_factory() as session:
            result = await session.execute(
                select(StockData.date).where(
                    StockData.symbol == symbol,
                    StockData.date.in_([b.date for b in bars]),
                )
            )
            existing_dates = set(result.scalars().all())

            new_bars = [
                b for b in bars[:-1]
                if b.date not in existing_dates and b.date != latest.date
            ]
            session.add_all(
                StockData(
                    symbol=symbol,
                    date=b.date,
                    open=b.open,
                    high=b.high,
                    low=b.low,
                    close=b.close,
                    volume=b.volume,
                )
                for b in new_bars
            )
            await session.flush()

            # Latest bar may still be forming intraday
            await session.execute(
                upsert(
                    session,
                    StockData,
                    {
                        "symbol": symbol,
                        "date": latest.date,
                        "open": latest.open,
                        "high": latest.high,
                        "low": latest.low,
                        "close": latest.close,
                        "volume": latest.volume,
                    },
                    index_elements=["symbol", "date"],
                    update_columns=["open", "high", "low", "close", "volume", "updated_at"],
                )
            )
            await session.commit()

        inserted = len(new_bars) + (0 if latest.date in existing_dates else 1)
        logger.debug(f"[updateMarketData] {symbol}: {inserted} new bars ({period})")

        await self.indicator_service.compute_indicators(symbol)
        return inserted


def register_update_market_data_job(scheduler: Scheduler, updater: MarketDataUpdater) -> None:
    async def handler() -> None:
        await updater.run()

    scheduler.register_job(JOB_NAME, settings.UPDATE_MARKET_DATA_CRON, handler)


async def _update_market_data_async() -> dict:
    from looptrading.engine import AnalyticsEngine

    engine = AnalyticsEngine()
    try:
        summary = await engine.market_data_updater.run()
    finally:
        await engine.close()
    return asdict(summary)


@app.task(name="looptrading.tasks.market_data.update_market_data")
def update_market_data() -> dict:
    """Manual/worker trigger for the updateMarketData job."""
    result = asyncio.run(_update_market_data_async())
    logger.info("Market data update finished: %s", result["status"])
    return result

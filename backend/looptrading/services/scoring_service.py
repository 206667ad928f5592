import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from looptrading.core.config import settings
from looptrading.core.database import AsyncSessionLocal
from looptrading.models.base import utcnow
from looptrading.models.stock_data import StockData
from looptrading.services.news_service import NewsService
from looptrading.strategy.scoring import (
    CompositeScore,
    ScoreInputs,
    compute_components,
    total_score,
)

logger = logging.getLogger(__name__)


class ScoringService:
    """
    Composite score for a symbol from its stored indicators, recent lows
    and live news volume. The result is persisted on the latest bar.
    """

    def __init__(
        self,
        news_service: NewsService,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        history_bars: Optional[int] = None,
        support_lookback: Optional[int] = None,
    ):
        self.news_service = news_service
        self.session_factory = session_factory
        self.history_bars = history_bars or settings.SCORE_HISTORY_BARS
        self.support_lookback = support_lookback or settings.SUPPORT_LOOKBACK_BARS

    async def _news_count(self, symbol: str) -> int:
        try:
            return await self.news_service.count_recent_news(symbol)
        except Exception as e:
            logger.warning(f"News lookup failed for {symbol}, scoring with 0 news: {e}")
            return 0

    async def calculate_score(self, symbol: str) -> Optional[CompositeScore]:
        symbol = symbol.upper()

        async with self.session_factory() as session:
            result = await session.execute(
                select(StockData)
                .where(StockData.symbol == symbol)
                .order_by(StockData.date.desc())
                .limit(self.history_bars)
            )
            rows = result.scalars().all()
            if not rows:
                return None

            latest = rows[0]
            inputs = ScoreInputs(
                volume=float(latest.volume),
                sma20=latest.sma20,
                sma50=latest.sma50,
                sma200=latest.sma200,
                rsi14=latest.rsi14,
                macd_hist=latest.macd_hist,
                avg_vol20=latest.avg_vol20,
            )
            recent_lows = [float(r.low) for r in rows[: self.support_lookback]]
            news_count = await self._news_count(symbol)

            components = compute_components(float(latest.close), inputs, recent_lows, news_count)
            score = total_score(components)

            latest.score = score
            await session.commit()

        logger.debug(f"Score for {symbol}: {score}")
        return CompositeScore(
            symbol=symbol,
            score=score,
            components=components,
            calculated_at=utcnow(),
        )

"""
Indicator computation and persistence.

compute_indicators() loads a symbol's full ascending history, returns the
latest value of every indicator and rewrites the per-row indicator columns
inside one transaction. get_indicators() only reads what is stored.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import date, datetime
import logging
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from looptrading.core.database import AsyncSessionLocal
from looptrading.models.base import utcnow
from looptrading.models.stock_data import StockData
from looptrading.strategy import indicators as ind

logger = logging.getLogger(__name__)

INDICATOR_COLUMNS = (
    "sma20", "sma50", "sma200", "ema9", "ema21",
    "rsi14", "macd_line", "macd_signal", "macd_hist",
    "bb_upper", "bb_middle", "bb_lower",
    "obv", "avg_vol20",
)


@dataclass
class StockIndicators:
    symbol: str
    date: date
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    sma200: Optional[float] = None
    ema9: Optional[float] = None
    ema21: Optional[float] = None
    rsi14: Optional[float] = None
    macd_line: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_hist: Optional[float] = None
    bb_upper: Optional[float] = None
    bb_middle: Optional[float] = None
    bb_lower: Optional[float] = None
    obv: Optional[float] = None
    avg_vol20: Optional[float] = None
    volume_ratio: Optional[float] = None
    calculated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return asdict(self)


def latest_indicators(symbol: str, bar_date: date, closes: Sequence[float], volumes: Sequence[float]) -> StockIndicators:
    """Indicator values for the last bar of the series."""
    macd = ind.macd(closes, 12, 26, 9)
    bands = ind.bollinger_bands(closes, 20, 2)
    avg_vol = ind.average_volume(volumes, 20)
    return StockIndicators(
        symbol=symbol,
        date=bar_date,
        sma20=ind.sma(closes, 20),
        sma50=ind.sma(closes, 50),
        sma200=ind.sma(closes, 200),
        ema9=ind.ema(closes, 9),
        ema21=ind.ema(closes, 21),
        rsi14=ind.rsi(closes, 14),
        macd_line=macd.macd_line if macd else None,
        macd_signal=macd.signal_line if macd else None,
        macd_hist=macd.histogram if macd else None,
        bb_upper=bands.upper if bands else None,
        bb_middle=bands.middle if bands else None,
        bb_lower=bands.lower if bands else None,
        obv=ind.obv(closes, volumes),
        avg_vol20=avg_vol.avg_volume if avg_vol else None,
        volume_ratio=avg_vol.volume_ratio if avg_vol else None,
    )


class RecomputeStrategy(ABC):
    """How per-row indicator columns are refreshed after new bars arrive."""

    @abstractmethod
    def apply(
        self,
        rows: Sequence[StockData],
        closes: Sequence[float],
        volumes: Sequence[float],
    ) -> int:
        """Update indicator columns on ``rows`` in place. Returns rows touched."""


class FullHistoryRecompute(RecomputeStrategy):
    """
    Recompute every row from the prefix of history ending at that row.
    Quadratic in history length for MACD; fine for a few hundred bars.
    """

    def apply(self, rows, closes, volumes) -> int:
        ema9_by_index = dict(ind.ema_series(closes, 9))
        ema21_by_index = dict(ind.ema_series(closes, 21))
        obv = ind.obv_series(closes, volumes)

        for i, row in enumerate(rows):
            prefix = closes[: i + 1]
            vol_prefix = volumes[: i + 1]

            macd = ind.macd(prefix, 12, 26, 9)
            bands = ind.bollinger_bands(prefix, 20, 2) if i >= 19 else None
            avg_vol = ind.average_volume(vol_prefix, 20) if i >= 19 else None

            row.sma20 = ind.sma(prefix, 20) if i >= 19 else None
            row.sma50 = ind.sma(prefix, 50) if i >= 49 else None
            row.sma200 = ind.sma(prefix, 200) if i >= 199 else None
            row.ema9 = ema9_by_index.get(i)
            row.ema21 = ema21_by_index.get(i)
            row.rsi14 = ind.rsi(prefix, 14) if i >= 14 else None
            row.macd_line = macd.macd_line if macd else None
            row.macd_signal = macd.signal_line if macd else None
            row.macd_hist = macd.histogram if macd else None
            row.bb_upper = bands.upper if bands else None
            row.bb_middle = bands.middle if bands else None
            row.bb_lower = bands.lower if bands else None
            row.obv = obv[i] if i < len(obv) else None
            row.avg_vol20 = avg_vol.avg_volume if avg_vol else None
            row.updated_at = utcnow()

        return len(rows)


class IndicatorService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        recompute: Optional[RecomputeStrategy] = None,
    ):
        self.session_factory = session_factory
        self.recompute = recompute or FullHistoryRecompute()

    async def compute_indicators(self, symbol: str) -> Optional[StockIndicators]:
        symbol = symbol.upper()

        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(StockData)
                    .where(StockData.symbol == symbol)
                    .order_by(StockData.date.asc())
                )
                rows = result.scalars().all()
                if not rows:
                    return None

                closes = [float(r.close) for r in rows]
                volumes = [float(r.volume) for r in rows]

                snapshot = latest_indicators(symbol, rows[-1].date, closes, volumes)
                updated = self.recompute.apply(rows, closes, volumes)

        logger.debug(f"Recomputed indicators for {symbol}: {updated} rows")
        snapshot.calculated_at = utcnow()
        return snapshot

    async def get_indicators(self, symbol: str) -> Optional[StockIndicators]:
        symbol = symbol.upper()

        async with self.session_factory() as session:
            result = await session.execute(
                select(StockData)
                .where(StockData.symbol == symbol)
                .order_by(StockData.date.desc())
                .limit(1)
            )
            latest = result.scalar_one_or_none()

        if latest is None:
            return None

        values = {col: getattr(latest, col) for col in INDICATOR_COLUMNS}
        return StockIndicators(
            symbol=symbol,
            date=latest.date,
            volume_ratio=None,
            calculated_at=latest.updated_at,
            **values,
        )

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from looptrading.core.database import Base
from looptrading.models.base import IdMixin, TimestampMixin


class StockData(Base, IdMixin, TimestampMixin):
    """
    Daily OHLCV bar plus the indicator snapshot computed for that date.
    Indicator columns stay NULL until enough history exists.
    """
    __tablename__ = "stock_data"
    __table_args__ = (
        UniqueConstraint("symbol", "date", name="uq_stock_data_symbol_date"),
    )

    symbol = Column(
        String(20),
        ForeignKey("stocks.symbol", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date = Column(Date, nullable=False, index=True)
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    volume = Column(BigInteger, nullable=False)

    # Trend
    sma20 = Column(Float)
    sma50 = Column(Float)
    sma200 = Column(Float)
    ema9 = Column(Float)
    ema21 = Column(Float)

    # Momentum
    rsi14 = Column(Float)
    macd_line = Column(Float)
    macd_signal = Column(Float)
    macd_hist = Column(Float)

    # Volatility / volume
    bb_upper = Column(Float)
    bb_middle = Column(Float)
    bb_lower = Column(Float)
    obv = Column(Float)
    avg_vol20 = Column(Float)

    score = Column(Integer)  # 0-100 composite

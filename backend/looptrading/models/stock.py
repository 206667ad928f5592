from sqlalchemy import Boolean, Column, Index, String
from looptrading.core.database import Base
from looptrading.models.base import TimestampMixin


class Stock(Base, TimestampMixin):
    """
    Tracked equity. ``market`` is "US" or "EU"; inactive stocks are
    skipped by the scheduled jobs.
    """
    __tablename__ = "stocks"
    __table_args__ = (
        Index("ix_stocks_market_active", "market", "active"),
    )

    symbol = Column(String(20), primary_key=True)
    name = Column(String(200), nullable=False)
    market = Column(String(2), nullable=False, default="US")
    sector = Column(String(100))
    active = Column(Boolean, nullable=False, default=True)

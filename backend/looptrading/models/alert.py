from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from looptrading.core.database import Base
from looptrading.models.base import IdMixin, utcnow


class Alert(Base, IdMixin):
    """Triggered alert. Only acknowledgement mutates it after creation."""
    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_symbol_strategy_triggered", "symbol", "strategy", "triggered_at"),
    )

    symbol = Column(
        String(20),
        ForeignKey("stocks.symbol", ondelete="CASCADE"),
        nullable=False,
    )
    strategy = Column(String(30), nullable=False)
    score = Column(Integer)
    message = Column(Text, nullable=False)
    triggered_at = Column(DateTime, nullable=False, default=utcnow)
    acknowledged = Column(Boolean, nullable=False, default=False, index=True)
    acknowledged_at = Column(DateTime)

from sqlalchemy import Boolean, Column, JSON, String
from looptrading.core.database import Base
from looptrading.models.base import IdMixin, TimestampMixin


class AlertRule(Base, IdMixin, TimestampMixin):
    """
    One rule per strategy (PULLBACK, BREAKOUT, MACD_CROSS, SCORE_THRESHOLD).
    ``params`` is free-form JSON, parsed by strategy.alert_rules.parse_rule_params.
    """
    __tablename__ = "alert_rules"

    strategy = Column(String(30), nullable=False, unique=True)
    params = Column(JSON, nullable=False, default=dict)
    enabled = Column(Boolean, nullable=False, default=True)

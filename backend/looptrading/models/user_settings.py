from sqlalchemy import Boolean, Column, DateTime, Integer, String
from looptrading.core.database import Base
from looptrading.models.base import utcnow

DEFAULT_SETTINGS_ID = "default"


class UserSettings(Base):
    """
    Singleton row of alert preferences.
    Strategy toggles and min_score_alert gate alert creation; push and
    quiet-hours fields are read by notification delivery, not the engine.
    """
    __tablename__ = "user_settings"

    id = Column(String(20), primary_key=True, default=DEFAULT_SETTINGS_ID)
    strategy_pullback = Column(Boolean, nullable=False, default=True)
    strategy_breakout = Column(Boolean, nullable=False, default=True)
    strategy_macd_cross = Column(Boolean, nullable=False, default=True)
    min_score_alert = Column(Integer, nullable=False, default=75)
    push_enabled = Column(Boolean, nullable=False, default=True)
    quiet_hours_enabled = Column(Boolean, nullable=False, default=False)
    quiet_hours_start = Column(String(5), default="22:00")
    quiet_hours_end = Column(String(5), default="08:00")
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

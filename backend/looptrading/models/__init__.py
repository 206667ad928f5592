# Base
from looptrading.models.base import TimestampMixin, IdMixin

# Market Data
from looptrading.models.stock import Stock
from looptrading.models.stock_data import StockData

# Alerting
from looptrading.models.alert_rule import AlertRule
from looptrading.models.alert import Alert
from looptrading.models.user_settings import UserSettings

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "Stock",
    "StockData",
    "AlertRule",
    "Alert",
    "UserSettings",
]

"""
Exception hierarchy for the analytics engine.

Every error raised on purpose by the engine carries an ``error_code`` so
callers (jobs, scripts) can log or branch on it without string matching.
"""

from typing import Any


class LoopTradingError(Exception):
    """Base exception for the engine."""

    error_code: str = "LOOPTRADING_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class MarketDataError(LoopTradingError):
    """Provider call failed (after retries, where retrying applies)."""

    error_code = "MARKET_DATA_ERROR"

    def __init__(self, message: str, symbol: str | None = None, **kwargs: Any):
        details = kwargs.pop("details", None) or {}
        if symbol:
            details["symbol"] = symbol
        super().__init__(message, details=details, **kwargs)
        self.symbol = symbol


class NoDataError(LoopTradingError):
    """Provider returned nothing usable for the symbol."""

    error_code = "NO_DATA"

    def __init__(self, symbol: str, what: str = "data"):
        super().__init__(
            f"No {what} found for symbol: {symbol}",
            details={"symbol": symbol},
        )
        self.symbol = symbol


class JobRegistrationError(LoopTradingError, ValueError):
    """Duplicate job name, unknown job or invalid cron expression."""

    error_code = "JOB_REGISTRATION_ERROR"

"""
Market session windows (UTC, weekdays only).

US: 14:30 - 21:00 UTC
EU: 08:00 - 16:30 UTC
Holidays and DST shifts are not modelled.
"""

from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Optional

US_OPEN = time(14, 30)
US_CLOSE = time(21, 0)
EU_OPEN = time(8, 0)
EU_CLOSE = time(16, 30)


@dataclass(frozen=True)
class MarketStatus:
    us: bool
    eu: bool

    @property
    def any_open(self) -> bool:
        return self.us or self.eu

    def open_markets(self) -> list[str]:
        markets = []
        if self.us:
            markets.append("US")
        if self.eu:
            markets.append("EU")
        return markets


def is_market_open(now: Optional[datetime] = None) -> MarketStatus:
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)

    # Saturday=5, Sunday=6
    if now.weekday() >= 5:
        return MarketStatus(us=False, eu=False)

    t = now.time().replace(tzinfo=None)
    return MarketStatus(
        us=US_OPEN <= t < US_CLOSE,
        eu=EU_OPEN <= t < EU_CLOSE,
    )

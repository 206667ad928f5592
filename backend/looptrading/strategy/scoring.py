"""
Composite opportunity score.

Six sub-scores, each clamped to [0, 100], weighted and summed:

    trend_lt   0.25  price vs SMA200
    trend_mt   0.20  price vs SMA50 and SMA20/SMA50 cross
    momentum   0.20  RSI zone and MACD histogram
    volume     0.15  latest volume vs 20 day average
    sentiment  0.10  recent news count
    support    0.10  distance above the recent lowest low

Missing inputs give a neutral 50 for that sub-score.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

NEUTRAL = 50.0

WEIGHTS: dict[str, float] = {
    "trend_lt": 0.25,
    "trend_mt": 0.20,
    "momentum": 0.20,
    "volume": 0.15,
    "sentiment": 0.10,
    "support": 0.10,
}

COMPONENT_LABELS: dict[str, str] = {
    "trend_lt": "Long-term trend",
    "trend_mt": "Medium-term trend",
    "momentum": "Momentum",
    "volume": "Volume",
    "sentiment": "Sentiment",
    "support": "Support proximity",
}


@dataclass
class ScoreInputs:
    """Latest-row indicator values the scorer needs."""
    volume: float
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    sma200: Optional[float] = None
    rsi14: Optional[float] = None
    macd_hist: Optional[float] = None
    avg_vol20: Optional[float] = None


@dataclass
class ScoreComponent:
    key: str
    name: str
    weight: float
    raw_score: float
    weighted_score: float


@dataclass
class CompositeScore:
    symbol: str
    score: int
    components: list[ScoreComponent] = field(default_factory=list)
    calculated_at: Optional[datetime] = None


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _linear(value: float, half_range: float) -> float:
    """Map [-half_range, +half_range] onto [0, 100], clamped."""
    return _clamp((value + half_range) / (2 * half_range) * 100)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_trend_lt(price: float, sma200: Optional[float]) -> float:
    if not sma200:
        return NEUTRAL
    return _linear((price - sma200) / sma200, 0.20)


def score_trend_mt(price: float, sma50: Optional[float], sma20: Optional[float]) -> float:
    if not sma50:
        return NEUTRAL

    price_score = _linear((price - sma50) / sma50, 0.15)

    cross_score = NEUTRAL
    if sma20 is not None:
        cross_score = _linear((sma20 - sma50) / sma50, 0.10)

    return price_score * 0.6 + cross_score * 0.4


def _rsi_zone_score(rsi: float) -> float:
    if 40 <= rsi <= 60:
        return 70 + (rsi - 40) / 20 * 30
    if 60 < rsi <= 70:
        return 100 - (rsi - 60) / 10 * 30
    if 30 <= rsi < 40:
        return 50 + (rsi - 30) / 10 * 20
    if rsi < 30:
        # Oversold
        return rsi / 30 * 50
    # Overbought
    return max(0.0, 50 - (rsi - 70) / 30 * 50)


def score_momentum(rsi: Optional[float], macd_hist: Optional[float]) -> float:
    rsi_score = NEUTRAL if rsi is None else _rsi_zone_score(rsi)
    macd_score = NEUTRAL if macd_hist is None else _linear(macd_hist, 2.0)
    return rsi_score * 0.5 + macd_score * 0.5


def score_volume(current_volume: float, avg_vol20: Optional[float]) -> float:
    if not avg_vol20:
        return NEUTRAL
    ratio = current_volume / avg_vol20
    return _clamp(ratio / 2.0 * 100)


def score_sentiment(news_count: int) -> float:
    if news_count <= 0:
        return 30.0
    if news_count <= 3:
        return 50.0
    if news_count <= 7:
        return 70.0
    return 85.0


def score_support_proximity(price: float, recent_lows: Sequence[float]) -> float:
    if not recent_lows:
        return NEUTRAL
    support = min(recent_lows)
    if support == 0:
        return NEUTRAL
    distance = (price - support) / support
    # At support -> 100, 15% above -> 20
    return _clamp(100 - distance / 0.15 * 80)


def compute_components(
    price: float,
    inputs: ScoreInputs,
    recent_lows: Sequence[float],
    news_count: int,
) -> list[ScoreComponent]:
    """Per-component breakdown, in weight-table order."""
    raw = {
        "trend_lt": score_trend_lt(price, inputs.sma200),
        "trend_mt": score_trend_mt(price, inputs.sma50, inputs.sma20),
        "momentum": score_momentum(inputs.rsi14, inputs.macd_hist),
        "volume": score_volume(inputs.volume, inputs.avg_vol20),
        "sentiment": score_sentiment(news_count),
        "support": score_support_proximity(price, recent_lows),
    }
    return [
        ScoreComponent(
            key=key,
            name=COMPONENT_LABELS[key],
            weight=weight,
            raw_score=round(_clamp(raw[key]), 2),
            weighted_score=_clamp(raw[key]) * weight,
        )
        for key, weight in WEIGHTS.items()
    ]


def total_score(components: Sequence[ScoreComponent]) -> int:
    return round_half_up(sum(c.weighted_score for c in components))

"""
Technical indicator library.

All functions take ascending (oldest first) price/volume sequences and
return None (or an empty list) when there is not enough data. Nothing in
here raises on short or empty input.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class MACDResult:
    macd_line: float
    signal_line: float
    histogram: float


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class AverageVolume:
    avg_volume: float
    volume_ratio: float


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


def sma(prices: Sequence[float], period: int) -> Optional[float]:
    """Mean of the last ``period`` prices."""
    if period <= 0 or len(prices) < period:
        return None
    window = _as_array(prices)[-period:]
    return float(window.sum() / period)


def ema_series(prices: Sequence[float], period: int) -> list[tuple[int, float]]:
    """
    Full EMA series as ``(index, value)`` pairs.

    Seeded with the SMA of the first ``period`` prices at index period-1,
    then ``ema = price * k + ema * (1 - k)`` with ``k = 2 / (period + 1)``.
    """
    if period <= 0 or len(prices) < period:
        return []

    k = 2 / (period + 1)
    value = sma(prices[:period], period)
    series = [(period - 1, value)]
    for i in range(period, len(prices)):
        value = float(prices[i]) * k + value * (1 - k)
        series.append((i, value))
    return series


def ema(prices: Sequence[float], period: int) -> Optional[float]:
    series = ema_series(prices, period)
    if not series:
        return None
    return series[-1][1]


def rsi(prices: Sequence[float], period: int = 14) -> Optional[float]:
    """Relative Strength Index with Wilder smoothing. Needs period + 1 prices."""
    if period <= 0 or len(prices) < period + 1:
        return None

    changes = np.diff(_as_array(prices))
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = float(gains[:period].sum() / period)
    avg_loss = float(losses[:period].sum() / period)

    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + float(gain)) / period
        avg_loss = (avg_loss * (period - 1) + float(loss)) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - 100 / (1 + rs)


def macd(
    prices: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> Optional[MACDResult]:
    """MACD line, signal line (EMA of the line) and histogram."""
    if len(prices) < slow + signal - 1:
        return None

    fast_by_index = dict(ema_series(prices, fast))
    slow_series = ema_series(prices, slow)
    if not slow_series:
        return None

    macd_values = [
        fast_by_index[i] - value
        for i, value in slow_series
        if i in fast_by_index
    ]
    if len(macd_values) < signal:
        return None

    signal_value = ema(macd_values, signal)
    if signal_value is None:
        return None

    line = macd_values[-1]
    return MACDResult(
        macd_line=line,
        signal_line=signal_value,
        histogram=line - signal_value,
    )


def bollinger_bands(
    prices: Sequence[float],
    period: int = 20,
    std_dev: float = 2,
) -> Optional[BollingerBands]:
    """Bands around SMA(period) at +/- std_dev population standard deviations."""
    if period <= 0 or len(prices) < period:
        return None

    middle = sma(prices, period)
    window = _as_array(prices)[-period:]
    sigma = float(np.sqrt(((window - middle) ** 2).sum() / period))
    return BollingerBands(
        upper=middle + std_dev * sigma,
        middle=middle,
        lower=middle - std_dev * sigma,
    )


def obv_series(prices: Sequence[float], volumes: Sequence[float]) -> list[float]:
    """On-Balance Volume per bar, starting at 0 on the first bar."""
    if len(prices) < 2 or len(prices) != len(volumes):
        return []

    series = [0.0]
    total = 0.0
    for i in range(1, len(prices)):
        if prices[i] > prices[i - 1]:
            total += float(volumes[i])
        elif prices[i] < prices[i - 1]:
            total -= float(volumes[i])
        series.append(total)
    return series


def obv(prices: Sequence[float], volumes: Sequence[float]) -> Optional[float]:
    series = obv_series(prices, volumes)
    if not series:
        return None
    return series[-1]


def average_volume(volumes: Sequence[float], period: int = 20) -> Optional[AverageVolume]:
    """Average of the last ``period`` volumes and latest volume / average."""
    if period <= 0 or len(volumes) < period:
        return None

    avg = float(_as_array(volumes)[-period:].sum() / period)
    current = float(volumes[-1])
    return AverageVolume(
        avg_volume=avg,
        volume_ratio=current / avg if avg > 0 else 0.0,
    )

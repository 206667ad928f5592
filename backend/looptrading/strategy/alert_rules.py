"""
Alert strategy predicates.

Rows are ordered newest first (rows[0] is the latest bar). Any object with
the StockData attribute names works, so ORM rows are passed straight in.
"""

import json
import logging
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class AlertStrategy(str, Enum):
    PULLBACK = "PULLBACK"
    BREAKOUT = "BREAKOUT"
    MACD_CROSS = "MACD_CROSS"
    SCORE_THRESHOLD = "SCORE_THRESHOLD"


# ---------------------------------------------------------------------------
# Rule params (stored as JSON on AlertRule.params, camelCase or snake_case)
# ---------------------------------------------------------------------------

class _RuleParams(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PullbackParams(_RuleParams):
    strategy: Literal["PULLBACK"] = "PULLBACK"
    pullback_percent: float = 2.0
    rsi_min: float = 40.0
    rsi_max: float = 50.0


class BreakoutParams(_RuleParams):
    strategy: Literal["BREAKOUT"] = "BREAKOUT"
    volume_threshold: float = 1.5
    breakout_lookback_bars: int = 20
    breakout_confirm_bars: int = 1


class MacdCrossParams(_RuleParams):
    strategy: Literal["MACD_CROSS"] = "MACD_CROSS"
    require_uptrend: bool = True
    min_histogram: float = 0.0


class ScoreThresholdParams(_RuleParams):
    strategy: Literal["SCORE_THRESHOLD"] = "SCORE_THRESHOLD"
    min_score: float = 80.0


RuleParams = Annotated[
    Union[PullbackParams, BreakoutParams, MacdCrossParams, ScoreThresholdParams],
    Field(discriminator="strategy"),
]

_rule_params_adapter = TypeAdapter(RuleParams)

DEFAULT_PARAMS = {
    AlertStrategy.PULLBACK: PullbackParams,
    AlertStrategy.BREAKOUT: BreakoutParams,
    AlertStrategy.MACD_CROSS: MacdCrossParams,
    AlertStrategy.SCORE_THRESHOLD: ScoreThresholdParams,
}


def parse_rule_params(strategy: Union[AlertStrategy, str], raw: Any) -> RuleParams:
    """
    Parse stored params for ``strategy``.

    Accepts a dict or JSON text. Anything malformed (bad JSON, not an
    object, wrong value types) yields the strategy defaults.
    """
    strategy = AlertStrategy(strategy)
    defaults = DEFAULT_PARAMS[strategy]()

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON params for {strategy.value}, using defaults")
            return defaults

    if raw is None:
        return defaults
    if not isinstance(raw, dict):
        logger.warning(f"Params for {strategy.value} are not an object, using defaults")
        return defaults

    try:
        return _rule_params_adapter.validate_python({**raw, "strategy": strategy.value})
    except ValidationError as e:
        logger.warning(f"Invalid params for {strategy.value}, using defaults: {e.error_count()} errors")
        return defaults


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def evaluate_pullback(rows: Sequence[Any], params: Optional[PullbackParams] = None) -> bool:
    """Uptrend, close near SMA50, RSI in band, and volume resting."""
    params = params or PullbackParams()
    if len(rows) < 2:
        return False
    latest, previous = rows[0], rows[1]

    if (
        latest.sma200 is None
        or latest.sma50 is None
        or latest.rsi14 is None
        or latest.avg_vol20 is None
    ):
        return False

    uptrend = latest.close > latest.sma200
    near_sma50 = abs((latest.close - latest.sma50) / latest.sma50) <= params.pullback_percent / 100
    rsi_in_range = params.rsi_min <= latest.rsi14 <= params.rsi_max
    resting_volume = latest.volume < latest.avg_vol20 and latest.volume < previous.volume

    return uptrend and near_sma50 and rsi_in_range and resting_volume


def evaluate_breakout(rows: Sequence[Any], params: Optional[BreakoutParams] = None) -> bool:
    """
    The most recent ``confirm`` closes are all above the highest high of the
    ``lookback`` bars before them, with volume confirmation on the latest bar.
    """
    params = params or BreakoutParams()
    if not rows or rows[0].avg_vol20 is None:
        return False
    latest = rows[0]

    lookback = params.breakout_lookback_bars
    confirm = max(1, params.breakout_confirm_bars)

    confirm_slice = rows[:confirm]
    resistance_slice = rows[confirm:confirm + lookback]
    if len(confirm_slice) < confirm or len(resistance_slice) < lookback:
        return False

    resistance = max((row.high for row in resistance_slice), default=float("-inf"))
    closes_above = all(row.close > resistance for row in confirm_slice)
    volume_confirmed = latest.volume >= latest.avg_vol20 * params.volume_threshold

    return closes_above and volume_confirmed


def evaluate_macd_cross(rows: Sequence[Any], params: Optional[MacdCrossParams] = None) -> bool:
    """Bullish MACD line cross with histogram turning up from <= 0."""
    params = params or MacdCrossParams()
    if len(rows) < 2:
        return False
    latest, previous = rows[0], rows[1]

    values = (
        latest.macd_line, latest.macd_signal, latest.macd_hist,
        previous.macd_line, previous.macd_signal, previous.macd_hist,
    )
    if any(v is None for v in values):
        return False

    line_cross = (
        latest.macd_line > latest.macd_signal
        and previous.macd_line <= previous.macd_signal
    )
    histogram_cross = latest.macd_hist >= params.min_histogram and previous.macd_hist <= 0
    trend_ok = not params.require_uptrend or (
        latest.sma50 is not None and latest.close > latest.sma50
    )

    return line_cross and histogram_cross and trend_ok


def evaluate_score_threshold(
    rows: Sequence[Any], params: Optional[ScoreThresholdParams] = None
) -> bool:
    params = params or ScoreThresholdParams()
    if not rows or rows[0].score is None:
        return False
    return rows[0].score >= params.min_score


_EVALUATORS = {
    AlertStrategy.PULLBACK: evaluate_pullback,
    AlertStrategy.BREAKOUT: evaluate_breakout,
    AlertStrategy.MACD_CROSS: evaluate_macd_cross,
    AlertStrategy.SCORE_THRESHOLD: evaluate_score_threshold,
}


def strategy_triggered(strategy: str, rows: Sequence[Any], raw_params: Any) -> bool:
    """Dispatch to the strategy predicate; unknown strategies never trigger."""
    try:
        key = AlertStrategy(strategy)
    except ValueError:
        logger.warning(f"Unknown alert strategy: {strategy}")
        return False
    return _EVALUATORS[key](rows, parse_rule_params(key, raw_params))


_MESSAGES = {
    AlertStrategy.PULLBACK: "Pullback detected on {symbol}",
    AlertStrategy.BREAKOUT: "Breakout confirmed on {symbol}",
    AlertStrategy.MACD_CROSS: "Bullish MACD cross on {symbol}",
    AlertStrategy.SCORE_THRESHOLD: "High score detected on {symbol}",
}


def build_alert_message(strategy: str, symbol: str, score: Optional[int]) -> str:
    suffix = "" if score is None else f" (score {score})"
    try:
        template = _MESSAGES[AlertStrategy(strategy)]
    except ValueError:
        template = f"{strategy} alert on {{symbol}}"
    return template.format(symbol=symbol) + suffix

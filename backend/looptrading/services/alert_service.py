"""
Alert evaluation.

Runs every enabled rule against every active stock's recent indicator
history and records an Alert when a rule fires, subject to user settings,
a per (symbol, strategy) dedup window and the minimum score setting.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from looptrading.core.config import settings
from looptrading.core.database import AsyncSessionLocal
from looptrading.models.alert import Alert
from looptrading.models.alert_rule import AlertRule
from looptrading.models.base import utcnow
from looptrading.models.stock import Stock
from looptrading.models.stock_data import StockData
from looptrading.services.scoring_service import ScoringService
from looptrading.services.user_settings_service import (
    get_or_create_user_settings,
    is_strategy_enabled,
)
from looptrading.strategy.alert_rules import build_alert_message, strategy_triggered

logger = logging.getLogger(__name__)

_UNRESOLVED = object()


@dataclass
class EvaluateAlertsResult:
    evaluated_stocks: int = 0
    evaluated_rules: int = 0
    created_alerts: int = 0
    skipped_duplicates: int = 0
    skipped_by_settings: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class AlertService:
    def __init__(
        self,
        scoring_service: ScoringService,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        dedup_window: Optional[timedelta] = None,
        history_bars: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.scoring_service = scoring_service
        self.session_factory = session_factory
        self.dedup_window = dedup_window or timedelta(hours=settings.ALERT_DEDUP_HOURS)
        self.history_bars = history_bars or settings.ALERT_HISTORY_BARS
        self._clock = clock

    async def _resolve_score(self, symbol: str, stored: Optional[int]) -> Optional[int]:
        if stored is not None:
            return stored
        try:
            computed = await self.scoring_service.calculate_score(symbol)
        except Exception as e:
            logger.warning(f"Score calculation failed for {symbol}: {e}")
            return None
        return computed.score if computed else None

    async def _already_sent(
        self, session: AsyncSession, symbol: str, strategy: str, since: datetime
    ) -> bool:
        result = await session.execute(
            select(Alert.id)
            .where(
                Alert.symbol == symbol,
                Alert.strategy == strategy,
                Alert.triggered_at >= since,
            )
            .limit(1)
        )
        return result.first() is not None

    async def evaluate_alerts(self) -> EvaluateAlertsResult:
        async with self.session_factory() as session:
            user_settings = await get_or_create_user_settings(session)
            await session.commit()

            rules = (
                await session.execute(
                    select(AlertRule)
                    .where(AlertRule.enabled.is_(True))
                    .order_by(AlertRule.strategy.asc())
                )
            ).scalars().all()
            symbols = (
                await session.execute(
                    select(Stock.symbol).where(Stock.active.is_(True)).order_by(Stock.symbol)
                )
            ).scalars().all()

            result = EvaluateAlertsResult(
                evaluated_stocks=len(symbols),
                evaluated_rules=len(rules),
            )

            if not symbols or not rules:
                logger.info("[evaluateAlerts] Skipped - no active stocks or enabled rules")
                return result

            now = self._clock()
            dedup_from = now - self.dedup_window

            for symbol in symbols:
                rows = (
                    await session.execute(
                        select(StockData)
                        .where(StockData.symbol == symbol)
                        .order_by(StockData.date.desc())
                        .limit(self.history_bars)
                    )
                ).scalars().all()
                if len(rows) < 2:
                    continue

                score = _UNRESOLVED

                for rule in rules:
                    if not is_strategy_enabled(rule.strategy, user_settings):
                        result.skipped_by_settings += 1
                        continue

                    if await self._already_sent(session, symbol, rule.strategy, dedup_from):
                        result.skipped_duplicates += 1
                        continue

                    if not strategy_triggered(rule.strategy, rows, rule.params):
                        continue

                    if score is _UNRESOLVED:
                        score = await self._resolve_score(symbol, rows[0].score)

                    if score is not None and score < user_settings.min_score_alert:
                        result.skipped_by_settings += 1
                        continue

                    session.add(
                        Alert(
                            symbol=symbol,
                            strategy=rule.strategy,
                            score=score,
                            message=build_alert_message(rule.strategy, symbol, score),
                            triggered_at=now,
                        )
                    )
                    await session.commit()
                    result.created_alerts += 1
                    logger.info(f"[evaluateAlerts] {rule.strategy} alert created for {symbol}")

        logger.info(
            f"[evaluateAlerts] Done: {result.created_alerts} alerts created, "
            f"{result.skipped_duplicates} duplicates skipped, "
            f"{result.skipped_by_settings} skipped by settings"
        )
        return result

    async def acknowledge(self, alert_id: int) -> Optional[Alert]:
        async with self.session_factory() as session:
            alert = await session.get(Alert, alert_id)
            if alert is None:
                return None
            if not alert.acknowledged:
                alert.acknowledged = True
                alert.acknowledged_at = self._clock()
                await session.commit()
            return alert

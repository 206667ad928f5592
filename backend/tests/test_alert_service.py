"""
Tests for AlertService.evaluate_alerts (settings gate, dedup, score gate).
"""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from looptrading.models import Alert, AlertRule, Stock, StockData, UserSettings
from looptrading.services.alert_service import AlertService
from looptrading.strategy.scoring import CompositeScore

NOW = datetime(2026, 2, 9, 15, 0)


class FakeScoring:
    def __init__(self, score=None, error=None):
        self.score = score
        self.error = error
        self.calls = []

    async def calculate_score(self, symbol):
        self.calls.append(symbol)
        if self.error:
            raise self.error
        if self.score is None:
            return None
        return CompositeScore(symbol=symbol, score=self.score)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


async def seed_pullback_setup(
    session_factory,
    latest_score=88,
    min_score_alert=0,
    strategy_pullback=True,
    rules=("PULLBACK",),
):
    """AAPL with two bars where the latest is a textbook pullback."""
    async with session_factory() as session:
        session.add(Stock(symbol="AAPL", name="Apple", market="US"))
        session.add_all(
            [
                StockData(
                    symbol="AAPL", date=date(2026, 2, 8), open=101, high=103, low=100, close=102,
                    volume=80, sma50=100, sma200=90, rsi14=45, avg_vol20=100, score=latest_score,
                ),
                StockData(
                    symbol="AAPL", date=date(2026, 2, 7), open=104, high=105, low=101, close=103,
                    volume=130, sma50=100, sma200=89, rsi14=55, avg_vol20=100, score=86,
                ),
            ]
        )
        session.add(
            UserSettings(
                id="default",
                min_score_alert=min_score_alert,
                strategy_pullback=strategy_pullback,
            )
        )
        for strategy in rules:
            session.add(AlertRule(strategy=strategy, params={}, enabled=True))
        await session.commit()


async def all_alerts(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(Alert).order_by(Alert.id))).scalars().all()


class TestEvaluateAlerts:
    @pytest.mark.asyncio
    async def test_creates_alert_then_deduplicates(self, session_factory):
        """Second run inside 24h finds the existing alert and skips it."""
        await seed_pullback_setup(session_factory)
        service = AlertService(FakeScoring(), session_factory, clock=Clock())

        first = await service.evaluate_alerts()
        second = await service.evaluate_alerts()

        assert first.created_alerts == 1
        assert first.evaluated_stocks == 1
        assert first.evaluated_rules == 1
        assert second.created_alerts == 0
        assert second.skipped_duplicates >= 1

        alerts = await all_alerts(session_factory)
        assert len(alerts) == 1
        assert alerts[0].strategy == "PULLBACK"
        assert alerts[0].score == 88
        assert alerts[0].message == "Pullback detected on AAPL (score 88)"
        assert alerts[0].acknowledged is False

    @pytest.mark.asyncio
    async def test_dedup_window_expires(self, session_factory):
        await seed_pullback_setup(session_factory)
        clock = Clock()
        service = AlertService(FakeScoring(), session_factory, clock=clock)

        await service.evaluate_alerts()
        clock.now = NOW + timedelta(hours=25)
        result = await service.evaluate_alerts()

        assert result.created_alerts == 1
        assert len(await all_alerts(session_factory)) == 2

    @pytest.mark.asyncio
    async def test_strategy_disabled_in_settings(self, session_factory):
        await seed_pullback_setup(session_factory, strategy_pullback=False)
        service = AlertService(FakeScoring(), session_factory, clock=Clock())

        result = await service.evaluate_alerts()

        assert result.created_alerts == 0
        assert result.skipped_by_settings == 1

    @pytest.mark.asyncio
    async def test_score_threshold_rule_ignores_toggles(self, session_factory):
        await seed_pullback_setup(
            session_factory, strategy_pullback=False, rules=("PULLBACK", "SCORE_THRESHOLD")
        )
        service = AlertService(FakeScoring(), session_factory, clock=Clock())

        result = await service.evaluate_alerts()

        assert result.skipped_by_settings == 1
        assert result.created_alerts == 1
        alerts = await all_alerts(session_factory)
        assert alerts[0].strategy == "SCORE_THRESHOLD"
        assert alerts[0].message == "High score detected on AAPL (score 88)"

    @pytest.mark.asyncio
    async def test_score_below_minimum(self, session_factory):
        await seed_pullback_setup(session_factory, min_score_alert=90)
        service = AlertService(FakeScoring(), session_factory, clock=Clock())

        result = await service.evaluate_alerts()

        assert result.created_alerts == 0
        assert result.skipped_by_settings == 1

    @pytest.mark.asyncio
    async def test_missing_score_is_computed(self, session_factory):
        await seed_pullback_setup(session_factory, latest_score=None)
        scoring = FakeScoring(score=77)
        service = AlertService(scoring, session_factory, clock=Clock())

        await service.evaluate_alerts()

        assert scoring.calls == ["AAPL"]
        assert (await all_alerts(session_factory))[0].score == 77

    @pytest.mark.asyncio
    async def test_scoring_failure_creates_unscored_alert(self, session_factory):
        """A failed score lookup is not a reason to drop the alert."""
        await seed_pullback_setup(session_factory, latest_score=None, min_score_alert=75)
        service = AlertService(FakeScoring(error=RuntimeError("boom")), session_factory, clock=Clock())

        result = await service.evaluate_alerts()

        assert result.created_alerts == 1
        alert = (await all_alerts(session_factory))[0]
        assert alert.score is None
        assert alert.message == "Pullback detected on AAPL"

    @pytest.mark.asyncio
    async def test_score_resolved_once_per_stock(self, session_factory):
        await seed_pullback_setup(
            session_factory, latest_score=None, rules=("PULLBACK", "MACD_CROSS", "BREAKOUT")
        )
        scoring = FakeScoring(score=80)
        service = AlertService(scoring, session_factory, clock=Clock())

        await service.evaluate_alerts()

        assert scoring.calls == ["AAPL"]

    @pytest.mark.asyncio
    async def test_skips_when_no_rules(self, session_factory):
        await seed_pullback_setup(session_factory, rules=())
        service = AlertService(FakeScoring(), session_factory, clock=Clock())

        result = await service.evaluate_alerts()

        assert result.evaluated_stocks == 1
        assert result.evaluated_rules == 0
        assert result.created_alerts == 0

    @pytest.mark.asyncio
    async def test_disabled_rules_and_inactive_stocks_ignored(self, session_factory):
        await seed_pullback_setup(session_factory)
        async with session_factory() as session:
            session.add(Stock(symbol="OLD", name="Old Co", market="US", active=False))
            session.add(AlertRule(strategy="BREAKOUT", params={}, enabled=False))
            await session.commit()
        service = AlertService(FakeScoring(), session_factory, clock=Clock())

        result = await service.evaluate_alerts()

        assert result.evaluated_stocks == 1
        assert result.evaluated_rules == 1

    @pytest.mark.asyncio
    async def test_single_bar_stock_skipped(self, session_factory):
        async with session_factory() as session:
            session.add(Stock(symbol="NEW", name="New Co", market="US"))
            session.add(
                StockData(symbol="NEW", date=date(2026, 2, 6), open=1, high=1, low=1, close=1, volume=1, score=99)
            )
            session.add(AlertRule(strategy="SCORE_THRESHOLD", params={}, enabled=True))
            await session.commit()
        service = AlertService(FakeScoring(), session_factory, clock=Clock())

        result = await service.evaluate_alerts()

        assert result.created_alerts == 0

    @pytest.mark.asyncio
    async def test_settings_created_with_defaults(self, session_factory):
        service = AlertService(FakeScoring(), session_factory, clock=Clock())

        await service.evaluate_alerts()

        async with session_factory() as session:
            user_settings = await session.get(UserSettings, "default")
        assert user_settings.min_score_alert == 75
        assert user_settings.quiet_hours_start == "22:00"


class TestAcknowledge:
    @pytest.mark.asyncio
    async def test_acknowledge(self, session_factory):
        await seed_pullback_setup(session_factory)
        clock = Clock()
        service = AlertService(FakeScoring(), session_factory, clock=clock)
        await service.evaluate_alerts()
        alert_id = (await all_alerts(session_factory))[0].id

        clock.now = NOW + timedelta(minutes=5)
        acked = await service.acknowledge(alert_id)

        assert acked.acknowledged is True
        assert acked.acknowledged_at == NOW + timedelta(minutes=5)
        assert (await all_alerts(session_factory))[0].acknowledged is True

    @pytest.mark.asyncio
    async def test_unknown_alert(self, session_factory):
        service = AlertService(FakeScoring(), session_factory)
        assert await service.acknowledge(12345) is None

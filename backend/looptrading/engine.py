"""
Composition root.

Builds every engine component explicitly and wires them together:

    TTLCache, RateLimiter -> MarketDataGateway -> NewsService
    IndicatorService, ScoringService(NewsService) -> AlertService
    MarketDataUpdater, Scheduler (+ registered jobs)

Lifecycle: construct -> start() -> stop() / close().
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from looptrading.core.cache import TTLCache
from looptrading.core.config import settings
from looptrading.core.database import create_engine, create_session_factory, init_db
from looptrading.scheduler.scheduler import Scheduler
from looptrading.services.alert_service import AlertService
from looptrading.services.indicator_service import IndicatorService
from looptrading.services.market_data import (
    MarketDataProvider,
    RateLimiter,
    get_market_data_provider,
)
from looptrading.services.market_data_service import MarketDataGateway
from looptrading.services.news_service import NewsService
from looptrading.services.scoring_service import ScoringService
from looptrading.tasks.alerts import register_evaluate_alerts_job, register_heartbeat_job
from looptrading.tasks.market_data import MarketDataUpdater, register_update_market_data_job

logger = logging.getLogger(__name__)


class AnalyticsEngine:
    def __init__(
        self,
        database_url: Optional[str] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        provider: Optional[MarketDataProvider] = None,
        scheduler: Optional[Scheduler] = None,
        environment: Optional[str] = None,
    ):
        self.environment = environment or settings.ENVIRONMENT

        # The engine only owns (and disposes) a database engine it created
        self.db_engine: Optional[AsyncEngine] = None
        if session_factory is None:
            self.db_engine = create_engine(database_url)
            session_factory = create_session_factory(self.db_engine)
        self.session_factory = session_factory

        self.cache = TTLCache(default_ttl=settings.QUOTE_CACHE_TTL_SEC)
        self.rate_limiter = RateLimiter(settings.RATE_LIMIT_DELAY_MS / 1000)
        self.gateway = MarketDataGateway(
            provider=provider or get_market_data_provider(),
            cache=self.cache,
            rate_limiter=self.rate_limiter,
        )
        self.news_service = NewsService(self.gateway, self.cache)
        self.indicator_service = IndicatorService(self.session_factory)
        self.scoring_service = ScoringService(self.news_service, self.session_factory)
        self.alert_service = AlertService(self.scoring_service, self.session_factory)
        self.market_data_updater = MarketDataUpdater(
            self.gateway, self.indicator_service, self.session_factory
        )
        self.scheduler = scheduler or Scheduler()
        self._jobs_registered = False

        logger.info("AnalyticsEngine initialized (%s)", self.environment)

    def register_jobs(self) -> None:
        if self._jobs_registered:
            return
        register_update_market_data_job(self.scheduler, self.market_data_updater)
        register_evaluate_alerts_job(self.scheduler, self.alert_service)
        register_heartbeat_job(self.scheduler, self.environment)
        self._jobs_registered = True

    async def start(self, create_tables: bool = False) -> None:
        if create_tables and self.db_engine is not None:
            await init_db(self.db_engine)
        self.register_jobs()
        self.scheduler.start()
        logger.info("AnalyticsEngine started")

    async def stop(self) -> None:
        await self.scheduler.shutdown()
        await self.close()
        logger.info("AnalyticsEngine stopped")

    async def close(self) -> None:
        if self.db_engine is not None:
            await self.db_engine.dispose()

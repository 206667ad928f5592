import asyncio
import logging

from looptrading.core.config import settings
from looptrading.scheduler.celery_app import app
from looptrading.scheduler.scheduler import Scheduler
from looptrading.services.alert_service import AlertService

logger = logging.getLogger(__name__)

EVALUATE_ALERTS_JOB = "evaluateAlerts"
HEARTBEAT_JOB = "heartbeat"


def register_evaluate_alerts_job(scheduler: Scheduler, alert_service: AlertService) -> None:
    async def handler() -> None:
        await alert_service.evaluate_alerts()

    scheduler.register_job(EVALUATE_ALERTS_JOB, settings.EVALUATE_ALERTS_CRON, handler)


def register_heartbeat_job(scheduler: Scheduler, environment: str | None = None) -> bool:
    """Every-minute no-op that shows the scheduler is alive. Development only."""
    if (environment or settings.ENVIRONMENT) != "development":
        return False

    async def handler() -> None:
        logger.debug("[heartbeat] alive")

    scheduler.register_job(HEARTBEAT_JOB, settings.HEARTBEAT_CRON, handler)
    return True


async def _evaluate_alerts_async() -> dict:
    from looptrading.engine import AnalyticsEngine

    engine = AnalyticsEngine()
    try:
        result = await engine.alert_service.evaluate_alerts()
    finally:
        await engine.close()
    return result.to_dict()


@app.task(name="looptrading.tasks.alerts.evaluate_alerts")
def evaluate_alerts() -> dict:
    """Manual/worker trigger for the evaluateAlerts job."""
    result = asyncio.run(_evaluate_alerts_async())
    logger.info("Alert evaluation finished: %s created", result["created_alerts"])
    return result

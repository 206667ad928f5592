"""
Run the analytics engine with its scheduler until interrupted.

Usage:
    python -m looptrading.main [--create-tables]
"""

import asyncio
import logging
import signal
from argparse import ArgumentParser

from looptrading.core.config import settings
from looptrading.core.logging import setup_logging
from looptrading.engine import AnalyticsEngine

logger = logging.getLogger(__name__)


async def run(create_tables: bool = False) -> None:
    engine = AnalyticsEngine()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    await engine.start(create_tables=create_tables)
    for job in engine.scheduler.get_status():
        logger.info(f"Job {job.name}: {job.expression}")

    try:
        await stop_event.wait()
    finally:
        await engine.stop()


def main() -> None:
    parser = ArgumentParser(description=f"{settings.APP_NAME} analytics engine")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing database tables before starting",
    )
    args = parser.parse_args()

    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
    asyncio.run(run(create_tables=args.create_tables))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Seed the stock universe and backfill price history and indicators.

Usage:
    python scripts/backfill_prices.py AAPL MSFT MC.PA [--create-tables]
    python scripts/backfill_prices.py            # all active stocks
"""

import asyncio
import logging
import os
import sys
from argparse import ArgumentParser

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import select

from looptrading.core.database import init_db
from looptrading.core.exceptions import LoopTradingError
from looptrading.core.logging import setup_logging
from looptrading.engine import AnalyticsEngine
from looptrading.models import AlertRule, Stock
from looptrading.services.user_settings_service import get_or_create_user_settings
from looptrading.strategy.alert_rules import DEFAULT_PARAMS

logger = logging.getLogger(__name__)


async def seed_alert_rules(engine: AnalyticsEngine) -> int:
    """Insert one enabled rule per strategy with default params, if missing."""
    created = 0
    async with engine.session_factory() as session:
        existing = set((await session.execute(select(AlertRule.strategy))).scalars().all())
        for strategy, params_model in DEFAULT_PARAMS.items():
            if strategy.value in existing:
                continue
            params = params_model().model_dump(by_alias=True, exclude={"strategy"})
            session.add(AlertRule(strategy=strategy.value, params=params, enabled=True))
            created += 1
        await get_or_create_user_settings(session)
        await session.commit()
    return created


async def ensure_stock(engine: AnalyticsEngine, symbol: str) -> None:
    async with engine.session_factory() as session:
        if await session.get(Stock, symbol) is not None:
            return
        try:
            quote = await engine.gateway.get_quote(symbol)
            name = quote.name
        except LoopTradingError as e:
            logger.warning(f"Quote lookup failed for {symbol}, using symbol as name: {e}")
            name = symbol
        session.add(
            Stock(
                symbol=symbol,
                name=name,
                market=engine.gateway.detect_market(symbol),
                active=True,
            )
        )
        await session.commit()
        logger.info(f"Added {symbol} ({engine.gateway.detect_market(symbol)})")


async def backfill(symbols: list[str], create_tables: bool = False) -> None:
    engine = AnalyticsEngine()
    try:
        if create_tables:
            await init_db(engine.db_engine)

        created = await seed_alert_rules(engine)
        logger.info(f"Seeded {created} alert rules")

        if symbols:
            for symbol in symbols:
                await ensure_stock(engine, symbol.upper())
        else:
            async with engine.session_factory() as session:
                result = await session.execute(
                    select(Stock.symbol).where(Stock.active.is_(True))
                )
                symbols = list(result.scalars().all())

        logger.info(f"Backfilling {len(symbols)} symbols")
        failed = 0
        for symbol in symbols:
            try:
                inserted = await engine.market_data_updater.update_single_stock(symbol)
                logger.info(f"{symbol}: {inserted} bars inserted")
            except Exception as e:
                failed += 1
                logger.error(f"{symbol}: backfill failed: {e}")

        logger.info(f"Backfill done: {len(symbols) - failed} success, {failed} failed")
    finally:
        await engine.close()


if __name__ == "__main__":
    parser = ArgumentParser(description="Backfill price history and indicators")
    parser.add_argument("symbols", nargs="*", help="Symbols to add/backfill (default: all active)")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(backfill(args.symbols, args.create_tables))

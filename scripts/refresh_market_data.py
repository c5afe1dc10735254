"""CLI wrapper for a market data refresh."""

from __future__ import annotations

import argparse
import asyncio
from datetime import date

from portfolio_tracker.config import get_settings
from portfolio_tracker.core.logging import setup_logging
from portfolio_tracker.db import Database
from portfolio_tracker.services.portfolio import PortfolioService


async def _run(scope: str, force: bool, backfill: list[str], start: date | None) -> None:
    settings = get_settings()
    database = Database(settings.database_url)
    service = PortfolioService(database, settings=settings)
    try:
        await database.create_all()
        results = await service.refresh_market_data(scope, force)
        for result in results:
            suffix = f" ({result.error})" if result.error else ""
            print(f"{result.symbol:<10} {result.outcome.value}{suffix}")
        for symbol in backfill:
            count = await service.backfill_price_history(symbol, start=start)
            print(f"Stored {count} history rows for {symbol.upper()}")
    finally:
        await service.aclose()
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Refresh cached quotes for held and core symbols")
    parser.add_argument("--scope", default="all", choices=["general", "fund-class", "all"])
    parser.add_argument("--force", action="store_true", help="Ignore the TTL and refetch every symbol")
    parser.add_argument("--backfill", nargs="*", default=[], metavar="SYMBOL")
    parser.add_argument("--start", type=date.fromisoformat, default=None, help="History start date")
    args = parser.parse_args()
    setup_logging()
    asyncio.run(_run(args.scope, args.force, args.backfill, args.start))


if __name__ == "__main__":
    main()

"""Record today's portfolio snapshot."""

from __future__ import annotations

import argparse
import asyncio

from portfolio_tracker.config import get_settings
from portfolio_tracker.core.logging import setup_logging
from portfolio_tracker.db import Database
from portfolio_tracker.services.portfolio import PortfolioService


async def _run(refresh: bool) -> None:
    settings = get_settings()
    database = Database(settings.database_url)
    service = PortfolioService(database, settings=settings)
    try:
        await database.create_all()
        if refresh:
            await service.refresh_market_data("all", False)
        summary = await service.record_snapshot()
        print(
            f"{service.today()}: value={summary.total_value:.2f} "
            f"cost={summary.cost_basis:.2f} return={summary.total_return_pct:.2f}%"
        )
    finally:
        await service.aclose()
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Persist today's portfolio snapshot")
    parser.add_argument("--refresh", action="store_true", help="Refresh stale quotes first")
    args = parser.parse_args()
    setup_logging()
    asyncio.run(_run(args.refresh))


if __name__ == "__main__":
    main()

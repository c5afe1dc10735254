"""Operation facade used by the HTTP routes, the scripts and host processes."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from portfolio_tracker.config import AppSettings, get_settings
from portfolio_tracker.core.errors import ProviderError, ValidationError
from portfolio_tracker.db import Database, utcnow
from portfolio_tracker.models import PortfolioSnapshot
from portfolio_tracker.providers.base import PriceSource
from portfolio_tracker.providers.quotes import build_quote_source
from portfolio_tracker.schemas.transactions import TransactionCreateRequest, TransactionUpdateRequest
from portfolio_tracker.services import asset_cache, backup, ledger, snapshots
from portfolio_tracker.services.refresh import (
    HistorySource,
    RefreshCoordinator,
    RefreshOutcome,
    RefreshResult,
    RefreshScope,
    backfill_price_history,
)
from portfolio_tracker.services.summary import PortfolioSummary, RangePerformance, range_performance, summarize
from portfolio_tracker.services.valuation import (
    AssetQuote,
    Holding,
    ValuationResult,
    compute_valuation,
    realized_pnl_in_range,
)

logger = logging.getLogger(__name__)


class PortfolioService:
    """One async method per operation the UI collaborator can invoke.

    Every read takes a consistent view of the ledger and asset cache in a
    single transaction, then computes without holding the session.
    """

    def __init__(
        self,
        database: Database,
        source: PriceSource | None = None,
        settings: AppSettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.database = database
        self.settings = settings or get_settings()
        self._owns_source = source is None
        self.source = source or build_quote_source(self.settings)
        self.refresher = RefreshCoordinator(database, self.source, self.settings, clock=clock)
        self._clock = clock

    def today(self) -> date:
        return snapshots.local_today(self.settings.timezone, now=self._clock())

    async def aclose(self) -> None:
        closer = getattr(self.source, "aclose", None)
        if self._owns_source and closer is not None:
            await closer()

    # Valuation

    async def get_valuation(self) -> ValuationResult:
        async with self.database.read_view() as session:
            entries = await ledger.load_ledger(session)
            assets = await asset_cache.load_assets(session)
        return compute_valuation(entries, assets)

    async def get_holdings(self) -> list[Holding]:
        return (await self.get_valuation()).holdings

    async def get_summary(self) -> PortfolioSummary:
        today = self.today()
        async with self.database.read_view() as session:
            entries = await ledger.load_ledger(session)
            assets = await asset_cache.load_assets(session)
            baselines = await snapshots.load_period_baselines(session, today)

        valuation = compute_valuation(entries, assets)
        usd = assets.get(self.settings.usd_symbol.upper())
        last_updated = max(
            (asset.last_updated for asset in assets.values() if asset.last_updated is not None),
            default=None,
        )
        return summarize(
            valuation,
            usd_rate=usd.current_price if usd is not None else None,
            last_updated=last_updated,
            baselines=baselines,
        )

    async def get_realized_pnl_in_range(self, start: date | None = None, end: date | None = None) -> Decimal:
        if start is not None and end is not None and start > end:
            raise ValidationError("start must not be after end")
        async with self.database.read_view() as session:
            entries = await ledger.load_ledger(session)
        return realized_pnl_in_range(entries, start, end)

    async def get_range_performance(self, start: date | None = None, end: date | None = None) -> RangePerformance:
        if start is not None and end is not None and start > end:
            raise ValidationError("start must not be after end")
        async with self.database.read_view() as session:
            if end is not None:
                end_value = await snapshots.snapshot_value_on_or_before(session, end)
            else:
                end_value = await snapshots.latest_snapshot_value(session)
            start_value = (
                await snapshots.snapshot_value_on_or_before(session, start) if start is not None else None
            )
        return range_performance(start_value, end_value)

    async def list_snapshots(self, start: date | None = None, end: date | None = None) -> list[PortfolioSnapshot]:
        if start is not None and end is not None and start > end:
            raise ValidationError("start must not be after end")
        async with self.database.read_view() as session:
            return await snapshots.list_snapshots(session, start=start, end=end)

    async def record_snapshot(self) -> PortfolioSummary:
        summary = await self.get_summary()
        async with self.database.transaction() as session:
            await snapshots.record_daily_snapshot(session, summary, self.today())
        return summary

    # Ledger

    async def get_transactions(self) -> list[ledger.TransactionRecord]:
        async with self.database.read_view() as session:
            return await ledger.list_transactions(session)

    async def add_transaction(self, payload: TransactionCreateRequest) -> int:
        async with self.database.transaction() as session:
            tx = await ledger.add_transaction(session, payload)
            return tx.id

    async def update_transaction(self, transaction_id: int, payload: TransactionUpdateRequest) -> None:
        async with self.database.transaction() as session:
            await ledger.update_transaction(session, transaction_id, payload)

    async def delete_transaction(self, transaction_id: int) -> None:
        async with self.database.transaction() as session:
            await ledger.delete_transaction(session, transaction_id)

    # Market data

    async def refresh_market_data(
        self,
        scope: str | RefreshScope = RefreshScope.ALL,
        force: bool = False,
    ) -> list[RefreshResult]:
        results = await self.refresher.refresh(scope, force)
        if any(result.outcome is RefreshOutcome.UPDATED for result in results):
            await self.record_snapshot()
        return results

    async def scheduled_refresh(self) -> list[RefreshResult]:
        """Background tick: refresh everything, then make sure today has a snapshot row."""

        results = await self.refresh_market_data(RefreshScope.ALL, False)
        async with self.database.read_view() as session:
            recorded = await snapshots.has_snapshot(session, self.today())
        if not recorded:
            await self.record_snapshot()
        return results

    async def backfill_price_history(
        self,
        symbol: str,
        *,
        start: date | None = None,
        source: HistorySource | None = None,
    ) -> int:
        history = source or getattr(self.source, "general", self.source)
        if not hasattr(history, "fetch_history"):
            raise ProviderError("Configured price source does not serve history")
        return await backfill_price_history(self.database, history, symbol, start=start)

    async def get_asset_info(self, symbol: str) -> AssetQuote | None:
        async with self.database.read_view() as session:
            asset = await asset_cache.get_asset(session, symbol)
            return asset_cache.to_asset_quote(asset) if asset is not None else None

    async def search_assets(self, query: str, limit: int = asset_cache.DEFAULT_SEARCH_LIMIT) -> list[AssetQuote]:
        async with self.database.read_view() as session:
            rows = await asset_cache.search_assets(session, query, limit=limit)
            return [asset_cache.to_asset_quote(row) for row in rows]

    async def get_last_updates(self) -> asset_cache.LastUpdates:
        async with self.database.read_view() as session:
            return await asset_cache.last_updates(session)

    # Backup

    async def export_snapshot(self) -> str:
        async with self.database.read_view() as session:
            return await backup.export_snapshot(session, now=self._clock())

    async def import_snapshot(self, blob: str | bytes | dict[str, Any] | list[Any]) -> dict[str, int]:
        payload = backup.parse_backup(blob)
        async with self.database.transaction() as session:
            return await backup.import_snapshot(session, payload)

    async def clear_database(self) -> None:
        async with self.database.transaction() as session:
            await backup.clear_database(session)


__all__ = ["PortfolioService"]

"""Market data refresh coordinator.

A refresh resolves the symbols in scope, skips the ones whose cached quote
is still inside its TTL window, and fetches the rest through a fixed pool
of worker tasks. One symbol failing or timing out never aborts the batch;
a database error does.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Awaitable, Callable, Protocol

import httpx
import pandas as pd
from opentelemetry.trace import Status, StatusCode

from portfolio_tracker.config import AppSettings, get_settings
from portfolio_tracker.core.errors import ProviderError, UnknownScopeError
from portfolio_tracker.core.telemetry import get_tracer
from portfolio_tracker.db import Database, utcnow
from portfolio_tracker.models import AssetType
from portfolio_tracker.providers.base import PriceSource
from portfolio_tracker.services.asset_cache import (
    is_stale,
    load_assets,
    store_history_frame,
    ttl_policy,
    upsert_quote,
)
from portfolio_tracker.services.ledger import load_ledger
from portfolio_tracker.services.snapshots import local_today
from portfolio_tracker.services.valuation import AssetQuote, replay_ledger

logger = logging.getLogger(__name__)


class RefreshScope(str, enum.Enum):
    GENERAL = "general"
    FUND_CLASS = "fund-class"
    ALL = "all"

    @classmethod
    def parse(cls, value: str | "RefreshScope") -> "RefreshScope":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownScopeError(f"Unknown refresh scope: {value!r}") from None

    def includes(self, asset_type: AssetType) -> bool:
        if self is RefreshScope.ALL:
            return True
        if self is RefreshScope.FUND_CLASS:
            return asset_type is AssetType.FUND
        return asset_type is not AssetType.FUND


class RefreshOutcome(str, enum.Enum):
    UPDATED = "updated"
    SKIPPED_FRESH = "skipped-fresh"
    FAILED = "failed"


@dataclass(frozen=True)
class RefreshResult:
    symbol: str
    outcome: RefreshOutcome
    error: str | None = None


@dataclass(frozen=True)
class RefreshTarget:
    symbol: str
    asset_type: AssetType


class HistorySource(Protocol):
    async def fetch_history(self, symbol: str, *, start: date | None = None) -> pd.DataFrame:
        ...


# Failures that stay local to one symbol. Anything else propagates.
_FETCH_ERRORS = (ProviderError, httpx.HTTPError, ValueError, KeyError, TypeError)


def _resolve_type(
    symbol: str,
    ledger_type: AssetType | None,
    cached: AssetQuote | None,
) -> AssetType:
    if ledger_type is not None:
        return ledger_type
    if cached is not None and cached.asset_type:
        try:
            return AssetType.from_label(cached.asset_type)
        except ValueError:
            logger.warning("Cached asset %s has unknown type %r", symbol, cached.asset_type)
    return AssetType.EQUITY


class RefreshCoordinator:
    """Fetch stale quotes for a scope and write them into the asset cache."""

    def __init__(
        self,
        database: Database,
        source: PriceSource,
        settings: AppSettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._database = database
        self._source = source
        self._settings = settings or get_settings()
        self._clock = clock

    async def _load_state(self) -> tuple[dict[str, AssetType | None], dict[str, AssetQuote]]:
        async with self._database.read_view() as session:
            entries = await load_ledger(session)
            assets = await load_assets(session)
        return replay_ledger(entries).open_symbols(), assets

    def _targets(
        self,
        scope: RefreshScope,
        held: dict[str, AssetType | None],
        assets: dict[str, AssetQuote],
    ) -> list[RefreshTarget]:
        targets: dict[str, RefreshTarget] = {}
        for symbol, ledger_type in held.items():
            asset_type = _resolve_type(symbol, ledger_type, assets.get(symbol))
            if scope.includes(asset_type):
                targets[symbol] = RefreshTarget(symbol=symbol, asset_type=asset_type)
        if scope is not RefreshScope.FUND_CLASS:
            for symbol, label in self._settings.core_symbols.items():
                code = symbol.strip().upper()
                if code in targets:
                    continue
                try:
                    asset_type = AssetType.from_label(label)
                except ValueError:
                    logger.warning("Skipping core symbol %s with unknown type %r", code, label)
                    continue
                targets[code] = RefreshTarget(symbol=code, asset_type=asset_type)
        return [targets[symbol] for symbol in sorted(targets)]

    async def resolve_targets(self, scope: str | RefreshScope) -> list[RefreshTarget]:
        """Symbols a refresh of ``scope`` would consider, before TTL filtering."""

        resolved = RefreshScope.parse(scope)
        held, assets = await self._load_state()
        return self._targets(resolved, held, assets)

    async def refresh(self, scope: str | RefreshScope, force: bool = False) -> list[RefreshResult]:
        resolved = RefreshScope.parse(scope)
        with get_tracer(__name__).start_as_current_span(
            "market_data.refresh",
            attributes={"refresh.scope": resolved.value, "refresh.force": force},
        ) as span:
            results = await self._refresh(resolved, force)
            for outcome in RefreshOutcome:
                span.set_attribute(
                    f"refresh.{outcome.name.lower()}",
                    sum(result.outcome is outcome for result in results),
                )
            return results

    async def _refresh(self, resolved: RefreshScope, force: bool) -> list[RefreshResult]:
        held, assets = await self._load_state()
        targets = self._targets(resolved, held, assets)

        now = self._clock()
        policy = ttl_policy(self._settings)
        results: dict[str, RefreshResult] = {}
        queue: asyncio.Queue[RefreshTarget] = asyncio.Queue()
        for target in targets:
            cached = assets.get(target.symbol)
            if (
                not force
                and cached is not None
                and cached.current_price is not None
                and not is_stale(cached.last_updated, target.asset_type, now, policy)
            ):
                results[target.symbol] = RefreshResult(target.symbol, RefreshOutcome.SKIPPED_FRESH)
                continue
            queue.put_nowait(target)

        pending = queue.qsize()
        if pending:
            worker_count = min(self._settings.refresh_concurrency, pending)
            workers = [asyncio.create_task(self._worker(queue, results)) for _ in range(worker_count)]
            try:
                await asyncio.gather(*workers)
            except BaseException:
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)
                raise

        ordered = [results[symbol] for symbol in sorted(results)]
        counts = {outcome: 0 for outcome in RefreshOutcome}
        for result in ordered:
            counts[result.outcome] += 1
        logger.info(
            "Refresh %s finished: %s updated, %s fresh, %s failed",
            resolved.value,
            counts[RefreshOutcome.UPDATED],
            counts[RefreshOutcome.SKIPPED_FRESH],
            counts[RefreshOutcome.FAILED],
        )
        return ordered

    async def _worker(self, queue: asyncio.Queue[RefreshTarget], results: dict[str, RefreshResult]) -> None:
        while True:
            try:
                target = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[target.symbol] = await self._refresh_one(target)

    async def _refresh_one(self, target: RefreshTarget) -> RefreshResult:
        with get_tracer(__name__).start_as_current_span(
            "market_data.refresh_symbol",
            attributes={"asset.symbol": target.symbol, "asset.type": target.asset_type.value},
        ) as span:
            result = await self._fetch_and_store(target)
            span.set_attribute("refresh.outcome", result.outcome.value)
            if result.outcome is RefreshOutcome.FAILED:
                span.set_status(Status(StatusCode.ERROR, result.error))
            return result

    async def _fetch_and_store(self, target: RefreshTarget) -> RefreshResult:
        timeout = self._settings.quote_timeout_seconds
        try:
            quote = await asyncio.wait_for(
                self._source.fetch_quote(target.symbol, target.asset_type),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Quote for %s timed out after %ss", target.symbol, timeout)
            return RefreshResult(target.symbol, RefreshOutcome.FAILED, f"timed out after {timeout}s")
        except _FETCH_ERRORS as exc:
            logger.warning("Quote for %s failed: %s", target.symbol, exc)
            return RefreshResult(target.symbol, RefreshOutcome.FAILED, str(exc))

        fetched_at = self._clock()
        async with self._database.transaction() as session:
            written = await upsert_quote(
                session,
                replace(quote, symbol=target.symbol),
                target.asset_type,
                fetched_at=fetched_at,
                snapshot_date=local_today(self._settings.timezone, now=fetched_at),
            )
        if not written:
            return RefreshResult(target.symbol, RefreshOutcome.SKIPPED_FRESH)
        logger.debug("Updated %s at %s", target.symbol, quote.price)
        return RefreshResult(target.symbol, RefreshOutcome.UPDATED)


async def backfill_price_history(
    database: Database,
    source: HistorySource,
    symbol: str,
    *,
    start: date | None = None,
) -> int:
    """Seed ``asset_price_history`` for ``symbol`` from the provider's daily closes."""

    code = symbol.strip().upper()
    frame = await source.fetch_history(code, start=start)
    if frame.empty:
        logger.info("No history returned for %s", code)
        return 0
    async with database.transaction() as session:
        total = await store_history_frame(session, code, frame)
    logger.info("Stored %s history rows for %s", total, code)
    return total


async def refresh_forever(refresh: Callable[[], Awaitable[object]], interval_seconds: float) -> None:
    """Run ``refresh`` on a fixed interval until cancelled; failures are logged."""

    while True:
        try:
            await refresh()
        except asyncio.CancelledError:
            raise
        except Exception:  # pragma: no cover - logged and retried on the next tick
            logger.exception("Scheduled market data refresh failed")
        await asyncio.sleep(interval_seconds)


__all__ = [
    "RefreshCoordinator",
    "RefreshOutcome",
    "RefreshResult",
    "RefreshScope",
    "RefreshTarget",
    "backfill_price_history",
    "refresh_forever",
]

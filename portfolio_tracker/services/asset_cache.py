"""Asset cache: latest quote per symbol plus daily price history."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

import pandas as pd
from sqlalchemy import func, or_, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.config import AppSettings
from portfolio_tracker.models import Asset, AssetPriceHistory, AssetType, FundDailyTracking
from portfolio_tracker.providers.base import Quote
from portfolio_tracker.services.valuation import AssetQuote

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20


@dataclass(frozen=True)
class LastUpdates:
    fund: datetime | None
    general: datetime | None


def ttl_policy(settings: AppSettings) -> dict[AssetType, timedelta]:
    """Staleness window per asset class: funds refresh slowly, everything else fast."""

    general = timedelta(minutes=settings.general_ttl_minutes)
    fund = timedelta(minutes=settings.fund_ttl_minutes)
    return {asset_type: (fund if asset_type is AssetType.FUND else general) for asset_type in AssetType}


def is_stale(
    last_updated: datetime | None,
    asset_type: AssetType,
    now: datetime,
    policy: dict[AssetType, timedelta],
) -> bool:
    if last_updated is None:
        return True
    return now - last_updated > policy[asset_type]


def _decimal_or_none(value) -> Decimal | None:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def to_asset_quote(asset: Asset) -> AssetQuote:
    return AssetQuote(
        symbol=asset.symbol,
        current_price=_decimal_or_none(asset.current_price),
        name=asset.name,
        asset_type=asset.asset_type,
        day_change_pct=_decimal_or_none(asset.day_change_pct) or Decimal("0"),
        last_updated=asset.last_updated,
    )


async def load_assets(session: AsyncSession) -> dict[str, AssetQuote]:
    rows = (await session.execute(select(Asset))).scalars().all()
    return {row.symbol: to_asset_quote(row) for row in rows}


async def get_asset(session: AsyncSession, symbol: str) -> Asset | None:
    return await session.get(Asset, symbol.strip().upper())


async def search_assets(
    session: AsyncSession,
    query: str,
    *,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[Asset]:
    """Case-insensitive substring match on symbol, name or asset type."""

    pattern = f"%{query.strip()}%"
    stmt = (
        select(Asset)
        .where(
            or_(
                Asset.symbol.ilike(pattern),
                Asset.name.ilike(pattern),
                Asset.asset_type.ilike(pattern),
            )
        )
        .order_by(Asset.symbol)
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


async def last_updates(session: AsyncSession) -> LastUpdates:
    fund = (
        await session.execute(
            select(func.max(Asset.last_updated)).where(Asset.asset_type == AssetType.FUND.value)
        )
    ).scalar_one_or_none()
    general = (
        await session.execute(
            select(func.max(Asset.last_updated)).where(Asset.asset_type != AssetType.FUND.value)
        )
    ).scalar_one_or_none()
    return LastUpdates(fund=fund, general=general)


async def upsert_quote(
    session: AsyncSession,
    quote: Quote,
    asset_type: AssetType,
    *,
    fetched_at: datetime,
    snapshot_date: date,
) -> bool:
    """Write a fetched quote into the cache and today's history rows.

    Returns ``False`` when the stored row already carries a newer
    ``last_updated``; in that case nothing is written.
    """

    symbol = quote.symbol.strip().upper()
    stmt = insert(Asset).values(
        symbol=symbol,
        name=quote.name,
        asset_type=asset_type.value,
        current_price=quote.price,
        day_change_pct=quote.change_pct,
        last_updated=fetched_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Asset.symbol],
        set_={
            "name": func.coalesce(stmt.excluded.name, Asset.name),
            "asset_type": stmt.excluded.asset_type,
            "current_price": stmt.excluded.current_price,
            "day_change_pct": stmt.excluded.day_change_pct,
            "last_updated": stmt.excluded.last_updated,
        },
        where=or_(Asset.last_updated.is_(None), Asset.last_updated <= stmt.excluded.last_updated),
    )
    result = await session.execute(stmt)
    if result.rowcount == 0:
        logger.info("Ignoring out-of-order quote for %s fetched at %s", symbol, fetched_at)
        return False

    await upsert_price_history(session, symbol, quote.price, snapshot_date)
    if asset_type is AssetType.FUND:
        tracking = insert(FundDailyTracking).values(
            symbol=symbol,
            price=quote.price,
            day_change_pct=quote.change_pct,
            snapshot_date=snapshot_date,
        )
        tracking = tracking.on_conflict_do_update(
            index_elements=[FundDailyTracking.symbol, FundDailyTracking.snapshot_date],
            set_={
                "price": tracking.excluded.price,
                "day_change_pct": tracking.excluded.day_change_pct,
            },
        )
        await session.execute(tracking)
    return True


async def upsert_price_history(
    session: AsyncSession,
    symbol: str,
    price: Decimal,
    snapshot_date: date,
) -> None:
    stmt = insert(AssetPriceHistory).values(symbol=symbol, price=price, snapshot_date=snapshot_date)
    stmt = stmt.on_conflict_do_update(
        index_elements=[AssetPriceHistory.symbol, AssetPriceHistory.snapshot_date],
        set_={"price": stmt.excluded.price},
    )
    await session.execute(stmt)


async def store_history_frame(session: AsyncSession, symbol: str, frame: pd.DataFrame) -> int:
    """Persist a ``Close`` column indexed by date into the price history."""

    if frame.empty or "Close" not in frame.columns:
        return 0
    total = 0
    for day, close in frame["Close"].items():
        if pd.isna(close):
            continue
        await upsert_price_history(session, symbol, Decimal(str(close)), pd.Timestamp(day).date())
        total += 1
    return total


__all__ = [
    "DEFAULT_SEARCH_LIMIT",
    "LastUpdates",
    "get_asset",
    "is_stale",
    "last_updates",
    "load_assets",
    "search_assets",
    "store_history_frame",
    "to_asset_quote",
    "ttl_policy",
    "upsert_price_history",
    "upsert_quote",
]

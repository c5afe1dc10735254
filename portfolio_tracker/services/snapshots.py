"""Daily portfolio snapshot persistence and look-ups."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.db.base import utcnow
from portfolio_tracker.models import PortfolioSnapshot
from portfolio_tracker.services.summary import PERIOD_DAYS, PortfolioSummary

logger = logging.getLogger(__name__)


def local_today(timezone_name: str, *, now: datetime | None = None) -> date:
    """Calendar day in the configured timezone."""

    current = now or utcnow()
    return current.astimezone(ZoneInfo(timezone_name)).date()


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


async def record_daily_snapshot(
    session: AsyncSession,
    summary: PortfolioSummary,
    snapshot_date: date,
) -> dict[str, object]:
    """Upsert the snapshot row for ``snapshot_date``; the last write of a day wins."""

    record = {
        "snapshot_date": snapshot_date,
        "total_value_local": summary.total_value,
        "total_value_usd": summary.total_value_usd,
        "cost_basis": summary.cost_basis,
        "realized_pnl": summary.realized_pnl,
        "unrealized_pnl": summary.unrealized_pnl,
        # The ledger has no cash account.
        "cash_balance": Decimal("0"),
        "total_return_pct": summary.total_return_pct,
        "created_at": utcnow(),
    }
    stmt = (
        insert(PortfolioSnapshot)
        .values(**record)
        .on_conflict_do_update(
            index_elements=[PortfolioSnapshot.snapshot_date],
            set_={key: value for key, value in record.items() if key != "snapshot_date"},
        )
    )
    await session.execute(stmt)
    logger.info(
        "Recorded portfolio snapshot for %s: value=%s cost=%s",
        snapshot_date,
        summary.total_value,
        summary.cost_basis,
    )
    return record


async def has_snapshot(session: AsyncSession, day: date) -> bool:
    found = await session.execute(select(PortfolioSnapshot.id).where(PortfolioSnapshot.snapshot_date == day))
    return found.first() is not None


async def snapshot_value_on_or_before(session: AsyncSession, day: date) -> Decimal | None:
    """Total local value of the closest snapshot dated ``day`` or earlier."""

    value = (
        await session.execute(
            select(PortfolioSnapshot.total_value_local)
            .where(PortfolioSnapshot.snapshot_date <= day)
            .order_by(PortfolioSnapshot.snapshot_date.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    return _as_decimal(value) if value is not None else None


async def latest_snapshot_value(session: AsyncSession) -> Decimal | None:
    value = (
        await session.execute(
            select(PortfolioSnapshot.total_value_local)
            .order_by(PortfolioSnapshot.snapshot_date.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    return _as_decimal(value) if value is not None else None


async def load_period_baselines(session: AsyncSession, today: date) -> dict[int, Decimal | None]:
    return {
        days: await snapshot_value_on_or_before(session, today - timedelta(days=days))
        for days in PERIOD_DAYS
    }


async def list_snapshots(
    session: AsyncSession,
    *,
    start: date | None = None,
    end: date | None = None,
) -> list[PortfolioSnapshot]:
    stmt = select(PortfolioSnapshot).order_by(PortfolioSnapshot.snapshot_date)
    if start is not None:
        stmt = stmt.where(PortfolioSnapshot.snapshot_date >= start)
    if end is not None:
        stmt = stmt.where(PortfolioSnapshot.snapshot_date <= end)
    return list((await session.execute(stmt)).scalars().all())


__all__ = [
    "has_snapshot",
    "latest_snapshot_value",
    "list_snapshots",
    "load_period_baselines",
    "local_today",
    "record_daily_snapshot",
    "snapshot_value_on_or_before",
]

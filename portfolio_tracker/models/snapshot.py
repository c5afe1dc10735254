"""Daily portfolio snapshot model."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_tracker.db.base import Base, UTCDateTime, utcnow


class PortfolioSnapshot(Base):
    __tablename__ = "portfolio_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)
    snapshot_date: Mapped[date] = mapped_column(Date, unique=True, index=True)
    total_value_local: Mapped[float] = mapped_column(Numeric(20, 6))
    total_value_usd: Mapped[float] = mapped_column(Numeric(20, 6))
    cost_basis: Mapped[float] = mapped_column(Numeric(20, 6), default=0)
    realized_pnl: Mapped[float] = mapped_column(Numeric(20, 6), default=0)
    unrealized_pnl: Mapped[float] = mapped_column(Numeric(20, 6), default=0)
    cash_balance: Mapped[float] = mapped_column(Numeric(20, 6), default=0)
    total_return_pct: Mapped[float | None] = mapped_column(Numeric(12, 4), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)


__all__ = ["PortfolioSnapshot"]

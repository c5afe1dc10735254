"""Asset cache, price history and fund tracking models."""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_tracker.db.base import Base, UTCDateTime


class AssetType(str, enum.Enum):
    FUND = "fund"
    EQUITY = "equity"
    CRYPTO = "crypto"
    FX = "fx"
    COMMODITY = "commodity"
    INDEX = "index"

    @classmethod
    def from_label(cls, label: str | "AssetType") -> "AssetType":
        """Resolve an enum value or a legacy label such as ``fon`` or ``hisse``."""

        if isinstance(label, cls):
            return label
        normalized = str(label or "").strip().lower()
        if normalized in _LEGACY_LABELS:
            return _LEGACY_LABELS[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown asset type: {label!r}") from None


_LEGACY_LABELS: dict[str, AssetType] = {
    "fon": AssetType.FUND,
    "tefas": AssetType.FUND,
    "hisse": AssetType.EQUITY,
    "stock": AssetType.EQUITY,
    "kripto": AssetType.CRYPTO,
    "doviz": AssetType.FX,
    "döviz": AssetType.FX,
    "emtia": AssetType.COMMODITY,
    "endeks": AssetType.INDEX,
}


class Asset(Base):
    __tablename__ = "assets"

    symbol: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    asset_type: Mapped[str] = mapped_column(String(16))
    current_price: Mapped[float | None] = mapped_column(Numeric(20, 6), nullable=True)
    day_change_pct: Mapped[float] = mapped_column(Numeric(12, 4), default=0)
    last_updated: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    market: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sector: Mapped[str | None] = mapped_column(String(64), nullable=True)


class AssetPriceHistory(Base):
    __tablename__ = "asset_price_history"
    __table_args__ = (
        UniqueConstraint("symbol", "snapshot_date", name="uq_asset_price_history_symbol_date"),
        Index("ix_asset_price_history_symbol_date", "symbol", "snapshot_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(32))
    price: Mapped[float] = mapped_column(Numeric(20, 6))
    snapshot_date: Mapped[date] = mapped_column(Date)


class FundDailyTracking(Base):
    __tablename__ = "fund_daily_tracking"
    __table_args__ = (
        UniqueConstraint("symbol", "snapshot_date", name="uq_fund_daily_tracking_symbol_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(32))
    price: Mapped[float] = mapped_column(Numeric(20, 6))
    day_change_pct: Mapped[float] = mapped_column(Numeric(12, 4), default=0)
    snapshot_date: Mapped[date] = mapped_column(Date)


__all__ = ["Asset", "AssetPriceHistory", "AssetType", "FundDailyTracking"]

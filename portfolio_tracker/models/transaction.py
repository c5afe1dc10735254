"""Ledger transaction model."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_tracker.db.base import Base, UTCDateTime, utcnow


class TransactionKind(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def from_label(cls, label: str | "TransactionKind") -> "TransactionKind":
        """Resolve ``BUY``/``SELL`` and the legacy spellings found in old exports."""

        if isinstance(label, cls):
            return label
        normalized = str(label or "").strip().upper()
        if normalized in _BUY_LABELS:
            return cls.BUY
        if normalized in _SELL_LABELS:
            return cls.SELL
        raise ValueError(f"Unknown transaction kind: {label!r}")


_BUY_LABELS = frozenset({"BUY", "ALIM", "ALIŞ", "ALIS", "A", "PURCHASE"})
_SELL_LABELS = frozenset({"SELL", "SATIM", "SATIŞ", "SATIS", "S", "SALE"})


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_symbol_date", "symbol", "trade_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    # Kept as text: rows imported from older backups may carry dates the
    # valuation engine has to skip rather than reject at load time.
    trade_date: Mapped[str] = mapped_column(String(32))
    asset_type: Mapped[str] = mapped_column(String(16))
    symbol: Mapped[str] = mapped_column(String(32), index=True)
    kind: Mapped[str] = mapped_column(String(8))
    quantity: Mapped[float] = mapped_column(Numeric(20, 8))
    price: Mapped[float] = mapped_column(Numeric(20, 6))
    fees: Mapped[float] = mapped_column(Numeric(20, 6), default=0)
    currency: Mapped[str] = mapped_column(String(3), default="TRY")
    is_dividend: Mapped[bool] = mapped_column(Boolean, default=False)
    broker: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)


__all__ = ["Transaction", "TransactionKind"]

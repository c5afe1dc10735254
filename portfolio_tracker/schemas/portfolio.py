"""Pydantic schemas for holdings, summary and performance endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class HoldingSchema(BaseModel):
    symbol: str
    name: str
    asset_type: str | None = None
    quantity: float
    avg_cost: float
    current_price: float
    value: float
    cost_basis: float
    unrealized_pnl: float
    unrealized_pnl_pct: float
    realized_pnl: float
    avg_holding_days: float
    unmatched_sell_quantity: float = 0.0
    warnings: list[str] = Field(default_factory=list)


class PeriodChangeSchema(BaseModel):
    value: float = 0.0
    pct: float = 0.0


class PortfolioSummarySchema(BaseModel):
    total_value: float
    total_value_usd: float
    cost_basis: float
    unrealized_pnl: float
    realized_pnl: float
    total_return: float
    total_return_pct: float
    roi_pct: float
    total_fees: float
    holdings_count: int
    top_performer: HoldingSchema | None = None
    worst_performer: HoldingSchema | None = None
    last_updated: datetime | None = None
    daily_change: PeriodChangeSchema
    weekly_change: PeriodChangeSchema
    monthly_change: PeriodChangeSchema
    warnings: list[str] = Field(default_factory=list)
    skipped_transaction_ids: list[int] = Field(default_factory=list)


class RealizedPnlResponse(BaseModel):
    start: date | None = None
    end: date | None = None
    realized_pnl: float


class RangePerformanceSchema(BaseModel):
    start: date | None = None
    end: date | None = None
    start_value: float
    end_value: float
    change: float
    pct: float


class SnapshotSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    snapshot_date: date
    total_value_local: float
    total_value_usd: float
    cost_basis: float
    realized_pnl: float
    unrealized_pnl: float
    cash_balance: float
    total_return_pct: float | None = None


__all__ = [
    "HoldingSchema",
    "PeriodChangeSchema",
    "PortfolioSummarySchema",
    "RangePerformanceSchema",
    "RealizedPnlResponse",
    "SnapshotSchema",
]

"""Holdings, summary and performance endpoints."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Query, status

from portfolio_tracker.core.errors import ValidationError
from portfolio_tracker.schemas import (
    HoldingSchema,
    PeriodChangeSchema,
    PortfolioSummarySchema,
    RangePerformanceSchema,
    RealizedPnlResponse,
    SnapshotSchema,
)
from portfolio_tracker.services.portfolio import PortfolioService
from portfolio_tracker.services.summary import PeriodChange, PortfolioSummary
from portfolio_tracker.services.valuation import Holding


def _to_holding_schema(holding: Holding) -> HoldingSchema:
    return HoldingSchema(
        symbol=holding.symbol,
        name=holding.name,
        asset_type=holding.asset_type.value if holding.asset_type else None,
        quantity=float(holding.quantity),
        avg_cost=float(holding.avg_cost),
        current_price=float(holding.current_price),
        value=float(holding.value),
        cost_basis=float(holding.cost_basis),
        unrealized_pnl=float(holding.unrealized_pnl),
        unrealized_pnl_pct=float(holding.unrealized_pnl_pct),
        realized_pnl=float(holding.realized_pnl),
        avg_holding_days=float(holding.avg_holding_days),
        unmatched_sell_quantity=float(holding.unmatched_sell_quantity),
        warnings=list(holding.warnings),
    )


def _to_change_schema(change: PeriodChange) -> PeriodChangeSchema:
    return PeriodChangeSchema(value=float(change.value), pct=float(change.pct))


def _to_summary_schema(summary: PortfolioSummary) -> PortfolioSummarySchema:
    return PortfolioSummarySchema(
        total_value=float(summary.total_value),
        total_value_usd=float(summary.total_value_usd),
        cost_basis=float(summary.cost_basis),
        unrealized_pnl=float(summary.unrealized_pnl),
        realized_pnl=float(summary.realized_pnl),
        total_return=float(summary.total_return),
        total_return_pct=float(summary.total_return_pct),
        roi_pct=float(summary.roi_pct),
        total_fees=float(summary.total_fees),
        holdings_count=summary.holdings_count,
        top_performer=_to_holding_schema(summary.top_performer) if summary.top_performer else None,
        worst_performer=_to_holding_schema(summary.worst_performer) if summary.worst_performer else None,
        last_updated=summary.last_updated,
        daily_change=_to_change_schema(summary.daily_change),
        weekly_change=_to_change_schema(summary.weekly_change),
        monthly_change=_to_change_schema(summary.monthly_change),
        warnings=list(summary.warnings),
        skipped_transaction_ids=list(summary.skipped_transaction_ids),
    )


def get_portfolio_router(service: PortfolioService) -> APIRouter:
    router = APIRouter(prefix="/portfolio", tags=["portfolio"])

    @router.get("/summary", response_model=PortfolioSummarySchema)
    async def get_summary() -> PortfolioSummarySchema:
        return _to_summary_schema(await service.get_summary())

    @router.get("/holdings", response_model=list[HoldingSchema])
    async def get_holdings() -> list[HoldingSchema]:
        return [_to_holding_schema(holding) for holding in await service.get_holdings()]

    @router.get("/realized-pnl", response_model=RealizedPnlResponse)
    async def get_realized_pnl(
        start: date | None = Query(default=None),
        end: date | None = Query(default=None),
    ) -> RealizedPnlResponse:
        try:
            realized = await service.get_realized_pnl_in_range(start, end)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        return RealizedPnlResponse(start=start, end=end, realized_pnl=float(realized))

    @router.get("/performance", response_model=RangePerformanceSchema)
    async def get_performance(
        start: date | None = Query(default=None),
        end: date | None = Query(default=None),
    ) -> RangePerformanceSchema:
        try:
            performance = await service.get_range_performance(start, end)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        return RangePerformanceSchema(
            start=start,
            end=end,
            start_value=float(performance.start_value),
            end_value=float(performance.end_value),
            change=float(performance.change),
            pct=float(performance.pct),
        )

    @router.get("/snapshots", response_model=list[SnapshotSchema])
    async def list_snapshots(
        start: date | None = Query(default=None),
        end: date | None = Query(default=None),
    ) -> list[SnapshotSchema]:
        try:
            rows = await service.list_snapshots(start, end)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        return [SnapshotSchema.model_validate(row) for row in rows]

    @router.post("/snapshots", response_model=PortfolioSummarySchema, status_code=status.HTTP_201_CREATED)
    async def record_snapshot() -> PortfolioSummarySchema:
        return _to_summary_schema(await service.record_snapshot())

    return router


__all__ = ["get_portfolio_router"]

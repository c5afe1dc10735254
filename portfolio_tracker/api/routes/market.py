"""Market data refresh and asset cache endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from portfolio_tracker.core.errors import ValidationError
from portfolio_tracker.schemas import (
    AssetSchema,
    LastUpdatesSchema,
    RefreshRequest,
    RefreshResponse,
    RefreshResultSchema,
)
from portfolio_tracker.services.portfolio import PortfolioService
from portfolio_tracker.services.refresh import RefreshOutcome
from portfolio_tracker.services.valuation import AssetQuote


def _to_asset_schema(asset: AssetQuote) -> AssetSchema:
    return AssetSchema(
        symbol=asset.symbol,
        name=asset.name,
        asset_type=asset.asset_type,
        current_price=float(asset.current_price) if asset.current_price is not None else None,
        day_change_pct=float(asset.day_change_pct),
        last_updated=asset.last_updated,
    )


def get_market_router(service: PortfolioService) -> APIRouter:
    router = APIRouter(prefix="/market", tags=["market"])

    @router.post("/refresh", response_model=RefreshResponse)
    async def refresh(payload: RefreshRequest) -> RefreshResponse:
        try:
            results = await service.refresh_market_data(payload.scope, payload.force)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

        def _count(outcome: RefreshOutcome) -> int:
            return sum(1 for result in results if result.outcome is outcome)

        return RefreshResponse(
            scope=payload.scope,
            updated=_count(RefreshOutcome.UPDATED),
            skipped=_count(RefreshOutcome.SKIPPED_FRESH),
            failed=_count(RefreshOutcome.FAILED),
            results=[
                RefreshResultSchema(symbol=result.symbol, outcome=result.outcome.value, error=result.error)
                for result in results
            ],
        )

    @router.get("/assets", response_model=list[AssetSchema])
    async def search_assets(
        query: str = Query(default="", description="Substring of symbol, name or asset type"),
        limit: int = Query(default=20, ge=1, le=200),
    ) -> list[AssetSchema]:
        return [_to_asset_schema(asset) for asset in await service.search_assets(query, limit=limit)]

    @router.get("/assets/{symbol}", response_model=AssetSchema)
    async def get_asset(symbol: str) -> AssetSchema:
        asset = await service.get_asset_info(symbol)
        if asset is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Asset {symbol} not found")
        return _to_asset_schema(asset)

    @router.get("/last-updates", response_model=LastUpdatesSchema)
    async def last_updates() -> LastUpdatesSchema:
        updates = await service.get_last_updates()
        return LastUpdatesSchema(fund=updates.fund, general=updates.general)

    return router


__all__ = ["get_market_router"]

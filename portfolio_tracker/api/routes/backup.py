"""Backup export, import and reset endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response, status

from portfolio_tracker.core.errors import ValidationError
from portfolio_tracker.schemas import ImportResponse
from portfolio_tracker.services.portfolio import PortfolioService


def get_backup_router(service: PortfolioService) -> APIRouter:
    router = APIRouter(prefix="/backup", tags=["backup"])

    @router.get("/export")
    async def export_backup() -> Response:
        blob = await service.export_snapshot()
        return Response(content=blob, media_type="application/json")

    @router.post("/import", response_model=ImportResponse)
    async def import_backup(request: Request) -> ImportResponse:
        body = await request.body()
        try:
            counts = await service.import_snapshot(body)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        return ImportResponse(counts=counts)

    @router.delete("", status_code=status.HTTP_204_NO_CONTENT)
    async def clear_database() -> Response:
        await service.clear_database()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


__all__ = ["get_backup_router"]

"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from portfolio_tracker.services.portfolio import PortfolioService

from .backup import get_backup_router
from .market import get_market_router
from .portfolio import get_portfolio_router
from .transactions import get_transactions_router


def get_api_router(service: PortfolioService) -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(get_portfolio_router(service))
    api_router.include_router(get_transactions_router(service))
    api_router.include_router(get_market_router(service))
    api_router.include_router(get_backup_router(service))
    return api_router


__all__ = ["get_api_router"]

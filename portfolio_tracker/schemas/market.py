"""Pydantic schemas for market data refresh and asset look-ups."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RefreshRequest(BaseModel):
    scope: str = Field(default="all", examples=["general", "fund-class", "all"])
    force: bool = False


class RefreshResultSchema(BaseModel):
    symbol: str
    outcome: str
    error: str | None = None


class RefreshResponse(BaseModel):
    scope: str
    updated: int
    skipped: int
    failed: int
    results: list[RefreshResultSchema]


class AssetSchema(BaseModel):
    symbol: str
    name: str | None = None
    asset_type: str | None = None
    current_price: float | None = None
    day_change_pct: float = 0.0
    last_updated: datetime | None = None


class LastUpdatesSchema(BaseModel):
    fund: datetime | None = None
    general: datetime | None = None


__all__ = [
    "AssetSchema",
    "LastUpdatesSchema",
    "RefreshRequest",
    "RefreshResponse",
    "RefreshResultSchema",
]

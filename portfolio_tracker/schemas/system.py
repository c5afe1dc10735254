"""Pydantic schemas for health and backup endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: datetime
    timezone: str


class ImportResponse(BaseModel):
    status: str = "ok"
    counts: dict[str, int]


__all__ = ["HealthResponse", "ImportResponse"]

"""Pydantic schema exports."""

from .market import AssetSchema, LastUpdatesSchema, RefreshRequest, RefreshResponse, RefreshResultSchema
from .portfolio import (
    HoldingSchema,
    PeriodChangeSchema,
    PortfolioSummarySchema,
    RangePerformanceSchema,
    RealizedPnlResponse,
    SnapshotSchema,
)
from .system import HealthResponse, ImportResponse
from .transactions import (
    TransactionCreatedResponse,
    TransactionCreateRequest,
    TransactionSchema,
    TransactionUpdateRequest,
)

__all__ = [
    "AssetSchema",
    "HealthResponse",
    "HoldingSchema",
    "ImportResponse",
    "LastUpdatesSchema",
    "PeriodChangeSchema",
    "PortfolioSummarySchema",
    "RangePerformanceSchema",
    "RealizedPnlResponse",
    "RefreshRequest",
    "RefreshResponse",
    "RefreshResultSchema",
    "SnapshotSchema",
    "TransactionCreatedResponse",
    "TransactionCreateRequest",
    "TransactionSchema",
    "TransactionUpdateRequest",
]

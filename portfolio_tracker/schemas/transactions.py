"""Pydantic schemas for ledger transactions."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TransactionCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trade_date: str = Field(
        ...,
        validation_alias=AliasChoices("trade_date", "date"),
        examples=["2024-03-01"],
    )
    asset_type: str | None = Field(default=None, examples=["fund"])
    symbol: str = Field(..., examples=["TTE"])
    kind: str = Field(..., validation_alias=AliasChoices("kind", "type"), examples=["BUY"])
    quantity: float
    price: float
    fees: float = Field(default=0.0, validation_alias=AliasChoices("fees", "fee"))
    currency: str = Field(default="TRY", min_length=3, max_length=3)
    is_dividend: bool = False
    broker: str | None = None
    notes: str | None = None


class TransactionUpdateRequest(TransactionCreateRequest):
    pass


class TransactionSchema(BaseModel):
    id: int
    trade_date: str
    asset_type: str
    symbol: str
    name: str
    kind: str
    quantity: float
    price: float
    fees: float
    currency: str
    is_dividend: bool
    broker: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    notional_value: float

    class Config:
        json_schema_extra = {
            "example": {
                "id": 1,
                "trade_date": "2024-03-01",
                "asset_type": "fund",
                "symbol": "TTE",
                "name": "Example Equity Fund",
                "kind": "BUY",
                "quantity": 10,
                "price": 50.0,
                "fees": 0.0,
                "currency": "TRY",
                "is_dividend": False,
                "broker": None,
                "notes": None,
                "created_at": "2024-03-01T09:00:00+00:00",
                "notional_value": 500.0,
            }
        }


class TransactionCreatedResponse(BaseModel):
    id: int


__all__ = [
    "TransactionCreateRequest",
    "TransactionCreatedResponse",
    "TransactionSchema",
    "TransactionUpdateRequest",
]

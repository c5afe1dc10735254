"""Ledger endpoints."""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, HTTPException, Response, status

from portfolio_tracker.core.errors import NotFoundError, ValidationError
from portfolio_tracker.schemas import (
    TransactionCreatedResponse,
    TransactionCreateRequest,
    TransactionSchema,
    TransactionUpdateRequest,
)
from portfolio_tracker.services.ledger import TransactionRecord
from portfolio_tracker.services.portfolio import PortfolioService


def _serialize_transaction(record: TransactionRecord) -> TransactionSchema:
    tx = record.transaction
    qty = float(Decimal(str(tx.quantity)))
    price = float(Decimal(str(tx.price)))
    return TransactionSchema(
        id=tx.id,
        trade_date=tx.trade_date,
        asset_type=tx.asset_type,
        symbol=tx.symbol,
        name=record.asset_name,
        kind=tx.kind,
        quantity=qty,
        price=price,
        fees=float(Decimal(str(tx.fees or 0))),
        currency=tx.currency,
        is_dividend=bool(tx.is_dividend),
        broker=tx.broker,
        notes=tx.notes,
        created_at=tx.created_at,
        notional_value=float(record.notional_value),
    )


def get_transactions_router(service: PortfolioService) -> APIRouter:
    router = APIRouter(prefix="/transactions", tags=["transactions"])

    @router.get("", response_model=list[TransactionSchema])
    async def list_transactions() -> list[TransactionSchema]:
        return [_serialize_transaction(record) for record in await service.get_transactions()]

    @router.post("", response_model=TransactionCreatedResponse, status_code=status.HTTP_201_CREATED)
    async def create_transaction(payload: TransactionCreateRequest) -> TransactionCreatedResponse:
        try:
            transaction_id = await service.add_transaction(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        return TransactionCreatedResponse(id=transaction_id)

    @router.put("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def update_transaction(transaction_id: int, payload: TransactionUpdateRequest) -> Response:
        try:
            await service.update_transaction(transaction_id, payload)
        except NotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_transaction(transaction_id: int) -> Response:
        try:
            await service.delete_transaction(transaction_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


__all__ = ["get_transactions_router"]

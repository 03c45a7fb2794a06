"""
Service Orders API - read-only access to orders created from quotes.
"""
from fastapi import APIRouter, Query
from typing import Optional

from app.api.deps import DbSession, CurrentCaller
from app.schemas.service_order import ServiceOrderListResponse, ServiceOrderResponse
from app.services import service_orders

router = APIRouter()


@router.get("/", response_model=ServiceOrderListResponse)
async def list_service_orders(
    db: DbSession,
    caller: CurrentCaller,
    quote_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
):
    orders = await service_orders.list_service_orders(db, caller, quote_id=quote_id, limit=limit)
    return ServiceOrderListResponse(items=orders, total=len(orders))


@router.get("/{service_order_id}", response_model=ServiceOrderResponse)
async def get_service_order(service_order_id: str, db: DbSession, caller: CurrentCaller):
    return await service_orders.get_service_order(db, caller, service_order_id)

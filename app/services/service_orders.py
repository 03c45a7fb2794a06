"""Service order reads and the snapshot taken from a quote."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models.customer import Vehicle
from app.models.quote import Quote, money
from app.models.service_order import ServiceOrder
from app.security.rbac import Caller, Permission, ensure_permission
from app.services.quote_store import format_number

SERVICE_ORDER_NUMBER_PREFIX = "OS"


def snapshot_items(quote: Quote) -> List[dict]:
    """Quote items as plain JSON-safe dicts (money as strings)."""
    return [
        {
            "type": item.type,
            "name": item.name,
            "description": item.description,
            "service_id": item.service_id,
            "part_id": item.part_id,
            "quantity": item.quantity,
            "unit_cost": str(money(item.unit_cost)),
            "total_cost": str(money(item.total_cost)),
            "hours": item.hours,
        }
        for item in quote.items
    ]


def build_from_quote(quote: Quote, vehicle: Vehicle, sequence: int) -> ServiceOrder:
    """New service order copying the quote's vehicle, problem and pricing data."""
    return ServiceOrder(
        tenant_id=quote.tenant_id,
        sequence=sequence,
        number=format_number(SERVICE_ORDER_NUMBER_PREFIX, sequence),
        quote_id=quote.id,
        customer_id=quote.customer_id,
        vehicle_id=quote.vehicle_id,
        technician_id=quote.assigned_mechanic_id,
        elevator_id=quote.elevator_id,
        status="scheduled",
        vehicle_placa=vehicle.placa,
        vehicle_vin=vehicle.vin,
        vehicle_make=vehicle.make,
        vehicle_model=vehicle.model,
        vehicle_year=vehicle.year,
        vehicle_mileage=vehicle.mileage,
        reported_problem_category=quote.reported_problem_category,
        reported_problem_description=quote.reported_problem_description,
        reported_problem_symptoms=list(quote.reported_problem_symptoms or []),
        identified_problem_category=quote.identified_problem_category,
        identified_problem_description=quote.identified_problem_description,
        identified_problem_id=quote.identified_problem_id,
        diagnostic_notes=quote.diagnostic_notes,
        recommendations=quote.recommendations,
        inspection_notes=quote.inspection_notes,
        items=snapshot_items(quote),
        labor_cost=money(quote.labor_cost),
        parts_cost=money(quote.parts_cost),
        discount=money(quote.discount),
        tax_amount=money(quote.tax_amount),
        total_cost=money(quote.total_cost),
        estimated_hours=quote.estimated_hours,
    )


async def find_by_quote_id(db: AsyncSession, tenant_id: str, quote_id: str) -> Optional[ServiceOrder]:
    result = await db.execute(
        select(ServiceOrder).where(ServiceOrder.quote_id == quote_id, ServiceOrder.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def get_service_order(db: AsyncSession, caller: Caller, service_order_id: str) -> ServiceOrder:
    ensure_permission(caller, Permission.VIEW_SERVICE_ORDERS)
    result = await db.execute(
        select(ServiceOrder).where(
            ServiceOrder.id == service_order_id, ServiceOrder.tenant_id == caller.tenant_id
        )
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Service order", service_order_id)
    return order


async def list_service_orders(
    db: AsyncSession, caller: Caller, quote_id: Optional[str] = None, limit: int = 50
) -> List[ServiceOrder]:
    ensure_permission(caller, Permission.VIEW_SERVICE_ORDERS)
    query = select(ServiceOrder).where(ServiceOrder.tenant_id == caller.tenant_id)
    if quote_id:
        query = query.where(ServiceOrder.quote_id == quote_id)
    result = await db.execute(query.order_by(ServiceOrder.sequence.desc()).limit(limit))
    return list(result.scalars().all())

"""Lookups of directory records referenced by quotes.

Customers, vehicles, elevators and users are owned elsewhere; the quote
workflow only checks that references exist in the caller's tenant.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, ValidationError
from app.models.customer import Customer, Vehicle
from app.models.elevator import Elevator
from app.models.user import User
from app.security.rbac import Role


async def get_customer(db: AsyncSession, tenant_id: str, customer_id: str) -> Customer:
    result = await db.execute(
        select(Customer).where(Customer.id == customer_id, Customer.tenant_id == tenant_id)
    )
    customer = result.scalar_one_or_none()
    if customer is None:
        raise NotFoundError("Customer", customer_id)
    return customer


async def get_vehicle(db: AsyncSession, tenant_id: str, vehicle_id: str) -> Vehicle:
    result = await db.execute(
        select(Vehicle)
        .join(Customer, Vehicle.customer_id == Customer.id)
        .where(Vehicle.id == vehicle_id, Customer.tenant_id == tenant_id)
    )
    vehicle = result.scalar_one_or_none()
    if vehicle is None:
        raise NotFoundError("Vehicle", vehicle_id)
    return vehicle


async def ensure_customer_vehicle(db: AsyncSession, tenant_id: str, customer_id: str, vehicle_id: str) -> Vehicle:
    """The vehicle must exist and belong to the customer, both in the tenant."""
    await get_customer(db, tenant_id, customer_id)
    vehicle = await get_vehicle(db, tenant_id, vehicle_id)
    if vehicle.customer_id != customer_id:
        raise ValidationError(
            "Vehicle does not belong to the selected customer",
            errors=[{"field": "vehicle_id", "message": "Vehicle does not belong to the selected customer"}],
        )
    return vehicle


async def get_elevator(db: AsyncSession, tenant_id: str, elevator_id: str) -> Elevator:
    result = await db.execute(
        select(Elevator).where(Elevator.id == elevator_id, Elevator.tenant_id == tenant_id)
    )
    elevator = result.scalar_one_or_none()
    if elevator is None:
        raise NotFoundError("Elevator", elevator_id)
    return elevator


async def get_active_mechanic(db: AsyncSession, tenant_id: str, user_id: str) -> User:
    """Active user with the mechanic role in the tenant, or a validation error."""
    result = await db.execute(select(User).where(User.id == user_id, User.tenant_id == tenant_id))
    user: Optional[User] = result.scalar_one_or_none()
    if user is None or not user.is_active or user.role != Role.MECHANIC.value:
        raise ValidationError(
            "Assignee must be an active mechanic of this workshop",
            errors=[{"field": "mechanic_id", "message": "Not an active mechanic"}],
        )
    return user

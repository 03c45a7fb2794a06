"""
Tests for converting accepted quotes into service orders.
"""
import asyncio
from decimal import Decimal

import pytest

from app.exceptions import ConversionFailed, InvalidTransition
from app.services import conversion, directory, public_approval, quote_store, service_orders


def _boom(*args, **kwargs):
    raise RuntimeError("snapshot failed")


@pytest.mark.asyncio
async def test_approval_creates_one_service_order(flow, test_db, workshop):
    quote, token = await flow.sent()

    quote, result = await public_approval.approve_by_token(test_db, token, "data:image/png;base64,AAAA")

    order = result.service_order
    assert result.created is True
    assert quote.status == "converted"
    assert quote.service_order_id == order.id
    assert quote.converted_at is not None
    assert order.number == "OS-001"
    assert order.quote_id == quote.id
    assert order.status == "scheduled"
    assert order.technician_id == workshop.mechanic.user_id
    assert order.total_cost == Decimal("250.00")
    assert order.labor_cost == Decimal("150.00")
    assert order.items == [
        {
            "type": "service",
            "name": "Troca de vela",
            "description": None,
            "service_id": None,
            "part_id": None,
            "quantity": 4,
            "unit_cost": "25.00",
            "total_cost": "100.00",
            "hours": None,
        }
    ]


@pytest.mark.asyncio
async def test_snapshot_copies_vehicle_and_diagnosis(flow, test_db, workshop):
    quote, token = await flow.sent()
    _, result = await public_approval.approve_by_token(test_db, token, "assinatura")

    vehicle = await directory.get_vehicle(test_db, workshop.tenant_id, workshop.vehicle_id)
    order = result.service_order
    assert (order.vehicle_placa, order.vehicle_make, order.vehicle_mileage) == (
        vehicle.placa,
        vehicle.make,
        vehicle.mileage,
    )
    assert order.reported_problem_symptoms == ["falha", "fumaça"]
    assert order.identified_problem_category == "motor"
    assert order.estimated_hours == 2.5


@pytest.mark.asyncio
async def test_second_conversion_returns_existing_order(flow, test_db, workshop):
    quote, token = await flow.sent()
    _, first = await public_approval.approve_by_token(test_db, token, "assinatura")

    again = await conversion.convert_quote(test_db, workshop.tenant_id, quote.id)

    assert again.created is False
    assert again.service_order.id == first.service_order.id
    orders = await service_orders.list_service_orders(test_db, workshop.receptionist, quote_id=quote.id)
    assert len(orders) == 1


@pytest.mark.asyncio
async def test_failed_conversion_leaves_quote_accepted(flow, test_db, workshop, monkeypatch):
    quote, token = await flow.sent()
    monkeypatch.setattr(service_orders, "build_from_quote", _boom)

    with pytest.raises(ConversionFailed) as exc_info:
        await public_approval.approve_by_token(test_db, token, "assinatura")
    assert exc_info.value.status_code == 500

    await quote_store.reload(test_db, quote)
    assert quote.status == "accepted"
    assert quote.accepted_at is not None
    assert quote.service_order_id is None
    assert await service_orders.find_by_quote_id(test_db, workshop.tenant_id, quote.id) is None

    # Retry once the failure is gone
    monkeypatch.undo()
    result = await conversion.convert_quote(test_db, workshop.tenant_id, quote.id)

    assert result.created is True
    await quote_store.reload(test_db, quote)
    assert quote.status == "converted"
    assert quote.service_order_id == result.service_order.id


@pytest.mark.asyncio
async def test_public_approve_resumes_failed_conversion(flow, test_db, workshop, monkeypatch):
    quote, token = await flow.sent()
    monkeypatch.setattr(service_orders, "build_from_quote", _boom)
    with pytest.raises(ConversionFailed):
        await public_approval.approve_by_token(test_db, token, "assinatura")
    monkeypatch.undo()

    quote, result = await public_approval.approve_by_token(test_db, token, "assinatura")

    assert result.created is True
    assert quote.status == "converted"


@pytest.mark.asyncio
async def test_only_accepted_quotes_convert(flow, test_db, workshop):
    quote, _ = await flow.sent()

    with pytest.raises(InvalidTransition) as exc_info:
        await conversion.convert_quote(test_db, workshop.tenant_id, quote.id)
    assert exc_info.value.context == {"current_status": "sent", "attempted_status": "converted"}


@pytest.mark.asyncio
async def test_order_numbers_continue_per_tenant(flow, test_db, workshop):
    for expected in ("OS-001", "OS-002"):
        _, token = await flow.sent()
        _, result = await public_approval.approve_by_token(test_db, token, "assinatura")
        assert result.service_order.number == expected


@pytest.mark.asyncio
async def test_concurrent_conversions_create_one_order(flow, test_db, session_factory, workshop, monkeypatch):
    quote, token = await flow.sent()
    monkeypatch.setattr(service_orders, "build_from_quote", _boom)
    with pytest.raises(ConversionFailed):
        await public_approval.approve_by_token(test_db, token, "assinatura")
    monkeypatch.undo()

    async with session_factory() as db_a, session_factory() as db_b:
        first, second = await asyncio.gather(
            conversion.convert_quote(db_a, workshop.tenant_id, quote.id),
            conversion.convert_quote(db_b, workshop.tenant_id, quote.id),
        )

    assert first.service_order.id == second.service_order.id
    assert sorted([first.created, second.created]) == [False, True]

    orders = await service_orders.list_service_orders(test_db, workshop.receptionist, quote_id=quote.id)
    assert len(orders) == 1
    await quote_store.reload(test_db, quote)
    assert quote.status == "converted"
    assert quote.service_order_id == first.service_order.id

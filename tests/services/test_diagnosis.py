"""
Tests for recording a diagnosis and the pricing gate it opens.
"""
from decimal import Decimal

import pytest

from app.exceptions import FieldLocked, ForbiddenError, InvalidTransition, NotAssigned, NotOwner
from app.schemas.quote import DiagnosisCreate, QuoteItemCreate, QuoteUpdate
from app.services import diagnosis, quote_service

from tests.factories import DiagnosisFactory


def _diagnosis(**overrides) -> DiagnosisCreate:
    return DiagnosisCreate(**DiagnosisFactory(**overrides))


@pytest.mark.asyncio
async def test_owner_records_diagnosis(flow, test_db, workshop):
    quote = await flow.claimed()

    diagnosed = await diagnosis.record_diagnosis(
        test_db,
        workshop.mechanic,
        quote.id,
        _diagnosis(identified_problem_description="Velas gastas", estimated_hours=1.5),
    )

    assert diagnosed.status == "diagnosed"
    assert diagnosed.identified_problem_category == "motor"
    assert diagnosed.identified_problem_description == "Velas gastas"
    assert diagnosed.estimated_hours == 1.5
    assert diagnosed.diagnosed_at is not None
    # Reported problem is kept as the customer described it
    assert diagnosed.reported_problem_description == "Motor falhando na partida"


@pytest.mark.asyncio
async def test_unclaimed_quote_cannot_be_diagnosed(flow, test_db, workshop):
    quote = await flow.awaiting()

    with pytest.raises(NotAssigned) as exc_info:
        await diagnosis.record_diagnosis(test_db, workshop.mechanic, quote.id, _diagnosis())
    assert exc_info.value.status_code == 428


@pytest.mark.asyncio
async def test_only_the_assignee_can_diagnose(flow, test_db, workshop):
    quote = await flow.claimed()

    with pytest.raises(NotOwner) as exc_info:
        await diagnosis.record_diagnosis(test_db, workshop.other_mechanic, quote.id, _diagnosis())
    assert exc_info.value.status_code == 403
    assert exc_info.value.owner_id == workshop.mechanic.user_id


@pytest.mark.asyncio
async def test_draft_cannot_be_diagnosed(flow, test_db, workshop):
    quote = await flow.draft()

    with pytest.raises(InvalidTransition) as exc_info:
        await diagnosis.record_diagnosis(test_db, workshop.mechanic, quote.id, _diagnosis())
    assert exc_info.value.context == {"current_status": "draft", "attempted_status": "diagnosed"}


@pytest.mark.asyncio
async def test_diagnosis_is_recorded_once(flow, test_db, workshop):
    quote = await flow.diagnosed()

    with pytest.raises(InvalidTransition):
        await diagnosis.record_diagnosis(test_db, workshop.mechanic, quote.id, _diagnosis())


@pytest.mark.asyncio
async def test_receptionist_cannot_diagnose(flow, test_db, workshop):
    quote = await flow.claimed()

    with pytest.raises(ForbiddenError):
        await diagnosis.record_diagnosis(test_db, workshop.receptionist, quote.id, _diagnosis())


def test_diagnosis_needs_a_problem():
    with pytest.raises(ValueError):
        DiagnosisCreate(identified_problem_description="   ")


def test_estimated_hours_bounds():
    with pytest.raises(ValueError):
        _diagnosis(estimated_hours=0.1)
    with pytest.raises(ValueError):
        _diagnosis(estimated_hours=25)


@pytest.mark.asyncio
async def test_pricing_locked_until_diagnosed(flow, test_db, workshop):
    quote = await flow.claimed()
    priced = QuoteUpdate(
        items=[QuoteItemCreate(type="part", name="Vela", quantity=4, unit_cost=Decimal("25.00"))]
    )

    with pytest.raises(FieldLocked) as exc_info:
        await quote_service.update_quote(test_db, workshop.receptionist, quote.id, priced)
    assert exc_info.value.field == "items"

    await diagnosis.record_diagnosis(test_db, workshop.mechanic, quote.id, _diagnosis())
    updated = await quote_service.update_quote(test_db, workshop.receptionist, quote.id, priced)

    assert [item.name for item in updated.items] == ["Vela"]
    assert updated.total_cost == Decimal("100.00")


@pytest.mark.asyncio
async def test_reported_problem_locked_after_diagnosis(flow, test_db, workshop):
    quote = await flow.diagnosed()

    with pytest.raises(FieldLocked):
        await quote_service.update_quote(
            test_db,
            workshop.receptionist,
            quote.id,
            QuoteUpdate(reported_problem_description="Outro problema"),
        )

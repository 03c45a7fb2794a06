"""
Tests for staff quote operations: create, update, submit, send.
"""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError

from app.exceptions import (
    BusinessRuleError,
    ForbiddenError,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from app.models.customer import Customer, Vehicle
from app.schemas.quote import QuoteCreate, QuoteItemCreate, QuoteUpdate
from app.security.rbac import Caller, Role
from app.services import quote_service
from app.services.quote_tokens import verify_quote_token
from app.utils.dates import utcnow

from tests.factories import CustomerFactory, VehicleFactory


class TestCreate:
    @pytest.mark.asyncio
    async def test_numbers_are_sequential_per_tenant(self, flow):
        first = await flow.draft()
        second = await flow.draft()

        assert first.status == "draft"
        assert (first.number, second.number) == ("ORC-001", "ORC-002")
        assert first.total_cost == Decimal("0.00")
        assert first.items == []

    @pytest.mark.asyncio
    async def test_other_tenant_starts_its_own_sequence(self, flow, test_db):
        await flow.draft()

        tenant_id = str(uuid.uuid4())
        customer = CustomerFactory(tenant_id=tenant_id)
        vehicle = VehicleFactory(customer_id=customer["id"])
        test_db.add_all([Customer(**customer), Vehicle(**vehicle)])
        await test_db.commit()
        caller = Caller(user_id=str(uuid.uuid4()), tenant_id=tenant_id, role=Role.MANAGER)

        quote = await quote_service.create_quote(
            test_db,
            caller,
            QuoteCreate(customer_id=customer["id"], vehicle_id=vehicle["id"], reported_problem_category="freios"),
        )
        assert quote.number == "ORC-001"

    @pytest.mark.asyncio
    async def test_vehicle_must_belong_to_customer(self, flow, test_db, workshop):
        other = CustomerFactory(tenant_id=workshop.tenant_id)
        test_db.add(Customer(**other))
        await test_db.commit()

        with pytest.raises(ValidationError):
            await quote_service.create_quote(
                test_db,
                workshop.receptionist,
                QuoteCreate(customer_id=other["id"], vehicle_id=workshop.vehicle_id),
            )

    @pytest.mark.asyncio
    async def test_customer_of_other_tenant_is_not_found(self, test_db, workshop):
        stranger = Caller(user_id=str(uuid.uuid4()), tenant_id=str(uuid.uuid4()), role=Role.ADMIN)
        with pytest.raises(NotFoundError):
            await quote_service.create_quote(
                test_db,
                stranger,
                QuoteCreate(customer_id=workshop.customer_id, vehicle_id=workshop.vehicle_id),
            )


class TestUpdate:
    @pytest.mark.asyncio
    async def test_draft_problem_can_be_edited(self, flow, test_db, workshop):
        quote = await flow.draft()

        updated = await quote_service.update_quote(
            test_db,
            workshop.receptionist,
            quote.id,
            QuoteUpdate(reported_problem_description="Barulho na suspensão", reported_problem_symptoms=["barulho"]),
        )

        assert updated.reported_problem_description == "Barulho na suspensão"
        assert updated.reported_problem_symptoms == ["barulho"]

    def test_status_is_not_an_update_field(self):
        with pytest.raises(SchemaValidationError):
            QuoteUpdate(status="sent")

    def test_diagnosis_is_not_an_update_field(self):
        with pytest.raises(SchemaValidationError):
            QuoteUpdate(identified_problem_description="Velas")

    @pytest.mark.asyncio
    async def test_customer_cannot_be_cleared(self, flow, test_db, workshop):
        quote = await flow.draft()

        with pytest.raises(ValidationError):
            await quote_service.update_quote(test_db, workshop.receptionist, quote.id, QuoteUpdate(customer_id=None))

    @pytest.mark.asyncio
    async def test_items_replace_previous_items(self, flow, test_db, workshop):
        quote = await flow.priced()
        assert quote.total_cost == Decimal("250.00")

        updated = await quote_service.update_quote(
            test_db,
            workshop.receptionist,
            quote.id,
            QuoteUpdate(
                items=[
                    QuoteItemCreate(type="part", name="Vela", quantity=4, unit_cost=Decimal("30.00")),
                    QuoteItemCreate(type="service", name="Mão de obra", quantity=1, unit_cost=Decimal("80.00")),
                ],
                discount=Decimal("10.00"),
            ),
        )

        assert [item.name for item in updated.items] == ["Vela", "Mão de obra"]
        assert updated.items[0].total_cost == Decimal("120.00")
        # 120 + 80 items, 150 labor, minus 10 discount
        assert updated.total_cost == Decimal("340.00")

    @pytest.mark.asyncio
    async def test_discount_above_total_rejected(self, flow, test_db, workshop):
        quote = await flow.priced()

        with pytest.raises(BusinessRuleError):
            await quote_service.update_quote(
                test_db, workshop.receptionist, quote.id, QuoteUpdate(discount=Decimal("300.00"))
            )

    @pytest.mark.asyncio
    async def test_mechanic_cannot_edit(self, flow, test_db, workshop):
        quote = await flow.diagnosed()

        with pytest.raises(ForbiddenError):
            await quote_service.update_quote(
                test_db, workshop.mechanic, quote.id, QuoteUpdate(labor_cost=Decimal("10.00"))
            )


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_needs_a_reported_problem(self, flow, test_db, workshop):
        quote = await flow.draft(reported_problem_category=None, reported_problem_symptoms=[])

        with pytest.raises(BusinessRuleError):
            await quote_service.submit_for_diagnosis(test_db, workshop.receptionist, quote.id)

    @pytest.mark.asyncio
    async def test_submit_twice_is_invalid(self, flow, test_db, workshop):
        quote = await flow.awaiting()

        with pytest.raises(InvalidTransition):
            await quote_service.submit_for_diagnosis(test_db, workshop.receptionist, quote.id)


class TestSend:
    @pytest.mark.asyncio
    async def test_send_issues_link_and_default_validity(self, flow, test_db, workshop):
        quote = await flow.priced()

        sent, token, expires_at = await quote_service.send_quote(test_db, workshop.receptionist, quote.id)

        assert sent.status == "sent"
        assert sent.sent_at is not None
        assert sent.valid_until > utcnow() + timedelta(days=14)
        claims = verify_quote_token(token)
        assert claims.quote_id == quote.id
        assert claims.tenant_id == workshop.tenant_id
        assert claims.version == sent.public_token_version
        assert expires_at > utcnow()

    @pytest.mark.asyncio
    async def test_send_requires_items(self, flow, test_db, workshop):
        quote = await flow.diagnosed()

        with pytest.raises(BusinessRuleError):
            await quote_service.send_quote(test_db, workshop.receptionist, quote.id)

    @pytest.mark.asyncio
    async def test_send_before_diagnosis_is_invalid(self, flow, test_db, workshop):
        quote = await flow.claimed()

        with pytest.raises(InvalidTransition):
            await quote_service.send_quote(test_db, workshop.receptionist, quote.id)

    @pytest.mark.asyncio
    async def test_regenerate_bumps_version(self, flow, test_db, workshop):
        quote, old_token = await flow.sent()

        quote, new_token, _ = await quote_service.regenerate_public_link(test_db, workshop.receptionist, quote.id)

        assert quote.public_token_version == 2
        assert verify_quote_token(new_token).version == 2
        assert verify_quote_token(old_token).version == 1

    @pytest.mark.asyncio
    async def test_regenerate_needs_open_quote(self, flow, test_db, workshop):
        quote = await flow.priced()

        with pytest.raises(BusinessRuleError):
            await quote_service.regenerate_public_link(test_db, workshop.receptionist, quote.id)

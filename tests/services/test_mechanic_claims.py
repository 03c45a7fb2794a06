"""
Tests for mechanic claims, front-desk reassignment and quote visibility.
"""
import pytest

from app.exceptions import (
    AlreadyClaimed,
    FieldLocked,
    ForbiddenError,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from app.models.user import User
from app.services import mechanic_claims, quote_store

from tests.factories import InactiveMechanicFactory


class TestClaim:
    @pytest.mark.asyncio
    async def test_claim_assigns_caller_and_records_history(self, flow, test_db, workshop):
        quote = await flow.awaiting()

        claimed = await mechanic_claims.claim_quote(test_db, workshop.mechanic, quote.id)

        assert claimed.status == "awaiting_diagnosis"
        assert claimed.assigned_mechanic_id == workshop.mechanic.user_id
        assert claimed.assigned_at is not None

        history = await mechanic_claims.list_assignment_history(test_db, workshop.receptionist, quote.id)
        assert [(h.action, h.mechanic_id, h.performed_by) for h in history] == [
            ("claimed", workshop.mechanic.user_id, workshop.mechanic.user_id)
        ]

    @pytest.mark.asyncio
    async def test_reclaim_by_owner_is_noop(self, flow, test_db, workshop):
        quote = await flow.claimed()

        again = await mechanic_claims.claim_quote(test_db, workshop.mechanic, quote.id)

        assert again.assigned_mechanic_id == workshop.mechanic.user_id
        history = await mechanic_claims.list_assignment_history(test_db, workshop.receptionist, quote.id)
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_claim_of_held_quote_reports_owner(self, flow, test_db, workshop):
        quote = await flow.claimed()

        with pytest.raises(AlreadyClaimed) as exc_info:
            await mechanic_claims.claim_quote(test_db, workshop.other_mechanic, quote.id)

        assert exc_info.value.status_code == 412
        assert exc_info.value.owner_id == workshop.mechanic.user_id

    @pytest.mark.asyncio
    async def test_concurrent_claims_have_one_winner(self, flow, session_factory, workshop):
        quote = await flow.awaiting()

        async with session_factory() as db_a, session_factory() as db_b:
            # B reads the quote while it is still unassigned
            stale = await quote_store.get_quote(db_b, workshop.tenant_id, quote.id)
            assert stale.assigned_mechanic_id is None

            won = await mechanic_claims.claim_quote(db_a, workshop.mechanic, quote.id)
            assert won.assigned_mechanic_id == workshop.mechanic.user_id

            with pytest.raises(AlreadyClaimed) as exc_info:
                await mechanic_claims.claim_quote(db_b, workshop.other_mechanic, quote.id)
            assert exc_info.value.owner_id == workshop.mechanic.user_id

            history = await mechanic_claims.list_assignment_history(db_a, workshop.receptionist, quote.id)
            assert len(history) == 1

    @pytest.mark.asyncio
    async def test_claim_requires_awaiting_diagnosis(self, flow, test_db, workshop):
        quote = await flow.draft()

        with pytest.raises(InvalidTransition) as exc_info:
            await mechanic_claims.claim_quote(test_db, workshop.mechanic, quote.id)
        assert exc_info.value.status_code == 409
        assert exc_info.value.context == {"current_status": "draft", "attempted_status": "awaiting_diagnosis"}

    @pytest.mark.asyncio
    async def test_claim_after_diagnosis_is_invalid(self, flow, test_db, workshop):
        quote = await flow.diagnosed()

        with pytest.raises(InvalidTransition):
            await mechanic_claims.claim_quote(test_db, workshop.other_mechanic, quote.id)

    @pytest.mark.asyncio
    async def test_receptionist_cannot_claim(self, flow, test_db, workshop):
        quote = await flow.awaiting()

        with pytest.raises(ForbiddenError):
            await mechanic_claims.claim_quote(test_db, workshop.receptionist, quote.id)

    @pytest.mark.asyncio
    async def test_claim_unknown_quote(self, test_db, workshop):
        with pytest.raises(NotFoundError):
            await mechanic_claims.claim_quote(test_db, workshop.mechanic, "missing")


class TestReassign:
    @pytest.mark.asyncio
    async def test_reassign_to_other_mechanic(self, flow, test_db, workshop):
        quote = await flow.claimed()

        moved = await mechanic_claims.reassign_mechanic(
            test_db, workshop.receptionist, quote.id, workshop.other_mechanic.user_id, "Mecânico de folga"
        )

        assert moved.assigned_mechanic_id == workshop.other_mechanic.user_id
        history = await mechanic_claims.list_assignment_history(test_db, workshop.receptionist, quote.id)
        last = history[-1]
        assert last.action == "reassigned"
        assert last.previous_mechanic_id == workshop.mechanic.user_id
        assert last.performed_by == workshop.receptionist.user_id
        assert last.reason == "Mecânico de folga"

    @pytest.mark.asyncio
    async def test_release_returns_quote_to_pool(self, flow, test_db, workshop):
        quote = await flow.claimed()

        released = await mechanic_claims.reassign_mechanic(test_db, workshop.receptionist, quote.id, None)

        assert released.assigned_mechanic_id is None
        assert released.assigned_at is None
        history = await mechanic_claims.list_assignment_history(test_db, workshop.receptionist, quote.id)
        assert history[-1].action == "released"

        # Anyone can claim it again
        claimed = await mechanic_claims.claim_quote(test_db, workshop.other_mechanic, quote.id)
        assert claimed.assigned_mechanic_id == workshop.other_mechanic.user_id

    @pytest.mark.asyncio
    async def test_reassign_to_inactive_mechanic_rejected(self, flow, test_db, workshop):
        inactive = InactiveMechanicFactory(tenant_id=workshop.tenant_id)
        test_db.add(User(**inactive))
        await test_db.commit()
        quote = await flow.awaiting()

        with pytest.raises(ValidationError):
            await mechanic_claims.reassign_mechanic(test_db, workshop.receptionist, quote.id, inactive["id"])

    @pytest.mark.asyncio
    async def test_reassign_to_receptionist_rejected(self, flow, test_db, workshop):
        quote = await flow.awaiting()

        with pytest.raises(ValidationError):
            await mechanic_claims.reassign_mechanic(
                test_db, workshop.receptionist, quote.id, workshop.receptionist.user_id
            )

    @pytest.mark.asyncio
    async def test_reassign_after_diagnosis_is_locked(self, flow, test_db, workshop):
        quote = await flow.diagnosed()

        with pytest.raises(FieldLocked):
            await mechanic_claims.reassign_mechanic(
                test_db, workshop.receptionist, quote.id, workshop.other_mechanic.user_id
            )

    @pytest.mark.asyncio
    async def test_mechanic_cannot_reassign(self, flow, test_db, workshop):
        quote = await flow.claimed()

        with pytest.raises(ForbiddenError):
            await mechanic_claims.reassign_mechanic(
                test_db, workshop.mechanic, quote.id, workshop.other_mechanic.user_id
            )


class TestVisibility:
    @pytest.mark.asyncio
    async def test_other_mechanic_cannot_see_held_quote(self, flow, test_db, workshop):
        quote = await flow.claimed()

        with pytest.raises(NotFoundError):
            await quote_store.get_visible_quote(test_db, workshop.other_mechanic, quote.id)

        assert (await quote_store.get_visible_quote(test_db, workshop.mechanic, quote.id)).id == quote.id
        assert (await quote_store.get_visible_quote(test_db, workshop.receptionist, quote.id)).id == quote.id

    @pytest.mark.asyncio
    async def test_mechanic_list_shows_pool_and_own(self, flow, test_db, workshop):
        pooled = await flow.awaiting()
        held = await flow.claimed()

        mine, total = await quote_store.list_quotes(test_db, workshop.mechanic)
        assert total == 2
        assert {q.id for q in mine} == {pooled.id, held.id}

        theirs, total = await quote_store.list_quotes(test_db, workshop.other_mechanic)
        assert total == 1
        assert [q.id for q in theirs] == [pooled.id]

        unassigned, _ = await quote_store.list_quotes(test_db, workshop.receptionist, unassigned=True)
        assert [q.id for q in unassigned] == [pooled.id]

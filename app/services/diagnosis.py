"""Diagnosis gate.

Only the mechanic holding the quote can record its diagnosis, and doing so
is what unlocks pricing. The diagnosis fields and the move to DIAGNOSED are
written by one UPDATE conditioned on both the status and the assignee.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidTransition, NotAssigned, NotOwner
from app.models.quote import Quote, QuoteStatus
from app.schemas.quote import DiagnosisCreate
from app.security.rbac import Caller, Permission, ensure_permission
from app.services import quote_store
from app.services.quote_workflow import QuoteTransition
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


def _check_owner(quote: Quote, caller: Caller) -> None:
    if quote.status != QuoteStatus.AWAITING_DIAGNOSIS.value:
        raise InvalidTransition(quote.status, QuoteStatus.DIAGNOSED)
    if quote.assigned_mechanic_id is None:
        raise NotAssigned(quote.number)
    if quote.assigned_mechanic_id != caller.user_id:
        raise NotOwner(quote.number, quote.assigned_mechanic_id)


async def record_diagnosis(db: AsyncSession, caller: Caller, quote_id: str, data: DiagnosisCreate) -> Quote:
    """Write the mechanic's findings and move the quote to DIAGNOSED."""
    ensure_permission(caller, Permission.DIAGNOSE_QUOTE)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)
    _check_owner(quote, caller)

    values = {
        "identified_problem_category": getattr(
            data.identified_problem_category, "value", data.identified_problem_category
        ),
        "identified_problem_description": data.identified_problem_description,
        "identified_problem_id": data.identified_problem_id,
        "recommendations": data.recommendations,
        "diagnostic_notes": data.diagnostic_notes,
        "inspection_notes": data.inspection_notes,
        "estimated_hours": data.estimated_hours,
        "diagnosed_at": utcnow(),
    }
    changed = await quote_store.apply_transition(
        db,
        quote,
        QuoteTransition.RECORD_DIAGNOSIS,
        values,
        Quote.assigned_mechanic_id == caller.user_id,
    )
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        _check_owner(quote, caller)
        raise InvalidTransition(quote.status, QuoteStatus.DIAGNOSED)

    await db.commit()
    await quote_store.reload(db, quote)
    logger.info(
        f"Quote {quote.number} diagnosed by mechanic {caller.user_id}",
        extra={"quote_id": quote.id, "tenant_id": caller.tenant_id},
    )
    return quote

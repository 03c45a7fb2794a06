"""Mechanic claim coordination.

A quote waiting for diagnosis belongs to nobody until one mechanic claims
it. The claim is a single UPDATE guarded by `assigned_mechanic_id IS NULL`,
so when two mechanics press "claim" at once exactly one row update wins and
the other gets AlreadyClaimed with the winner's id. Claims never time out;
front-desk staff can reassign or release a quote instead.
"""

from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import AlreadyClaimed, ConflictError, FieldLocked, InvalidTransition
from app.models.quote import Quote, QuoteAssignmentHistory, QuoteStatus
from app.security.rbac import Caller, Permission, ensure_permission
from app.services import directory, quote_store
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

REASSIGNABLE_STATUSES = (QuoteStatus.DRAFT, QuoteStatus.AWAITING_DIAGNOSIS)


def _history(quote: Quote, action: str, mechanic_id: Optional[str], previous: Optional[str],
             performed_by: str, reason: Optional[str] = None) -> QuoteAssignmentHistory:
    return QuoteAssignmentHistory(
        quote_id=quote.id,
        mechanic_id=mechanic_id,
        previous_mechanic_id=previous,
        action=action,
        performed_by=performed_by,
        reason=reason,
        created_at=utcnow(),
    )


async def claim_quote(db: AsyncSession, caller: Caller, quote_id: str) -> Quote:
    """Assign an AWAITING_DIAGNOSIS quote to the calling mechanic.

    Claiming a quote you already hold is a no-op.
    """
    ensure_permission(caller, Permission.CLAIM_QUOTE)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)

    if quote.status != QuoteStatus.AWAITING_DIAGNOSIS.value:
        raise InvalidTransition(quote.status, QuoteStatus.AWAITING_DIAGNOSIS)
    if quote.assigned_mechanic_id == caller.user_id:
        return quote
    if quote.assigned_mechanic_id is not None:
        raise AlreadyClaimed(quote.number, quote.assigned_mechanic_id)

    changed = await quote_store.conditional_update(
        db,
        quote,
        {"assigned_mechanic_id": caller.user_id, "assigned_at": utcnow()},
        Quote.status == QuoteStatus.AWAITING_DIAGNOSIS.value,
        Quote.assigned_mechanic_id.is_(None),
    )
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        if quote.status != QuoteStatus.AWAITING_DIAGNOSIS.value:
            raise InvalidTransition(quote.status, QuoteStatus.AWAITING_DIAGNOSIS)
        if quote.assigned_mechanic_id == caller.user_id:
            return quote
        logger.info(
            f"Claim of {quote.number} by {caller.user_id} lost to {quote.assigned_mechanic_id}",
            extra={"quote_id": quote.id, "tenant_id": caller.tenant_id},
        )
        raise AlreadyClaimed(quote.number, quote.assigned_mechanic_id)

    db.add(_history(quote, "claimed", caller.user_id, None, caller.user_id))
    await db.commit()
    await quote_store.reload(db, quote)
    logger.info(
        f"Quote {quote.number} claimed by mechanic {caller.user_id}",
        extra={"quote_id": quote.id, "tenant_id": caller.tenant_id},
    )
    return quote


async def reassign_mechanic(
    db: AsyncSession,
    caller: Caller,
    quote_id: str,
    mechanic_id: Optional[str],
    reason: Optional[str] = None,
) -> Quote:
    """Front-desk override: hand the quote to another mechanic, or release it (mechanic_id=None)."""
    ensure_permission(caller, Permission.ASSIGN_MECHANIC)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)

    if quote.status not in [s.value for s in REASSIGNABLE_STATUSES]:
        raise FieldLocked("assigned_mechanic_id", REASSIGNABLE_STATUSES, quote.status)
    if mechanic_id:
        await directory.get_active_mechanic(db, caller.tenant_id, mechanic_id)

    previous = quote.assigned_mechanic_id
    if previous == mechanic_id:
        return quote

    previous_clause = (
        Quote.assigned_mechanic_id.is_(None) if previous is None else Quote.assigned_mechanic_id == previous
    )
    changed = await quote_store.conditional_update(
        db,
        quote,
        {"assigned_mechanic_id": mechanic_id, "assigned_at": utcnow() if mechanic_id else None},
        Quote.status.in_([s.value for s in REASSIGNABLE_STATUSES]),
        previous_clause,
    )
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        raise ConflictError(f"Assignment of quote {quote.number} changed meanwhile, please reload")

    action = "reassigned" if mechanic_id else "released"
    db.add(_history(quote, action, mechanic_id, previous, caller.user_id, reason))
    await db.commit()
    await quote_store.reload(db, quote)
    logger.info(
        f"Quote {quote.number} {action} by {caller.user_id}: {previous} -> {mechanic_id}",
        extra={"quote_id": quote.id, "tenant_id": caller.tenant_id},
    )
    return quote


async def list_assignment_history(db: AsyncSession, caller: Caller, quote_id: str) -> List[QuoteAssignmentHistory]:
    ensure_permission(caller, Permission.ASSIGN_MECHANIC)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)
    result = await db.execute(
        select(QuoteAssignmentHistory)
        .where(QuoteAssignmentHistory.quote_id == quote.id)
        .order_by(QuoteAssignmentHistory.created_at)
    )
    return list(result.scalars().all())

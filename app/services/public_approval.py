"""Customer-facing quote link: view, approve, reject.

These operations are unauthenticated; the signed link token is the only
credential. Validity is checked lazily: the first request after
`valid_until` moves an open quote to EXPIRED, and an expired quote can no
longer be decided. Staff can record a decision signed at the counter
through `approve_manually`, which shares the acceptance path.
"""

from typing import Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import AlreadyDecided, InvalidOrExpiredToken, InvalidTransition, ValidationError
from app.models.quote import Quote, QuoteStatus
from app.schemas.quote import PublicQuoteItem, PublicQuoteView
from app.security.rbac import Caller, Permission, ensure_permission
from app.services import directory, quote_store, service_orders
from app.services.conversion import ConversionResult, convert_quote
from app.services.quote_tokens import verify_quote_token
from app.services.quote_workflow import OPEN_FOR_DECISION, QuoteTransition
from app.utils.dates import as_naive_utc, utcnow

logger = logging.getLogger(__name__)

CHANNEL_PUBLIC_LINK = "public_link"
CHANNEL_MANUAL = "manual"

DECIDED_STATUSES = {QuoteStatus.ACCEPTED.value, QuoteStatus.REJECTED.value, QuoteStatus.CONVERTED.value}
NOT_YET_SENT = {QuoteStatus.DRAFT.value, QuoteStatus.AWAITING_DIAGNOSIS.value, QuoteStatus.DIAGNOSED.value}


def _require_text(field: str, value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise ValidationError(
            f"{field} is required",
            errors=[{"field": field, "message": f"{field} must not be empty"}],
        )
    return value


async def _quote_for_token(db: AsyncSession, token: str) -> Quote:
    claims = verify_quote_token(token)
    result = await db.execute(
        select(Quote).where(Quote.id == claims.quote_id, Quote.tenant_id == claims.tenant_id)
    )
    quote = result.scalar_one_or_none()
    if quote is None or quote.public_token_version != claims.version:
        # Unknown quote or a link revoked by regeneration
        raise InvalidOrExpiredToken()
    if quote.status in NOT_YET_SENT:
        raise InvalidOrExpiredToken()
    return quote


def _past_validity(quote: Quote) -> bool:
    return quote.valid_until is not None and as_naive_utc(quote.valid_until) < utcnow()


async def _expire_if_due(db: AsyncSession, quote: Quote) -> bool:
    """Move an open quote past its validity to EXPIRED. True if the quote is expired."""
    if quote.status in [s.value for s in OPEN_FOR_DECISION] and _past_validity(quote):
        changed = await quote_store.apply_transition(db, quote, QuoteTransition.EXPIRE)
        if changed:
            await db.commit()
        else:
            await db.rollback()
        await quote_store.reload(db, quote)
    return quote.status == QuoteStatus.EXPIRED.value


async def _public_view(db: AsyncSession, quote: Quote) -> PublicQuoteView:
    customer = await directory.get_customer(db, quote.tenant_id, quote.customer_id)
    vehicle = await directory.get_vehicle(db, quote.tenant_id, quote.vehicle_id)
    description = " ".join(str(part) for part in (vehicle.make, vehicle.model, vehicle.year) if part)
    return PublicQuoteView(
        number=quote.number,
        status=quote.status,
        customer_name=customer.name,
        vehicle_description=description or None,
        vehicle_placa=vehicle.placa,
        reported_problem_description=quote.reported_problem_description,
        identified_problem_description=quote.identified_problem_description,
        recommendations=quote.recommendations,
        estimated_hours=quote.estimated_hours,
        items=[PublicQuoteItem.model_validate(item) for item in quote.items],
        labor_cost=quote.labor_cost,
        parts_cost=quote.parts_cost,
        discount=quote.discount,
        tax_amount=quote.tax_amount,
        total_cost=quote.total_cost,
        valid_until=quote.valid_until,
        sent_at=quote.sent_at,
        accepted_at=quote.accepted_at,
        rejected_at=quote.rejected_at,
    )


async def view_by_token(db: AsyncSession, token: str) -> PublicQuoteView:
    """Customer opens the link. The first view of a SENT quote marks it VIEWED."""
    quote = await _quote_for_token(db, token)

    if await _expire_if_due(db, quote):
        return PublicQuoteView(number=quote.number, status=QuoteStatus.EXPIRED.value, expired=True)

    if quote.status == QuoteStatus.SENT.value:
        changed = await quote_store.apply_transition(
            db, quote, QuoteTransition.VIEW, {"viewed_at": utcnow()}
        )
        if changed:
            await db.commit()
        else:
            # Another request recorded the first view
            await db.rollback()
        await quote_store.reload(db, quote)

    return await _public_view(db, quote)


async def _accept(
    db: AsyncSession,
    quote: Quote,
    signature: str,
    channel: str,
    performed_by: str,
    notes: Optional[str] = None,
) -> Tuple[Quote, ConversionResult]:
    """SENT/VIEWED -> ACCEPTED, then convert.

    An ACCEPTED quote whose conversion failed earlier is converted again
    instead of being reported as already decided.
    """
    if quote.status == QuoteStatus.ACCEPTED.value:
        existing = await service_orders.find_by_quote_id(db, quote.tenant_id, quote.id)
        if existing is None:
            logger.info(f"Resuming conversion of accepted quote {quote.number}")
            result = await convert_quote(db, quote.tenant_id, quote.id)
            return await quote_store.reload(db, quote), result
        raise AlreadyDecided(quote.number, quote.status)
    if quote.status in DECIDED_STATUSES:
        raise AlreadyDecided(quote.number, quote.status)

    if await _expire_if_due(db, quote):
        if channel == CHANNEL_PUBLIC_LINK:
            raise InvalidOrExpiredToken("This quote has expired", current_status=QuoteStatus.EXPIRED)
        raise InvalidTransition(QuoteStatus.EXPIRED, QuoteStatus.ACCEPTED)

    changed = await quote_store.apply_transition(
        db,
        quote,
        QuoteTransition.ACCEPT,
        {
            "accepted_at": utcnow(),
            "customer_signature": signature,
            "approval_channel": channel,
            "approval_notes": notes,
        },
    )
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        if quote.status in DECIDED_STATUSES:
            raise AlreadyDecided(quote.number, quote.status)
        raise InvalidTransition(quote.status, QuoteStatus.ACCEPTED)

    await db.commit()
    await quote_store.reload(db, quote)
    logger.info(
        f"Quote {quote.number} accepted via {channel} by {performed_by}",
        extra={"quote_id": quote.id, "tenant_id": quote.tenant_id},
    )

    result = await convert_quote(db, quote.tenant_id, quote.id)
    await quote_store.reload(db, quote)
    return quote, result


async def approve_by_token(db: AsyncSession, token: str, signature: str) -> Tuple[Quote, ConversionResult]:
    """Customer signs and approves through the link."""
    _require_text("signature", signature)
    quote = await _quote_for_token(db, token)
    return await _accept(db, quote, signature, CHANNEL_PUBLIC_LINK, performed_by="customer")


async def reject_by_token(db: AsyncSession, token: str, reason: str) -> Quote:
    """Customer declines the quote, stating why."""
    _require_text("reason", reason)
    quote = await _quote_for_token(db, token)

    if quote.status in DECIDED_STATUSES:
        raise AlreadyDecided(quote.number, quote.status)
    if await _expire_if_due(db, quote):
        raise InvalidOrExpiredToken("This quote has expired", current_status=QuoteStatus.EXPIRED)

    changed = await quote_store.apply_transition(
        db,
        quote,
        QuoteTransition.REJECT,
        {"rejected_at": utcnow(), "rejected_reason": reason.strip()},
    )
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        if quote.status in DECIDED_STATUSES:
            raise AlreadyDecided(quote.number, quote.status)
        raise InvalidTransition(quote.status, QuoteStatus.REJECTED)

    await db.commit()
    await quote_store.reload(db, quote)
    logger.info(
        f"Quote {quote.number} rejected by customer",
        extra={"quote_id": quote.id, "tenant_id": quote.tenant_id},
    )
    return quote


async def approve_manually(
    db: AsyncSession,
    caller: Caller,
    quote_id: str,
    signature: str,
    notes: Optional[str] = None,
) -> Tuple[Quote, ConversionResult]:
    """Record an approval signed on paper at the counter."""
    ensure_permission(caller, Permission.APPROVE_QUOTE)
    _require_text("signature", signature)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)
    if quote.status in NOT_YET_SENT:
        raise InvalidTransition(quote.status, QuoteStatus.ACCEPTED)
    return await _accept(db, quote, signature, CHANNEL_MANUAL, performed_by=caller.user_id, notes=notes)

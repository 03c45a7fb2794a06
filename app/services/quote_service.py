"""Staff-side quote operations: create, field-gated update, submit, send.

Each function takes the caller explicitly, re-checks the caller's
permission, and commits its own transaction.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Tuple
import logging

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import BusinessRuleError, ConflictError, InvalidTransition, ValidationError
from app.models.quote import Quote, QuoteItem, QuoteStatus, grand_total, money
from app.schemas.quote import QuoteCreate, QuoteItemCreate, QuoteUpdate
from app.security.rbac import Caller, Permission, ensure_permission
from app.services import directory, quote_store
from app.services.quote_store import QUOTE_NUMBER_PREFIX, format_number
from app.services.quote_tokens import create_quote_token
from app.services.quote_workflow import (
    OPEN_FOR_DECISION,
    PRICING_FIELDS,
    QuoteTransition,
    check_writable,
    next_status,
)
from app.utils.dates import as_naive_utc, utcnow

logger = logging.getLogger(__name__)

MONEY_FIELDS = ("labor_cost", "parts_cost", "discount", "tax_amount")


def _plain(value: Any) -> Any:
    """Enum members to their stored value."""
    return getattr(value, "value", value)


def build_items(quote_id: str, items: List[QuoteItemCreate]) -> List[QuoteItem]:
    """New QuoteItem rows with computed totals, in request order."""
    built = []
    for position, item in enumerate(items):
        unit_cost = money(item.unit_cost)
        built.append(
            QuoteItem(
                quote_id=quote_id,
                position=position,
                type=_plain(item.type),
                service_id=item.service_id,
                part_id=item.part_id,
                name=item.name,
                description=item.description,
                quantity=item.quantity,
                unit_cost=unit_cost,
                total_cost=money(Decimal(item.quantity) * unit_cost),
                hours=item.hours,
            )
        )
    return built


async def create_quote(db: AsyncSession, caller: Caller, data: QuoteCreate) -> Quote:
    """Create a DRAFT quote with the next ORC-nnn number of the tenant."""
    ensure_permission(caller, Permission.CREATE_QUOTE)

    await directory.ensure_customer_vehicle(db, caller.tenant_id, data.customer_id, data.vehicle_id)
    if data.elevator_id:
        await directory.get_elevator(db, caller.tenant_id, data.elevator_id)

    sequence = await quote_store.next_sequence(db, Quote, caller.tenant_id)
    quote = Quote(
        tenant_id=caller.tenant_id,
        sequence=sequence,
        number=format_number(QUOTE_NUMBER_PREFIX, sequence),
        status=QuoteStatus.DRAFT,
        customer_id=data.customer_id,
        vehicle_id=data.vehicle_id,
        elevator_id=data.elevator_id,
        reported_problem_category=_plain(data.reported_problem_category),
        reported_problem_description=data.reported_problem_description,
        reported_problem_symptoms=list(data.reported_problem_symptoms),
        valid_until=as_naive_utc(data.valid_until),
        labor_cost=Decimal("0.00"),
        parts_cost=Decimal("0.00"),
        discount=Decimal("0.00"),
        tax_amount=Decimal("0.00"),
        total_cost=Decimal("0.00"),
    )
    db.add(quote)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning(f"Quote number collision for tenant {caller.tenant_id} at sequence {sequence}")
        raise ConflictError("Another quote took this number at the same time, please retry")

    await db.refresh(quote)
    logger.info(
        f"Quote {quote.number} created by {caller.user_id}",
        extra={"quote_id": quote.id, "tenant_id": caller.tenant_id},
    )
    return quote


async def update_quote(db: AsyncSession, caller: Caller, quote_id: str, data: QuoteUpdate) -> Quote:
    """Apply a partial update, gated field by field on the quote's status."""
    ensure_permission(caller, Permission.EDIT_QUOTE)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)

    changes: Dict[str, Any] = data.model_dump(exclude_unset=True)
    if not changes:
        return quote
    check_writable(quote.status, changes.keys())

    for field in ("customer_id", "vehicle_id"):
        if field in changes and not changes[field]:
            raise ValidationError(f"{field} cannot be empty", errors=[{"field": field, "message": "required"}])

    if "customer_id" in changes or "vehicle_id" in changes:
        await directory.ensure_customer_vehicle(
            db,
            caller.tenant_id,
            changes.get("customer_id") or quote.customer_id,
            changes.get("vehicle_id") or quote.vehicle_id,
        )
    if changes.get("elevator_id"):
        await directory.get_elevator(db, caller.tenant_id, changes["elevator_id"])

    new_items = None
    if "items" in changes:
        new_items = build_items(quote.id, data.items or [])
        del changes["items"]

    values: Dict[str, Any] = {}
    for field, value in changes.items():
        if field in MONEY_FIELDS:
            values[field] = money(value)
        elif field == "reported_problem_symptoms":
            values[field] = list(value or [])
        elif field == "valid_until":
            values[field] = as_naive_utc(value)
        else:
            values[field] = _plain(value)

    if PRICING_FIELDS & (set(values) | ({"items"} if new_items is not None else set())):
        items_total = sum(
            (item.total_cost for item in (new_items if new_items is not None else quote.items)),
            Decimal("0"),
        )
        total = grand_total(
            items_total,
            values.get("labor_cost", quote.labor_cost),
            values.get("parts_cost", quote.parts_cost),
            values.get("discount", quote.discount),
            values.get("tax_amount", quote.tax_amount),
        )
        if total < 0:
            raise BusinessRuleError("Discount cannot be greater than the quote total")
        values["total_cost"] = total

    if values:
        changed = await quote_store.conditional_update(db, quote, values, Quote.status == quote.status)
    else:
        changed = True
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        check_writable(quote.status, data.model_dump(exclude_unset=True).keys())
        raise ConflictError(f"Quote {quote.number} was changed by someone else, please retry")

    if new_items is not None:
        await db.execute(delete(QuoteItem).where(QuoteItem.quote_id == quote.id))
        db.add_all(new_items)

    await db.commit()
    await quote_store.reload(db, quote)
    logger.info(
        f"Quote {quote.number} updated by {caller.user_id}: {sorted(data.model_dump(exclude_unset=True))}",
        extra={"quote_id": quote.id, "tenant_id": caller.tenant_id},
    )
    return quote


async def submit_for_diagnosis(db: AsyncSession, caller: Caller, quote_id: str) -> Quote:
    """DRAFT -> AWAITING_DIAGNOSIS; the quote enters the mechanics' claim pool."""
    ensure_permission(caller, Permission.SUBMIT_QUOTE)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)
    next_status(quote.status, QuoteTransition.SUBMIT_FOR_DIAGNOSIS)

    if not quote.customer_id or not quote.vehicle_id:
        raise BusinessRuleError("Quote needs a customer and a vehicle before diagnosis")
    if not quote.reported_problem_category and not quote.reported_problem_symptoms:
        raise BusinessRuleError("Report a problem category or at least one symptom before diagnosis")

    changed = await quote_store.apply_transition(db, quote, QuoteTransition.SUBMIT_FOR_DIAGNOSIS)
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        raise InvalidTransition(quote.status, QuoteStatus.AWAITING_DIAGNOSIS)

    await db.commit()
    return await quote_store.reload(db, quote)


async def send_quote(db: AsyncSession, caller: Caller, quote_id: str) -> Tuple[Quote, str, Any]:
    """DIAGNOSED -> SENT and issue the customer link.

    Returns (quote, token, link_expires_at).
    """
    ensure_permission(caller, Permission.SEND_QUOTE)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)
    next_status(quote.status, QuoteTransition.SEND)

    if not quote.items:
        raise BusinessRuleError(f"Quote {quote.number} needs at least one item before it can be sent")

    now = utcnow()
    valid_until = quote.valid_until or now + timedelta(days=settings.QUOTE_DEFAULT_VALIDITY_DAYS)
    if as_naive_utc(valid_until) <= now:
        raise BusinessRuleError("valid_until must be in the future to send the quote")

    changed = await quote_store.apply_transition(
        db, quote, QuoteTransition.SEND, {"sent_at": now, "valid_until": valid_until}
    )
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        raise InvalidTransition(quote.status, QuoteStatus.SENT)

    await db.commit()
    await quote_store.reload(db, quote)
    token, expires_at = create_quote_token(quote)
    logger.info(
        f"Quote {quote.number} sent by {caller.user_id}, link valid until {expires_at.isoformat()}",
        extra={"quote_id": quote.id, "tenant_id": caller.tenant_id},
    )
    return quote, token, expires_at


async def regenerate_public_link(db: AsyncSession, caller: Caller, quote_id: str) -> Tuple[Quote, str, Any]:
    """Revoke earlier customer links and issue a new one."""
    ensure_permission(caller, Permission.SEND_QUOTE)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)
    if quote.status_enum not in OPEN_FOR_DECISION:
        raise BusinessRuleError(f"Quote {quote.number} is {quote.status} and has no active customer link")

    version = quote.public_token_version
    changed = await quote_store.conditional_update(
        db,
        quote,
        {"public_token_version": version + 1},
        Quote.status.in_([s.value for s in OPEN_FOR_DECISION]),
        Quote.public_token_version == version,
    )
    if not changed:
        await db.rollback()
        await quote_store.reload(db, quote)
        raise ConflictError(f"Quote {quote.number} changed while regenerating its link, please retry")

    await db.commit()
    await quote_store.reload(db, quote)
    token, expires_at = create_quote_token(quote)
    logger.info(
        f"Quote {quote.number} link regenerated by {caller.user_id} (version {quote.public_token_version})",
        extra={"quote_id": quote.id, "tenant_id": caller.tenant_id},
    )
    return quote, token, expires_at

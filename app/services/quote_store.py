"""Quote record store.

Reads are tenant-scoped; mechanics only see unassigned quotes and their
own. Every write to an existing quote goes through `conditional_update`,
a single UPDATE guarded by the values the caller expects to find, so
concurrent requests are resolved by the database instead of by
read-then-write checks in Python.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models.quote import Quote
from app.security.rbac import Caller
from app.services.quote_workflow import QuoteTransition, next_status, sources_for
from app.utils.dates import as_naive_utc

logger = logging.getLogger(__name__)

QUOTE_NUMBER_PREFIX = "ORC"


def format_number(prefix: str, sequence: int) -> str:
    """ORC-001, ORC-002, ... (grows past three digits as needed)."""
    return f"{prefix}-{sequence:03d}"


async def next_sequence(db: AsyncSession, model, tenant_id: str) -> int:
    """Next per-tenant sequence for `model` (Quote or ServiceOrder).

    Two concurrent creators can compute the same value; the
    (tenant_id, sequence) unique constraint rejects the second insert.
    """
    result = await db.execute(
        select(func.coalesce(func.max(model.sequence), 0)).where(model.tenant_id == tenant_id)
    )
    return int(result.scalar_one()) + 1


def visibility_clause(caller: Caller):
    """Extra WHERE clause for what the caller may see, or None for staff."""
    if caller.is_mechanic:
        return or_(Quote.assigned_mechanic_id.is_(None), Quote.assigned_mechanic_id == caller.user_id)
    return None


def is_visible(quote: Quote, caller: Caller) -> bool:
    if not caller.is_mechanic:
        return True
    return quote.assigned_mechanic_id in (None, caller.user_id)


async def get_quote(db: AsyncSession, tenant_id: str, quote_id: str) -> Quote:
    """Load a quote of the tenant or raise NotFoundError."""
    result = await db.execute(select(Quote).where(Quote.id == quote_id, Quote.tenant_id == tenant_id))
    quote = result.scalar_one_or_none()
    if quote is None:
        raise NotFoundError("Quote", quote_id)
    return quote


async def get_visible_quote(db: AsyncSession, caller: Caller, quote_id: str) -> Quote:
    """Like get_quote, but another mechanic's quote is reported as not found."""
    quote = await get_quote(db, caller.tenant_id, quote_id)
    if not is_visible(quote, caller):
        raise NotFoundError("Quote", quote_id)
    return quote


async def list_quotes(
    db: AsyncSession,
    caller: Caller,
    *,
    number: Optional[str] = None,
    status: Optional[str] = None,
    customer_id: Optional[str] = None,
    vehicle_id: Optional[str] = None,
    elevator_id: Optional[str] = None,
    assigned_mechanic_id: Optional[str] = None,
    unassigned: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Quote], int]:
    """Filtered, paginated quotes visible to the caller, newest first."""
    conditions = [Quote.tenant_id == caller.tenant_id]

    visible = visibility_clause(caller)
    if visible is not None:
        conditions.append(visible)
    if number:
        conditions.append(Quote.number.ilike(f"%{number}%"))
    if status:
        conditions.append(Quote.status == status)
    if customer_id:
        conditions.append(Quote.customer_id == customer_id)
    if vehicle_id:
        conditions.append(Quote.vehicle_id == vehicle_id)
    if elevator_id:
        conditions.append(Quote.elevator_id == elevator_id)
    if assigned_mechanic_id:
        conditions.append(Quote.assigned_mechanic_id == assigned_mechanic_id)
    if unassigned:
        conditions.append(Quote.assigned_mechanic_id.is_(None))
    if start_date:
        conditions.append(Quote.created_at >= as_naive_utc(start_date))
    if end_date:
        conditions.append(Quote.created_at <= as_naive_utc(end_date))

    count_result = await db.execute(select(func.count()).select_from(Quote).where(*conditions))
    total = count_result.scalar_one()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Quote)
        .where(*conditions)
        .order_by(Quote.sequence.desc())
        .offset(offset)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def conditional_update(db: AsyncSession, quote: Quote, values: Dict[str, Any], *conditions) -> bool:
    """UPDATE the quote's row only if `conditions` still hold.

    Returns True when exactly one row changed. The in-memory `quote` is not
    touched; call `reload` after committing.
    """
    stmt = (
        update(Quote)
        .where(Quote.id == quote.id, Quote.tenant_id == quote.tenant_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def apply_transition(
    db: AsyncSession,
    quote: Quote,
    transition: QuoteTransition,
    values: Optional[Dict[str, Any]] = None,
    *conditions,
) -> bool:
    """Move the quote along `transition`, writing `values` in the same UPDATE.

    Raises InvalidTransition when the loaded status cannot take the
    transition; returns False when the row changed underneath us.
    """
    target = next_status(quote.status, transition)
    sources = [s.value for s in sources_for(transition)]
    changed = await conditional_update(
        db,
        quote,
        {"status": target.value, **(values or {})},
        Quote.status.in_(sources),
        *conditions,
    )
    if changed:
        logger.info(
            f"Quote {quote.number} {quote.status} -> {target.value}",
            extra={"quote_id": quote.id, "tenant_id": quote.tenant_id, "transition": transition.value},
        )
    return changed


async def reload(db: AsyncSession, quote: Quote) -> Quote:
    """Refresh the quote (and its items) from the database."""
    await db.refresh(quote)
    return quote

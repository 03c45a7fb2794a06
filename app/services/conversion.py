"""Conversion of an accepted quote into a service order.

The service order insert and the ACCEPTED -> CONVERTED update commit in one
transaction. `service_orders.quote_id` is unique, so when two requests
convert the same quote at once the database keeps one order and the loser
returns it. Running the conversion again for a converted quote is a no-op
that returns the existing order.
"""

from dataclasses import dataclass
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.sentry import capture_exception
from app.exceptions import ConversionFailed, CRMException
from app.models.quote import QuoteStatus
from app.models.service_order import ServiceOrder
from app.services import directory, quote_store, service_orders
from app.services.quote_workflow import QuoteTransition, next_status
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

# Attempts when two orders of the tenant race for the same OS number
MAX_NUMBER_ATTEMPTS = 3


@dataclass
class ConversionResult:
    service_order: ServiceOrder
    created: bool


class _ConversionRaced(Exception):
    """The quote left ACCEPTED between our read and our update."""


async def _link_existing(db: AsyncSession, quote, order: ServiceOrder) -> None:
    """Finish a quote still ACCEPTED although its service order exists."""
    if quote.status != QuoteStatus.ACCEPTED.value:
        return
    changed = await quote_store.apply_transition(
        db,
        quote,
        QuoteTransition.CONVERT,
        {"service_order_id": order.id, "converted_at": utcnow()},
    )
    if changed:
        await db.commit()
        logger.info(f"Quote {quote.number} linked to existing service order {order.number}")
    else:
        await db.rollback()
    await quote_store.reload(db, quote)


async def convert_quote(db: AsyncSession, tenant_id: str, quote_id: str) -> ConversionResult:
    """Create the service order for an ACCEPTED quote, exactly once.

    Raises InvalidTransition when the quote is not ACCEPTED (and has no order
    yet) and ConversionFailed on unexpected errors, leaving it ACCEPTED.
    """
    quote = await quote_store.get_quote(db, tenant_id, quote_id)
    number = quote.number

    existing = await service_orders.find_by_quote_id(db, tenant_id, quote.id)
    if existing is not None:
        await _link_existing(db, quote, existing)
        return ConversionResult(service_order=existing, created=False)

    next_status(quote.status, QuoteTransition.CONVERT)

    for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
        try:
            vehicle = await directory.get_vehicle(db, tenant_id, quote.vehicle_id)
            sequence = await quote_store.next_sequence(db, ServiceOrder, tenant_id)
            order = service_orders.build_from_quote(quote, vehicle, sequence)
            db.add(order)
            await db.flush()

            changed = await quote_store.apply_transition(
                db,
                quote,
                QuoteTransition.CONVERT,
                {"service_order_id": order.id, "converted_at": utcnow()},
            )
            if not changed:
                raise _ConversionRaced()
            await db.commit()
        except (IntegrityError, _ConversionRaced):
            await db.rollback()
            existing = await service_orders.find_by_quote_id(db, tenant_id, quote_id)
            if existing is not None:
                await quote_store.reload(db, quote)
                await _link_existing(db, quote, existing)
                logger.info(f"Quote {number} was converted concurrently into {existing.number}")
                return ConversionResult(service_order=existing, created=False)
            await quote_store.reload(db, quote)
            next_status(quote.status, QuoteTransition.CONVERT)
            logger.warning(f"Service order number collision converting {number} (attempt {attempt})")
            continue
        except CRMException:
            await db.rollback()
            raise
        except Exception as exc:
            await db.rollback()
            logger.error(f"Conversion of quote {number} failed: {exc}", exc_info=True)
            capture_exception(exc, {"quote_id": quote_id, "tenant_id": tenant_id, "quote_number": number})
            raise ConversionFailed(number)

        await db.refresh(order)
        await quote_store.reload(db, quote)
        logger.info(
            f"Quote {number} converted into service order {order.number}",
            extra={"quote_id": quote_id, "tenant_id": tenant_id, "service_order_id": order.id},
        )
        return ConversionResult(service_order=order, created=True)

    capture_exception(
        RuntimeError(f"Could not allocate a service order number for quote {number}"),
        {"quote_id": quote_id, "tenant_id": tenant_id},
    )
    raise ConversionFailed(number)

"""
Public API - Customer quote link

Unauthenticated endpoints behind the link sent to the customer. The signed
token in the link is the only credential; it is never logged.
"""

import logging

from fastapi import APIRouter, Query

from app.api.deps import DbSession
from app.schemas.quote import (
    PublicApproveRequest,
    PublicDecisionResponse,
    PublicQuoteView,
    PublicRejectRequest,
)
from app.services import public_approval

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes/view", tags=["Public API - Quotes"])


@router.get("", response_model=PublicQuoteView)
async def view_quote(db: DbSession, token: str = Query(..., min_length=1)):
    """Show the quote to the customer. The first view is recorded."""
    return await public_approval.view_by_token(db, token)


@router.post("/approve", response_model=PublicDecisionResponse)
async def approve_quote(body: PublicApproveRequest, db: DbSession):
    """Customer signs and approves; a service order is created."""
    quote, result = await public_approval.approve_by_token(db, body.token, body.signature)
    return PublicDecisionResponse(
        number=quote.number,
        status=quote.status,
        service_order_number=result.service_order.number,
        message="Quote approved. The workshop will contact you to schedule the service.",
    )


@router.post("/reject", response_model=PublicDecisionResponse)
async def reject_quote(body: PublicRejectRequest, db: DbSession):
    quote = await public_approval.reject_by_token(db, body.token, body.reason)
    return PublicDecisionResponse(
        number=quote.number,
        status=quote.status,
        message="Quote rejected. Thank you for your feedback.",
    )

"""
Quotes API - Quote lifecycle for the workshop staff.

Draft -> awaiting diagnosis -> (mechanic claim) -> diagnosed -> sent to the
customer -> accepted/rejected/expired -> converted into a service order.
"""
from fastapi import APIRouter, Depends, Query, Response, status
from typing import Annotated, List, Optional
from datetime import datetime

from app.api.deps import DbSession, CurrentCaller, require_permission
from app.models.quote import QuoteStatus
from app.schemas.quote import (
    ApprovalResponse,
    AssignMechanicRequest,
    AssignmentHistoryResponse,
    DiagnosisCreate,
    ManualApprovalRequest,
    QuoteCreate,
    QuoteListResponse,
    QuoteResponse,
    QuoteSendResponse,
    QuoteUpdate,
)
from app.security.rbac import Caller, Permission, ensure_permission
from app.services import (
    conversion,
    diagnosis,
    mechanic_claims,
    public_approval,
    quote_pdf,
    quote_service,
    quote_store,
)
from app.services.quote_tokens import public_link

router = APIRouter()


def _send_response(quote, token: str, expires_at: datetime) -> QuoteSendResponse:
    return QuoteSendResponse(
        quote=QuoteResponse.model_validate(quote),
        public_token=token,
        public_url=public_link(token),
        link_expires_at=expires_at,
    )


@router.get("/", response_model=QuoteListResponse)
async def list_quotes(
    db: DbSession,
    caller: Annotated[Caller, Depends(require_permission(Permission.VIEW_QUOTES))],
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    number: Optional[str] = None,
    status: Optional[QuoteStatus] = None,
    customer_id: Optional[str] = None,
    vehicle_id: Optional[str] = None,
    elevator_id: Optional[str] = None,
    assigned_mechanic_id: Optional[str] = None,
    unassigned: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """List quotes with pagination and filtering. Mechanics see unassigned quotes and their own."""
    quotes, total = await quote_store.list_quotes(
        db,
        caller,
        number=number,
        status=status.value if status else None,
        customer_id=customer_id,
        vehicle_id=vehicle_id,
        elevator_id=elevator_id,
        assigned_mechanic_id=assigned_mechanic_id,
        unassigned=unassigned,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return QuoteListResponse(items=quotes, total=total, page=page, page_size=page_size)


@router.get("/{quote_id}", response_model=QuoteResponse)
async def get_quote(
    quote_id: str,
    db: DbSession,
    caller: Annotated[Caller, Depends(require_permission(Permission.VIEW_QUOTES))],
):
    """Get a single quote by ID."""
    return await quote_store.get_visible_quote(db, caller, quote_id)


@router.get(
    "/{quote_id}/pdf",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
async def quote_pdf_document(
    quote_id: str,
    db: DbSession,
    caller: Annotated[Caller, Depends(require_permission(Permission.VIEW_QUOTES))],
):
    """Printable quote with items, totals, notes and the customer's signature."""
    filename, pdf_bytes = await quote_pdf.build_quote_pdf(db, caller, quote_id)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.post("/", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
async def create_quote(
    quote_data: QuoteCreate,
    db: DbSession,
    caller: CurrentCaller,
):
    """Create a new DRAFT quote."""
    return await quote_service.create_quote(db, caller, quote_data)


@router.patch("/{quote_id}", response_model=QuoteResponse)
async def update_quote(
    quote_id: str,
    quote_data: QuoteUpdate,
    db: DbSession,
    caller: CurrentCaller,
):
    """Update a quote. Each field is only writable in some statuses (423 otherwise)."""
    return await quote_service.update_quote(db, caller, quote_id, quote_data)


@router.post("/{quote_id}/submit-for-diagnosis", response_model=QuoteResponse)
async def submit_for_diagnosis(quote_id: str, db: DbSession, caller: CurrentCaller):
    return await quote_service.submit_for_diagnosis(db, caller, quote_id)


@router.post("/{quote_id}/claim", response_model=QuoteResponse)
async def claim_quote(quote_id: str, db: DbSession, caller: CurrentCaller):
    """Mechanic takes an unassigned quote for diagnosis (412 if someone was faster)."""
    return await mechanic_claims.claim_quote(db, caller, quote_id)


@router.post("/{quote_id}/assign-mechanic", response_model=QuoteResponse)
async def assign_mechanic(
    quote_id: str,
    body: AssignMechanicRequest,
    db: DbSession,
    caller: CurrentCaller,
):
    """Reassign the quote to another mechanic, or release it with mechanic_id=null."""
    return await mechanic_claims.reassign_mechanic(db, caller, quote_id, body.mechanic_id, body.reason)


@router.get("/{quote_id}/assignment-history", response_model=List[AssignmentHistoryResponse])
async def assignment_history(quote_id: str, db: DbSession, caller: CurrentCaller):
    return await mechanic_claims.list_assignment_history(db, caller, quote_id)


@router.post("/{quote_id}/diagnose", response_model=QuoteResponse)
async def diagnose_quote(
    quote_id: str,
    body: DiagnosisCreate,
    db: DbSession,
    caller: CurrentCaller,
):
    """Record the diagnosis; only the mechanic holding the quote may do this."""
    return await diagnosis.record_diagnosis(db, caller, quote_id, body)


@router.post("/{quote_id}/send", response_model=QuoteSendResponse)
async def send_quote(quote_id: str, db: DbSession, caller: CurrentCaller):
    """Send the priced quote and return the customer link."""
    quote, token, expires_at = await quote_service.send_quote(db, caller, quote_id)
    return _send_response(quote, token, expires_at)


@router.post("/{quote_id}/regenerate-link", response_model=QuoteSendResponse)
async def regenerate_link(quote_id: str, db: DbSession, caller: CurrentCaller):
    """Issue a new customer link; earlier links stop working."""
    quote, token, expires_at = await quote_service.regenerate_public_link(db, caller, quote_id)
    return _send_response(quote, token, expires_at)


@router.post("/{quote_id}/approve-manually", response_model=ApprovalResponse)
async def approve_manually(
    quote_id: str,
    body: ManualApprovalRequest,
    db: DbSession,
    caller: CurrentCaller,
):
    """Record a customer approval signed at the counter and create the service order."""
    quote, result = await public_approval.approve_manually(db, caller, quote_id, body.signature, body.notes)
    return ApprovalResponse(quote=quote, service_order=result.service_order, created=result.created)


@router.post("/{quote_id}/convert", response_model=ApprovalResponse)
async def convert_quote(quote_id: str, db: DbSession, caller: CurrentCaller):
    """Create the service order of an accepted quote. Safe to repeat."""
    ensure_permission(caller, Permission.CONVERT_QUOTE)
    result = await conversion.convert_quote(db, caller.tenant_id, quote_id)
    quote = await quote_store.get_quote(db, caller.tenant_id, quote_id)
    return ApprovalResponse(quote=quote, service_order=result.service_order, created=result.created)

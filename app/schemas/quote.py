"""
Pydantic schemas for the Quote workflow endpoints.

Update and diagnosis payloads are separate on purpose: diagnosis fields can
only be written through POST /quotes/{id}/diagnose, and `status` is never
accepted from a client (QuoteUpdate forbids unknown keys).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.quote import ProblemCategory, QuoteItemType
from app.schemas.service_order import ServiceOrderResponse


# ===== LINE ITEMS =====


class QuoteItemCreate(BaseModel):
    """Line item as sent by the client. total_cost is always computed."""

    type: QuoteItemType
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    service_id: Optional[str] = None
    part_id: Optional[str] = None
    quantity: int = Field(1, ge=1)
    unit_cost: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    hours: Optional[float] = Field(None, ge=0)


class QuoteItemResponse(BaseModel):
    id: str
    type: str
    name: str
    description: Optional[str] = None
    service_id: Optional[str] = None
    part_id: Optional[str] = None
    quantity: int
    unit_cost: Decimal
    total_cost: Decimal
    hours: Optional[float] = None

    class Config:
        from_attributes = True


# ===== STAFF REQUESTS =====


class QuoteCreate(BaseModel):
    """Schema for creating a DRAFT quote."""

    customer_id: str
    vehicle_id: str
    elevator_id: Optional[str] = None
    reported_problem_category: Optional[ProblemCategory] = None
    reported_problem_description: Optional[str] = None
    reported_problem_symptoms: List[str] = []
    valid_until: Optional[datetime] = None


class QuoteUpdate(BaseModel):
    """Partial update. Which keys may be sent depends on the quote's status."""

    customer_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    elevator_id: Optional[str] = None
    reported_problem_category: Optional[ProblemCategory] = None
    reported_problem_description: Optional[str] = None
    reported_problem_symptoms: Optional[List[str]] = None
    items: Optional[List[QuoteItemCreate]] = None
    labor_cost: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    parts_cost: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    discount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    tax_amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    valid_until: Optional[datetime] = None

    class Config:
        extra = "forbid"


class DiagnosisCreate(BaseModel):
    """Mechanic's diagnosis; recorded once, moves the quote to DIAGNOSED."""

    identified_problem_category: Optional[ProblemCategory] = None
    identified_problem_description: Optional[str] = None
    identified_problem_id: Optional[str] = None
    recommendations: Optional[str] = None
    diagnostic_notes: Optional[str] = None
    inspection_notes: Optional[str] = None
    estimated_hours: Optional[float] = Field(None, ge=0.25, le=24)

    @model_validator(mode="after")
    def require_identified_problem(self):
        if not self.identified_problem_category and not (self.identified_problem_description or "").strip():
            raise ValueError("identified_problem_category or identified_problem_description is required")
        return self


class AssignMechanicRequest(BaseModel):
    """mechanic_id=None releases the quote back to the claim pool."""

    mechanic_id: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=500)


class ManualApprovalRequest(BaseModel):
    signature: str = Field(..., min_length=1)
    notes: Optional[str] = None

    @field_validator("signature")
    @classmethod
    def signature_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("signature must not be empty")
        return v


# ===== STAFF RESPONSES =====


class QuoteResponse(BaseModel):
    """Full quote as seen by workshop staff."""

    id: str
    tenant_id: str
    number: str
    status: str
    customer_id: str
    vehicle_id: str
    elevator_id: Optional[str] = None
    assigned_mechanic_id: Optional[str] = None
    assigned_at: Optional[datetime] = None

    reported_problem_category: Optional[str] = None
    reported_problem_description: Optional[str] = None
    reported_problem_symptoms: List[str] = []

    identified_problem_category: Optional[str] = None
    identified_problem_description: Optional[str] = None
    identified_problem_id: Optional[str] = None
    diagnostic_notes: Optional[str] = None
    inspection_notes: Optional[str] = None
    recommendations: Optional[str] = None
    estimated_hours: Optional[float] = None
    diagnosed_at: Optional[datetime] = None

    items: List[QuoteItemResponse] = []
    labor_cost: Decimal
    parts_cost: Decimal
    discount: Decimal
    tax_amount: Decimal
    total_cost: Decimal

    valid_until: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    approval_channel: Optional[str] = None
    approval_notes: Optional[str] = None
    service_order_id: Optional[str] = None
    converted_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuoteListResponse(BaseModel):
    """Paginated quote list response."""

    items: List[QuoteResponse]
    total: int
    page: int
    page_size: int


class QuoteSendResponse(BaseModel):
    """Quote after sending, plus the link to hand to the customer."""

    quote: QuoteResponse
    public_token: str
    public_url: str
    link_expires_at: datetime


class AssignmentHistoryResponse(BaseModel):
    id: str
    quote_id: str
    mechanic_id: Optional[str] = None
    previous_mechanic_id: Optional[str] = None
    action: str
    performed_by: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApprovalResponse(BaseModel):
    """Result of an approval (public or manual) or a conversion retry."""

    quote: QuoteResponse
    service_order: ServiceOrderResponse
    created: bool = True


# ===== PUBLIC (customer link) =====


class PublicQuoteItem(BaseModel):
    type: str
    name: str
    description: Optional[str] = None
    quantity: int
    unit_cost: Decimal
    total_cost: Decimal

    class Config:
        from_attributes = True


class PublicQuoteView(BaseModel):
    """Customer-safe projection of a quote.

    Internal notes and mechanic assignment are never exposed. An expired
    quote carries only its number and status.
    """

    number: str
    status: str
    expired: bool = False

    customer_name: Optional[str] = None
    vehicle_description: Optional[str] = None
    vehicle_placa: Optional[str] = None

    reported_problem_description: Optional[str] = None
    identified_problem_description: Optional[str] = None
    recommendations: Optional[str] = None
    estimated_hours: Optional[float] = None

    items: List[PublicQuoteItem] = []
    labor_cost: Optional[Decimal] = None
    parts_cost: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None

    valid_until: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None


class PublicApproveRequest(BaseModel):
    token: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1, description="Base64 image or SVG path of the customer's signature")

    @field_validator("signature")
    @classmethod
    def signature_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("signature must not be empty")
        return v


class PublicRejectRequest(BaseModel):
    token: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reason must not be empty")
        return v


class PublicDecisionResponse(BaseModel):
    number: str
    status: str
    service_order_number: Optional[str] = None
    message: str

"""
SQLAlchemy models for repair Quotes.

A quote moves from the customer's reported problem, through a mechanic's
diagnosis, to a priced proposal the customer signs through a public link.
Status changes are only legal along the transition table in
app.services.quote_workflow; the @validates hook below enforces that for
ORM assignments and the quote store enforces it for conditional updates.
"""
import enum
import uuid
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import (
    Column, DateTime, Float, ForeignKey, Index, Integer, JSON, Numeric, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates

from app.database import Base
from app.utils.dates import utcnow

CENTS = Decimal("0.01")


def money(value) -> Decimal:
    """Quantize to cents; None counts as zero."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def grand_total(items_total, labor_cost, parts_cost, discount, tax_amount) -> Decimal:
    """items + labor + parts - discount + tax, in cents."""
    return money(
        money(items_total) + money(labor_cost) + money(parts_cost) - money(discount) + money(tax_amount)
    )


class QuoteStatus(str, enum.Enum):
    DRAFT = "draft"
    AWAITING_DIAGNOSIS = "awaiting_diagnosis"
    DIAGNOSED = "diagnosed"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


class QuoteItemType(str, enum.Enum):
    SERVICE = "service"
    PART = "part"


class ProblemCategory(str, enum.Enum):
    MOTOR = "motor"
    SUSPENSAO = "suspensao"
    ELETRICA = "eletrica"
    REFRIGERACAO = "refrigeracao"
    FREIOS = "freios"
    TRANSMISSAO = "transmissao"
    PNEUS = "pneus"
    AR_CONDICIONADO = "ar_condicionado"
    COMBUSTIVEL = "combustivel"
    ESCAPE = "escape"
    ILUMINACAO = "iluminacao"
    BATERIA = "bateria"
    RADIADOR = "radiador"
    DIRECAO = "direcao"
    OUTROS = "outros"


class Quote(Base):
    """Repair quote for one vehicle of one customer."""
    __tablename__ = "quotes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)

    # Human-readable number, e.g. "ORC-001" (sequence is per tenant)
    sequence = Column(Integer, nullable=False)
    number = Column(String(20), nullable=False)

    status = Column(String(30), nullable=False, default=QuoteStatus.DRAFT.value, index=True)

    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("customer_vehicles.id"), nullable=False, index=True)
    elevator_id = Column(String(36), ForeignKey("elevators.id"), nullable=True)

    # Mechanic assignment (NULL = available to claim)
    assigned_mechanic_id = Column(String(36), nullable=True, index=True)
    assigned_at = Column(DateTime, nullable=True)

    # Problem reported by the customer
    reported_problem_category = Column(String(30), nullable=True)
    reported_problem_description = Column(Text, nullable=True)
    reported_problem_symptoms = Column(JSON, nullable=False, default=list)

    # Diagnosis by the mechanic
    identified_problem_category = Column(String(30), nullable=True)
    identified_problem_description = Column(Text, nullable=True)
    identified_problem_id = Column(String(36), nullable=True)
    diagnostic_notes = Column(Text, nullable=True)
    inspection_notes = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)
    estimated_hours = Column(Float, nullable=True)
    diagnosed_at = Column(DateTime, nullable=True)

    # Pricing
    labor_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    parts_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    # Customer-facing
    valid_until = Column(DateTime, nullable=True)
    public_token_version = Column(Integer, nullable=False, default=1)
    sent_at = Column(DateTime, nullable=True)
    viewed_at = Column(DateTime, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejected_reason = Column(Text, nullable=True)
    customer_signature = Column(Text, nullable=True)  # base64 image / SVG path
    approval_channel = Column(String(20), nullable=True)  # public_link, manual
    approval_notes = Column(Text, nullable=True)

    # Conversion (no FK: service_orders.quote_id is the owning side)
    service_order_id = Column(String(36), nullable=True)
    converted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="QuoteItem.position",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "sequence", name="uq_quotes_tenant_sequence"),
        UniqueConstraint("tenant_id", "number", name="uq_quotes_tenant_number"),
        Index("idx_quotes_tenant_status", "tenant_id", "status"),
        Index("idx_quotes_tenant_mechanic", "tenant_id", "assigned_mechanic_id"),
    )

    @validates("status")
    def _validate_status(self, key, value):
        from app.services.quote_workflow import ensure_status_change

        return ensure_status_change(self.status, value).value

    @property
    def status_enum(self) -> QuoteStatus:
        return QuoteStatus(self.status)

    @property
    def items_total(self) -> Decimal:
        return money(sum((money(item.total_cost) for item in self.items), Decimal("0")))

    def __repr__(self):
        return f"<Quote(id={self.id}, number={self.number}, status={self.status})>"


class QuoteItem(Base):
    """Priced line of a quote: a service or a part."""
    __tablename__ = "quote_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quote_id = Column(String(36), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    type = Column(String(10), nullable=False)  # service, part
    service_id = Column(String(36), nullable=True)
    part_id = Column(String(36), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_cost = Column(Numeric(10, 2), nullable=False)
    total_cost = Column(Numeric(10, 2), nullable=False)
    hours = Column(Float, nullable=True)

    quote = relationship("Quote", back_populates="items")

    def __repr__(self):
        return f"<QuoteItem {self.name} x{self.quantity}>"


class QuoteAssignmentHistory(Base):
    """Append-only log of who held a quote for diagnosis."""
    __tablename__ = "quote_assignment_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quote_id = Column(String(36), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    mechanic_id = Column(String(36), nullable=True)
    previous_mechanic_id = Column(String(36), nullable=True)
    action = Column(String(20), nullable=False)  # claimed, reassigned, released
    performed_by = Column(String(36), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<QuoteAssignmentHistory {self.action} on {self.quote_id}>"

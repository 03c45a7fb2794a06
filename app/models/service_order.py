import uuid

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, ForeignKey, JSON, Numeric, UniqueConstraint

from app.database import Base
from app.utils.dates import utcnow


class ServiceOrder(Base):
    """Service Order (OS) created from an accepted quote.

    Vehicle and problem data are copied at conversion time so later edits to
    the customer's vehicle record do not rewrite the order's history.
    """

    __tablename__ = "service_orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)

    # "OS-001", sequence is per tenant
    sequence = Column(Integer, nullable=False)
    number = Column(String(20), nullable=False)

    # At most one service order per quote
    quote_id = Column(String(36), ForeignKey("quotes.id"), nullable=False, unique=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("customer_vehicles.id"), nullable=False)
    technician_id = Column(String(36), nullable=True)
    elevator_id = Column(String(36), nullable=True)

    status = Column(String(30), nullable=False, default="scheduled")

    # Vehicle snapshot
    vehicle_placa = Column(String(10))
    vehicle_vin = Column(String(17))
    vehicle_make = Column(String(50))
    vehicle_model = Column(String(50))
    vehicle_year = Column(Integer)
    vehicle_mileage = Column(Integer)

    # Problem snapshot
    reported_problem_category = Column(String(30))
    reported_problem_description = Column(Text)
    reported_problem_symptoms = Column(JSON, nullable=False, default=list)
    identified_problem_category = Column(String(30))
    identified_problem_description = Column(Text)
    identified_problem_id = Column(String(36))
    diagnostic_notes = Column(Text)
    recommendations = Column(Text)
    inspection_notes = Column(Text)

    # Line items as priced on the quote: [{type, name, quantity, unit_cost, total_cost, ...}]
    items = Column(JSON, nullable=False, default=list)

    # Costs copied from the quote
    labor_cost = Column(Numeric(10, 2), nullable=False, default=0)
    parts_cost = Column(Numeric(10, 2), nullable=False, default=0)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_cost = Column(Numeric(10, 2), nullable=False, default=0)
    estimated_hours = Column(Float)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "sequence", name="uq_service_orders_tenant_sequence"),
    )

    def __repr__(self):
        return f"<ServiceOrder {self.number} from quote {self.quote_id}>"

from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Any


class ServiceOrderResponse(BaseModel):
    """Service order created from an accepted quote (read-only)."""

    id: str
    tenant_id: str
    number: str
    quote_id: str
    customer_id: str
    vehicle_id: str
    technician_id: Optional[str] = None
    elevator_id: Optional[str] = None
    status: str

    vehicle_placa: Optional[str] = None
    vehicle_vin: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_mileage: Optional[int] = None

    reported_problem_category: Optional[str] = None
    reported_problem_description: Optional[str] = None
    reported_problem_symptoms: List[str] = []
    identified_problem_category: Optional[str] = None
    identified_problem_description: Optional[str] = None
    identified_problem_id: Optional[str] = None
    diagnostic_notes: Optional[str] = None
    recommendations: Optional[str] = None
    inspection_notes: Optional[str] = None

    items: List[Any] = []
    labor_cost: Decimal
    parts_cost: Decimal
    discount: Decimal
    tax_amount: Decimal
    total_cost: Decimal
    estimated_hours: Optional[float] = None

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ServiceOrderListResponse(BaseModel):
    items: List[ServiceOrderResponse]
    total: int

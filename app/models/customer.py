"""
Customer directory records.

Owned by the customer/vehicle CRUD screens; the quote workflow only reads
them to validate references and to snapshot vehicle data into service orders.
"""
import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.dates import utcnow


class Customer(Base):
    """Workshop customer (tenant-scoped)."""

    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(20))
    email = Column(String(255), index=True)
    created_at = Column(DateTime, default=utcnow)

    vehicles = relationship("Vehicle", back_populates="customer")

    def __repr__(self):
        return f"<Customer {self.name}>"


class Vehicle(Base):
    """Customer vehicle. Tenancy is inherited from the owning customer."""

    __tablename__ = "customer_vehicles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    placa = Column(String(10), index=True)  # license plate
    vin = Column(String(17))
    make = Column(String(50))
    model = Column(String(50))
    year = Column(Integer)
    mileage = Column(Integer)
    created_at = Column(DateTime, default=utcnow)

    customer = relationship("Customer", back_populates="vehicles")

    def __repr__(self):
        return f"<Vehicle {self.placa or self.vin}>"

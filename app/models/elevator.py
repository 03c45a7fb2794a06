import uuid

from sqlalchemy import Column, String, DateTime

from app.database import Base
from app.utils.dates import utcnow


class Elevator(Base):
    """Service bay / vehicle lift. Quotes may reserve one for the repair."""

    __tablename__ = "elevators"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    number = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="free")  # free, occupied, maintenance
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<Elevator {self.number} ({self.status})>"

import uuid

from sqlalchemy import Column, String, Boolean, DateTime

from app.database import Base
from app.utils.dates import utcnow


class User(Base):
    """Workshop staff account, mirrored from the auth service.

    Only read by the quote workflow, e.g. to check that a reassignment
    target is an active mechanic of the same tenant.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)
    email = Column(String(255), index=True, nullable=False)
    name = Column(String(200))
    role = Column(String(20), nullable=False, default="receptionist")  # admin, manager, receptionist, mechanic
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"

from app.models.customer import Customer, Vehicle
from app.models.user import User
from app.models.elevator import Elevator
from app.models.quote import Quote, QuoteItem, QuoteAssignmentHistory
from app.models.service_order import ServiceOrder

__all__ = [
    "Customer",
    "Vehicle",
    "User",
    "Elevator",
    "Quote",
    "QuoteItem",
    "QuoteAssignmentHistory",
    "ServiceOrder",
]

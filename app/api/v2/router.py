from fastapi import APIRouter
from app.api.v2 import (
    quotes,
    service_orders,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(quotes.router, prefix="/quotes", tags=["quotes"])
api_router.include_router(service_orders.router, prefix="/service-orders", tags=["service-orders"])

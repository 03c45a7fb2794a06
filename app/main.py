"""
Workshop Quote API - Main Application

SECURITY FEATURES:
- Conditional API docs (disabled in production by default)
- Structured logging without sensitive data (no tokens, no signatures)
- Production-hardened configuration
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app.api.v2.router import api_router
from app.api.public.router import public_router
from app.config import settings
from app.core.sentry import init_sentry
from app.database import init_db
from app.exceptions import CRMException, create_exception_handlers
from app.middleware import CorrelationIdMiddleware, CorrelationLogFilter

# Import all models to register them with SQLAlchemy metadata before init_db()
from app.models import (  # noqa: F401
    Customer, Vehicle, User, Elevator, Quote, QuoteItem, QuoteAssignmentHistory, ServiceOrder
)

# Configure secure logging
_log_handler = logging.StreamHandler()
_log_handler.addFilter(CorrelationLogFilter())
logging.basicConfig(
    level=settings.LOG_LEVEL or (logging.DEBUG if settings.DEBUG else logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s/%(request_id)s] %(message)s",
    handlers=[_log_handler],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Workshop Quote API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    init_sentry()
    # SECURITY: Don't log full database URL, just the driver
    if settings.DATABASE_URL:
        logger.info(f"Database driver: {settings.DATABASE_URL.split('://', 1)[0]}")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # SECURITY: Don't log full exception details which may contain credentials
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - requests will fail until it is reachable")
    yield
    # Shutdown
    logger.info("Shutting down Workshop Quote API...")


# SECURITY: Conditionally enable docs based on settings
docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Workshop Quote API",
    description="Quote lifecycle, mechanic assignment and customer approval for auto repair workshops",
    version="1.0.0",
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# CORS middleware
# SECURITY: Restrict origins to known frontend URLs
allowed_origins = [settings.FRONTEND_URL]

# Allow localhost origins for development/testing
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # Alternative dev port
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

# RFC 7807 error responses
handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(CRMException, handlers["crm"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

# Include routers
app.include_router(api_router, prefix="/api/v2")
app.include_router(public_router, prefix="/api/public")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "Workshop Quote API",
        "version": "1.0.0",
        "health": "/health",
    }
    # Only include docs link if enabled
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )

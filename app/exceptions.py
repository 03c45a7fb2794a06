"""
RFC 7807 Problem Details exception handling.

Provides standardized error responses for the API following the
"Problem Details for HTTP APIs" specification, plus the typed errors of
the quote workflow. Every workflow error maps to its own status code so
clients can tell a lost claim race from a locked field without parsing text.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List, Iterable
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
import uuid
from datetime import datetime, timezone

from app.middleware.correlation import get_request_id

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.oficina.app/problems"


def _get_trace_id() -> str:
    """Get trace ID from correlation context or generate a new one."""
    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _status_value(status: Any) -> Any:
    return getattr(status, "value", status)


class ErrorCode(str, Enum):
    """Standardized error codes for the workshop API."""

    # Authentication & Authorization
    UNAUTHORIZED = "AUTH_001"
    FORBIDDEN = "AUTH_002"

    # Validation
    VALIDATION_ERROR = "VAL_001"

    # Resource
    NOT_FOUND = "RES_001"
    CONFLICT = "RES_003"

    # Business Logic
    BUSINESS_RULE_VIOLATION = "BIZ_001"

    # Quote workflow
    INVALID_TRANSITION = "QTE_001"
    FIELD_LOCKED = "QTE_002"
    NOT_ASSIGNED = "QTE_003"
    NOT_OWNER = "QTE_004"
    ALREADY_CLAIMED = "QTE_005"
    ALREADY_DECIDED = "QTE_006"
    INVALID_OR_EXPIRED_TOKEN = "QTE_007"
    CONVERSION_FAILED = "QTE_008"

    # Server
    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Unique identifier for tracing in logs/Sentry
        errors: List of field-level validation errors (for 422)
        context: Workflow state the client needs to refresh and retry
    """

    type: str = Field(
        default="about:blank",
        description="URI reference identifying the problem type"
    )
    title: str = Field(
        description="Short, human-readable summary of the problem"
    )
    status: int = Field(
        description="HTTP status code"
    )
    detail: str = Field(
        description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        default=None,
        description="URI reference for this specific occurrence"
    )
    code: str = Field(
        description="Machine-readable error code"
    )
    timestamp: str = Field(
        description="ISO 8601 timestamp"
    )
    trace_id: str = Field(
        description="Unique trace ID for debugging"
    )
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Field-level validation errors"
    )
    context: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Current workflow state (status, owner, field)"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": f"{PROBLEM_TYPE_BASE}/qte-005",
                "title": "Precondition Failed",
                "status": 412,
                "detail": "Quote ORC-014 was already claimed by another mechanic",
                "instance": "/api/v2/quotes/4f7c/claim",
                "code": "QTE_005",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456",
                "context": {"assigned_mechanic_id": "9d1e"},
            }
        }
    }


def _problem_type(code: ErrorCode) -> str:
    return f"{PROBLEM_TYPE_BASE}/{code.value.lower().replace('_', '-')}"


class CRMException(HTTPException):
    """
    Base exception for the API with RFC 7807 support.

    Usage:
        raise CRMException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Quote not found",
            instance="/api/v2/quotes/123"
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.errors = errors
        self.context = context
        self.trace_id = _get_trace_id()
        self.timestamp = _timestamp()

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    @staticmethod
    def _default_title(status_code: int) -> str:
        """Get default title based on status code."""
        titles = {
            400: "Bad Request",
            401: "Unauthorized",
            403: "Forbidden",
            404: "Not Found",
            409: "Conflict",
            410: "Gone",
            412: "Precondition Failed",
            422: "Validation Error",
            423: "Locked",
            428: "Precondition Required",
            500: "Internal Server Error",
            503: "Service Unavailable",
        }
        return titles.get(status_code, "Error")

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=_problem_type(self.code),
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance or instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
            context=self.context,
        )


# Convenience exception classes

class NotFoundError(CRMException):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        resource_id: str,
        instance: Optional[str] = None
    ):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
            instance=instance,
        )


class ValidationError(CRMException):
    """Validation error (422)."""

    def __init__(
        self,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail=detail,
            errors=errors,
        )


class UnauthorizedError(CRMException):
    """Authentication required (401)."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(CRMException):
    """Permission denied (403)."""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(
            status_code=403,
            code=ErrorCode.FORBIDDEN,
            detail=detail,
        )


class ConflictError(CRMException):
    """Resource conflict (409)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=409,
            code=ErrorCode.CONFLICT,
            detail=detail,
        )


class BusinessRuleError(CRMException):
    """Business rule violation (400)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=400,
            code=ErrorCode.BUSINESS_RULE_VIOLATION,
            detail=detail,
        )


# Quote workflow errors

class InvalidTransition(CRMException):
    """Requested status change is not in the transition table (409)."""

    def __init__(self, current_status: Any, attempted_status: Any):
        self.current_status = _status_value(current_status)
        self.attempted_status = _status_value(attempted_status)
        super().__init__(
            status_code=409,
            code=ErrorCode.INVALID_TRANSITION,
            detail=f"Cannot move quote from '{self.current_status}' to '{self.attempted_status}'",
            context={
                "current_status": self.current_status,
                "attempted_status": self.attempted_status,
            },
        )


class FieldLocked(CRMException):
    """Field cannot be written in the quote's current status (423)."""

    def __init__(self, field: str, required_statuses: Iterable[Any], current_status: Any = None):
        self.field = field
        self.required_statuses = sorted(_status_value(s) for s in required_statuses)
        self.current_status = _status_value(current_status)
        super().__init__(
            status_code=423,
            code=ErrorCode.FIELD_LOCKED,
            detail=(
                f"Field '{field}' can only be changed while the quote is "
                f"{', '.join(self.required_statuses)}"
            ),
            context={
                "field": field,
                "required_statuses": self.required_statuses,
                "current_status": self.current_status,
            },
        )


class NotAssigned(CRMException):
    """Quote has no mechanic assigned yet (428)."""

    def __init__(self, quote_number: str):
        super().__init__(
            status_code=428,
            code=ErrorCode.NOT_ASSIGNED,
            detail=f"Quote {quote_number} must be claimed before it can be diagnosed",
            context={"assigned_mechanic_id": None},
        )


class NotOwner(CRMException):
    """Quote is assigned to a different mechanic (403)."""

    def __init__(self, quote_number: str, owner_id: str):
        self.owner_id = owner_id
        super().__init__(
            status_code=403,
            code=ErrorCode.NOT_OWNER,
            detail=f"Quote {quote_number} is assigned to another mechanic",
            context={"assigned_mechanic_id": owner_id},
        )


class AlreadyClaimed(CRMException):
    """Another mechanic won the claim (412)."""

    def __init__(self, quote_number: str, owner_id: Optional[str]):
        self.owner_id = owner_id
        super().__init__(
            status_code=412,
            code=ErrorCode.ALREADY_CLAIMED,
            detail=f"Quote {quote_number} was already claimed by another mechanic",
            context={"assigned_mechanic_id": owner_id},
        )


class AlreadyDecided(CRMException):
    """Customer decision was already recorded (410)."""

    def __init__(self, quote_number: str, current_status: Any):
        self.current_status = _status_value(current_status)
        super().__init__(
            status_code=410,
            code=ErrorCode.ALREADY_DECIDED,
            detail=f"Quote {quote_number} was already {self.current_status}",
            context={"current_status": self.current_status},
        )


class InvalidOrExpiredToken(CRMException):
    """Public link token is malformed, revoked or past its expiry (401)."""

    def __init__(self, detail: str = "This quote link is invalid or has expired", current_status: Any = None):
        context = None
        if current_status is not None:
            context = {"current_status": _status_value(current_status)}
        super().__init__(
            status_code=401,
            code=ErrorCode.INVALID_OR_EXPIRED_TOKEN,
            detail=detail,
            context=context,
        )


class ConversionFailed(CRMException):
    """Service order could not be created; quote stays accepted (500)."""

    def __init__(self, quote_number: str):
        super().__init__(
            status_code=500,
            code=ErrorCode.CONVERSION_FAILED,
            detail=(
                f"Quote {quote_number} was accepted but the service order could not be "
                "created. Retry the conversion."
            ),
            context={"current_status": "accepted"},
        )


# Exception handlers for FastAPI

def _add_cors_headers(response: JSONResponse, request: Request, allowed_origins: Optional[List[str]]) -> None:
    if allowed_origins:
        origin = request.headers.get("origin", "")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"


def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    allowed_origins: Optional[List[str]] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response with CORS headers."""
    problem = ProblemDetail(
        type=_problem_type(code),
        title=CRMException._default_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )

    response = JSONResponse(
        status_code=status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )
    _add_cors_headers(response, request, allowed_origins)
    return response


async def crm_exception_handler(
    request: Request,
    exc: CRMException,
    allowed_origins: Optional[List[str]] = None,
) -> JSONResponse:
    """Handle CRMException with RFC 7807 response."""
    logger.warning(
        f"CRMException: {exc.code.value} - {exc.detail}",
        extra={
            "trace_id": exc.trace_id,
            "status_code": exc.status_code,
            "path": request.url.path,
        }
    )

    response = JSONResponse(
        status_code=exc.status_code,
        content=exc.to_problem_detail(instance=str(request.url.path)).model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=exc.headers,
    )
    _add_cors_headers(response, request, allowed_origins)
    return response


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(CRMException, handlers["crm"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_crm_exception(request: Request, exc: CRMException) -> JSONResponse:
        return await crm_exception_handler(request, exc, allowed_origins)

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTPException with RFC 7807 response."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.FORBIDDEN,
            404: ErrorCode.NOT_FOUND,
            409: ErrorCode.CONFLICT,
            422: ErrorCode.VALIDATION_ERROR,
            500: ErrorCode.INTERNAL_ERROR,
            503: ErrorCode.SERVICE_UNAVAILABLE,
        }

        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

        response = create_problem_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with field-level details."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
            allowed_origins=allowed_origins,
        )

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with RFC 7807 response."""
        from app.config import settings
        from app.core.sentry import capture_exception

        trace_id = str(uuid.uuid4())[:12]

        logger.error(
            f"Unhandled exception: {exc}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )
        logger.error(traceback.format_exc())

        capture_exception(
            exc,
            context={
                "trace_id": trace_id,
                "path": request.url.path,
                "method": request.method,
            }
        )

        # Don't expose internal details in production
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "crm": handle_crm_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }

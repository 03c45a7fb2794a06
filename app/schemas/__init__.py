from app.schemas.service_order import (
    ServiceOrderResponse,
    ServiceOrderListResponse,
)
from app.schemas.quote import (
    QuoteItemCreate,
    QuoteItemResponse,
    QuoteCreate,
    QuoteUpdate,
    DiagnosisCreate,
    AssignMechanicRequest,
    ManualApprovalRequest,
    QuoteResponse,
    QuoteListResponse,
    QuoteSendResponse,
    AssignmentHistoryResponse,
    ApprovalResponse,
    PublicQuoteItem,
    PublicQuoteView,
    PublicApproveRequest,
    PublicRejectRequest,
    PublicDecisionResponse,
)

__all__ = [
    "ServiceOrderResponse",
    "ServiceOrderListResponse",
    "QuoteItemCreate",
    "QuoteItemResponse",
    "QuoteCreate",
    "QuoteUpdate",
    "DiagnosisCreate",
    "AssignMechanicRequest",
    "ManualApprovalRequest",
    "QuoteResponse",
    "QuoteListResponse",
    "QuoteSendResponse",
    "AssignmentHistoryResponse",
    "ApprovalResponse",
    "PublicQuoteItem",
    "PublicQuoteView",
    "PublicApproveRequest",
    "PublicRejectRequest",
    "PublicDecisionResponse",
]

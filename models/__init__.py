"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    ApiEnvelope,
)
from models.cart import (
    CartStatus,
    PaymentMethod,
    CART_STATUS_TRANSITIONS,
    is_valid_cart_status_transition,
    CustomerDetails,
    CartLine,
    CartItemDelta,
    CartUpsertRequest,
    CartStatusUpdate,
    CartSession,
)
from models.upload import (
    UploadStatus,
    UPLOAD_STATUS_ORDER,
    TERMINAL_UPLOAD_STATUSES,
    is_terminal_upload_status,
    is_valid_upload_status_transition,
    UploadPairing,
    UploadStatusReport,
    ParsedLineItem,
    ParsedItemsResponse,
    UploadTokenValidation,
)

__all__ = [
    # Base
    "BaseSchema",
    "ApiEnvelope",

    # Cart
    "CartStatus",
    "PaymentMethod",
    "CART_STATUS_TRANSITIONS",
    "is_valid_cart_status_transition",
    "CustomerDetails",
    "CartLine",
    "CartItemDelta",
    "CartUpsertRequest",
    "CartStatusUpdate",
    "CartSession",

    # Upload pairing
    "UploadStatus",
    "UPLOAD_STATUS_ORDER",
    "TERMINAL_UPLOAD_STATUSES",
    "is_terminal_upload_status",
    "is_valid_upload_status_transition",
    "UploadPairing",
    "UploadStatusReport",
    "ParsedLineItem",
    "ParsedItemsResponse",
    "UploadTokenValidation",
]

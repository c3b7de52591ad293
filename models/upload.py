"""
Upload pairing schemas (desktop ↔ mobile invoice capture).

See services/upload_pairing_service.py for the polling protocol.
"""

from pydantic import AliasChoices, Field
from typing import Optional
from enum import Enum
from datetime import date, datetime
from decimal import Decimal

from models.base import BaseSchema


class UploadStatus(str, Enum):
    """Upload pairing status values."""
    PENDING = "PENDING"
    UPLOADING = "UPLOADING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


# Status order for transition validation (lower index = earlier in flow).
# The three outcomes share the last rank: a token reaches exactly one.
UPLOAD_STATUS_ORDER = {
    UploadStatus.PENDING: 0,
    UploadStatus.UPLOADING: 1,
    UploadStatus.PROCESSING: 2,
    UploadStatus.COMPLETED: 3,
    UploadStatus.FAILED: 3,
    UploadStatus.EXPIRED: 3,
}

TERMINAL_UPLOAD_STATUSES = frozenset({
    UploadStatus.COMPLETED,
    UploadStatus.FAILED,
    UploadStatus.EXPIRED,
})


def is_terminal_upload_status(status: UploadStatus) -> bool:
    return status in TERMINAL_UPLOAD_STATUSES


def is_valid_upload_status_transition(current: UploadStatus, new: UploadStatus) -> bool:
    """
    Check if an upload status transition is valid.

    Rules:
    - Can skip forward (PENDING → EXPIRED is OK)
    - Cannot go backward (PROCESSING → UPLOADING is NOT OK)
    - COMPLETED, FAILED and EXPIRED are terminal
    """
    if is_terminal_upload_status(current):
        return False

    return UPLOAD_STATUS_ORDER[new] > UPLOAD_STATUS_ORDER[current]


# ===================
# DESKTOP SIDE
# ===================

class UploadPairing(BaseSchema):
    """Response of POST /upload-session/create."""

    token: str = Field(..., min_length=1)
    pairing_url: str = Field(
        ...,
        validation_alias=AliasChoices("pairingUrl", "uploadUrl", "pairing_url"),
        description="URL the phone opens (rendered as a QR code)"
    )
    expires_in_seconds: Optional[int] = Field(None, ge=0)


class UploadStatusReport(BaseSchema):
    """Response of GET /upload-session/status."""

    token: Optional[str] = None
    status: UploadStatus
    parsed_inventory_id: Optional[str] = None
    error_message: Optional[str] = None


class ParsedLineItem(BaseSchema):
    """
    One invoice line recognised by the server-side parser.

    Unvalidated candidate: the registration form owns final validation.
    """

    barcode: Optional[str] = None
    name: str
    description: Optional[str] = None
    company_name: Optional[str] = None
    maximum_retail_price: Optional[Decimal] = None
    cost_price: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None
    business_type: Optional[str] = None
    location: Optional[str] = None
    count: Optional[int] = None
    threshold_count: Optional[int] = None
    expiry_date: Optional[date] = None
    hsn: Optional[str] = None
    sac: Optional[str] = None
    batch_no: Optional[str] = None
    scheme: Optional[str] = None
    sgst: Optional[str] = None
    cgst: Optional[str] = None
    additional_discount: Optional[Decimal] = None


class ParsedItemsResponse(BaseSchema):
    """Response of GET /upload-session/items."""

    items: list[ParsedLineItem] = Field(default_factory=list)
    total_items: Optional[int] = None


# ===================
# MOBILE SIDE
# ===================

class UploadTokenValidation(BaseSchema):
    """Response of GET /upload-session/validate (public, used by the phone)."""

    token: str
    status: UploadStatus
    expires_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def accepts_upload(self) -> bool:
        """A token accepts exactly one image, and only while PENDING."""
        return self.status == UploadStatus.PENDING

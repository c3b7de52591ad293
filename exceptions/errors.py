"""
Custom exception classes for the point-of-sale client.

Every failure that crosses a service boundary is one of these, never a
raw httpx or pydantic exception.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all client errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "CART_NOT_FOUND")
        message: Human-readable message, safe to show to the cashier
        status_code: HTTP status code (0 when no response was received)
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether the user may simply re-trigger the same action."""
        return False

    @property
    def requires_refresh(self) -> bool:
        """Whether the client's assumed state is stale and must be re-fetched first."""
        return False

    def to_dict(self) -> dict:
        """Convert to a serializable error payload."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NetworkError(AppError):
    """No response reached the client (connection refused, timeout, DNS)."""

    def __init__(
        self,
        message: str = "Network error. Please check your connection.",
        details: Optional[dict] = None
    ):
        super().__init__(
            code="NETWORK_ERROR",
            message=message,
            status_code=0,
            details=details
        )

    @property
    def is_retryable(self) -> bool:
        return True


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None,
        code: Optional[str] = None,
        message: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=message or f"{resource} not found",
            status_code=404,
            details={"id": identifier} if identifier else {}
        )


class ValidationError(AppError):
    """
    The server (or a local pre-check) rejected a value (422).

    Attributes:
        field: Offending field or cart line id, when known
        reason: Why the value was rejected
    """

    def __init__(
        self,
        reason: str,
        field: Optional[str] = None,
        code: str = "VALIDATION_ERROR",
        status_code: int = 422,
        details: Optional[dict] = None
    ):
        self.field = field
        self.reason = reason
        super().__init__(
            code=code,
            message=reason,
            status_code=status_code,
            details={"field": field, "reason": reason, **(details or {})}
        )


class ConflictError(AppError):
    """Operation not legal from the current server-side state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )

    @property
    def requires_refresh(self) -> bool:
        return True


class ExpiredError(AppError):
    """A pairing token (or other short-lived resource) is dead (410)."""

    def __init__(
        self,
        message: str = "Upload session has expired",
        code: str = "EXPIRED",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=410,
            details=details
        )

    @property
    def requires_refresh(self) -> bool:
        return True


class ExternalServiceError(AppError):
    """Backend failure not covered by a more specific error (5xx)."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int = 503,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=status_code,
            details={"service": service, **(details or {})}
        )

    @property
    def is_retryable(self) -> bool:
        return True


# ===================
# CART ERRORS
# ===================

class CartNotFoundError(NotFoundError):
    """No active cart for this session."""

    def __init__(self, purchase_id: Optional[str] = None):
        super().__init__(
            resource="Cart",
            identifier=purchase_id,
            code="CART_NOT_FOUND",
            message="No active cart"
        )


class CartLineNotFoundError(NotFoundError):
    """Item is not a line of the current cart."""

    def __init__(self, item_id: str):
        super().__init__(
            resource="Cart line",
            identifier=item_id,
            code="CART_LINE_NOT_FOUND"
        )


class CartBusyError(ConflictError):
    """Another cart mutation is still in flight."""

    def __init__(self):
        super().__init__(
            code="CART_BUSY",
            message="Cart is being updated, please wait"
        )

    @property
    def requires_refresh(self) -> bool:
        return False


class CartLockedError(ConflictError):
    """Cart lines cannot be edited in the current status."""

    def __init__(self, status: str):
        super().__init__(
            code="CART_LOCKED",
            message=f"Cart cannot be edited while {status}",
            details={"status": status}
        )


class InvalidStatusTransitionError(ConflictError):
    """Invalid cart status transition."""

    def __init__(self, current_status: str, new_status: str, terminal_status: str = "COMPLETED"):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot transition from {current_status} to {new_status}",
            details={
                "current_status": current_status,
                "new_status": new_status,
                "reason": f"Checkout only moves CREATED → PENDING → {terminal_status}, "
                          f"PENDING may go back to CREATED, and {terminal_status} is terminal"
            }
        )


# ===================
# UPLOAD PAIRING ERRORS
# ===================

class UploadTokenNotFoundError(NotFoundError):
    """Pairing token unknown to the server."""

    def __init__(self, token: str):
        super().__init__(
            resource="Upload token",
            identifier=token,
            code="UPLOAD_TOKEN_NOT_FOUND"
        )


class UploadExpiredError(ExpiredError):
    """Pairing token expired before the job finished."""

    def __init__(self, token: str, message: Optional[str] = None):
        super().__init__(
            code="UPLOAD_EXPIRED",
            message=message or "Upload session has expired. Please scan a new QR code.",
            details={"token": token}
        )


class UploadFailedError(AppError):
    """Server reported the upload/parse job as FAILED."""

    def __init__(self, token: str, message: Optional[str] = None):
        super().__init__(
            code="UPLOAD_FAILED",
            message=message or "Invoice upload failed. Please try again with a new QR code.",
            status_code=422,
            details={"token": token}
        )


class UploadTokenUnavailableError(ConflictError):
    """Token exists but is not accepting an image (already used, in use, dead)."""

    def __init__(self, token: str, status: str):
        super().__init__(
            code="UPLOAD_TOKEN_UNAVAILABLE",
            message=f"Upload token is not accepting images (status {status})",
            details={"token": token, "status": status}
        )


class InvalidUploadImageError(ValidationError):
    """Selected file is not an acceptable invoice image."""

    def __init__(self, reason: str):
        super().__init__(
            reason=reason,
            field="image",
            code="INVALID_UPLOAD_IMAGE"
        )

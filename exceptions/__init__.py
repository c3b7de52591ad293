"""
Custom exceptions module.

Taxonomy: NetworkError, ValidationError, NotFoundError, ConflictError,
ExpiredError, plus cart and upload specific subclasses.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NetworkError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExpiredError,
    ExternalServiceError,

    # Cart
    CartNotFoundError,
    CartLineNotFoundError,
    CartBusyError,
    CartLockedError,
    InvalidStatusTransitionError,

    # Upload pairing
    UploadTokenNotFoundError,
    UploadExpiredError,
    UploadFailedError,
    UploadTokenUnavailableError,
    InvalidUploadImageError,
)

__all__ = [
    # Base
    "AppError",
    "NetworkError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExpiredError",
    "ExternalServiceError",

    # Cart
    "CartNotFoundError",
    "CartLineNotFoundError",
    "CartBusyError",
    "CartLockedError",
    "InvalidStatusTransitionError",

    # Upload pairing
    "UploadTokenNotFoundError",
    "UploadExpiredError",
    "UploadFailedError",
    "UploadTokenUnavailableError",
    "InvalidUploadImageError",
]

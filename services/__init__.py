"""
Client services.

Each service handles one part of the cart/checkout and upload
pairing protocols.
"""

from services.cart_client import CartClient
from services.dedupe_cache import RequestDedupeCache, request_signature
from services.mutation_guard import MutationGuard
from services.checkout_state_service import CheckoutStateMachine, CartView, CartAction
from services.delta_sync_service import DeltaSynchronizer
from services.upload_pairing_service import (
    UploadPairingClient,
    UploadStatusPoller,
    MobileUploadClient,
)
from services.cart_session import CartSessionServices, create_cart_session

__all__ = [
    "CartClient",
    "RequestDedupeCache",
    "request_signature",
    "MutationGuard",
    "CheckoutStateMachine",
    "CartView",
    "CartAction",
    "DeltaSynchronizer",
    "UploadPairingClient",
    "UploadStatusPoller",
    "MobileUploadClient",
    "CartSessionServices",
    "create_cart_session",
]

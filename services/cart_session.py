"""
Wiring for one authenticated point-of-sale session.

Builds the cart client, guard, state machine and synchronizer around a
shared ApiClient, plus the upload pairing and mobile upload clients.
Nothing here is a process-wide singleton: each session gets isolated
instances.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from config.settings import Settings, get_settings
from integrations.api_client import ApiClient
from services.cart_client import CartClient
from services.checkout_state_service import CheckoutStateMachine
from services.dedupe_cache import RequestDedupeCache
from services.delta_sync_service import DeltaSynchronizer
from services.mutation_guard import MutationGuard
from services.upload_pairing_service import MobileUploadClient, UploadPairingClient

logger = structlog.get_logger(__name__)


@dataclass
class CartSessionServices:
    """Everything the UI needs for one cart session."""

    api: ApiClient
    cart_client: CartClient
    guard: MutationGuard
    checkout: CheckoutStateMachine
    sync: DeltaSynchronizer
    uploads: UploadPairingClient
    mobile: MobileUploadClient

    async def aclose(self) -> None:
        await self.api.aclose()

    async def __aenter__(self) -> "CartSessionServices":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def create_cart_session(
    settings: Optional[Settings] = None,
    api: Optional[ApiClient] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    dedupe_cache: Optional[RequestDedupeCache] = None,
) -> CartSessionServices:
    """
    Create the services of one session.

    Args:
        settings: Client settings (defaults to environment)
        api: Existing ApiClient to share
        transport: httpx transport override (tests use httpx.MockTransport)
        dedupe_cache: Cache for duplicate load suppression
    """
    settings = settings or get_settings()
    api = api or ApiClient(settings=settings, transport=transport)

    cart_client = CartClient(api, business_type=settings.business_type)
    guard = MutationGuard(
        dedupe_cache=dedupe_cache,
        dedupe_window_seconds=settings.load_dedupe_window_seconds
    )
    checkout = CheckoutStateMachine(cart_client, guard)
    sync = DeltaSynchronizer(cart_client, guard, checkout)
    uploads = UploadPairingClient(api, poll_interval_seconds=settings.upload_poll_interval_seconds)
    mobile = MobileUploadClient(api, max_upload_bytes=settings.max_upload_bytes)

    logger.debug("cart_session_created", base_url=api.base_url, business_type=settings.business_type)

    return CartSessionServices(
        api=api,
        cart_client=cart_client,
        guard=guard,
        checkout=checkout,
        sync=sync,
        uploads=uploads,
        mobile=mobile,
    )

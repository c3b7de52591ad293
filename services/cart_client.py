"""
Cart resource client.

Typed request/response layer for the one cart of the session.
Callers must go through the mutation guard; this layer performs
exactly one round trip per call and never retries.
"""

from typing import Optional
import structlog

from integrations.api_client import ApiClient, parse_response
from models.cart import (
    CartItemDelta,
    CartSession,
    CartStatus,
    CartStatusUpdate,
    CartUpsertRequest,
    CustomerDetails,
    PaymentMethod,
)
from exceptions import CartNotFoundError, NotFoundError

logger = structlog.get_logger(__name__)


CART_PATH = "/cart"
CART_UPSERT_PATH = "/cart/upsert"
CART_STATUS_PATH = "/cart/status"
INVOICE_PDF_PATH = "/invoices/{purchase_id}/pdf"


class CartClient:
    """
    Cart endpoints.

    Raises the typed errors of the ApiClient; a 404 on any cart endpoint
    becomes CartNotFoundError.
    """

    def __init__(self, api: ApiClient, business_type: str = "pharmacy"):
        self.api = api
        self.business_type = business_type

    async def fetch_cart(self) -> CartSession:
        """
        Get the current cart.

        Raises:
            CartNotFoundError: If the session has no cart
        """
        try:
            data = await self.api.get(CART_PATH)
        except NotFoundError:
            raise CartNotFoundError()

        if data is None:
            raise CartNotFoundError()

        cart = parse_response(CartSession, data, CART_PATH)
        logger.debug(
            "cart_fetched",
            purchase_id=cart.purchase_id,
            status=cart.status,
            line_count=len(cart.lines)
        )
        return cart

    async def mutate(
        self,
        items: list[CartItemDelta],
        customer: Optional[CustomerDetails] = None
    ) -> CartSession:
        """
        Apply a batch of signed deltas (and optional customer fields).

        Args:
            items: Deltas relative to the last known server quantities
            customer: Customer fields to attach to the session

        Returns:
            The authoritative cart after the server applied the batch
        """
        request = CartUpsertRequest(
            business_type=self.business_type,
            items=items,
            customer=customer
        )

        logger.info(
            "cart_upsert_sending",
            items=[(item.id, item.quantity) for item in items],
            with_customer=customer is not None
        )

        try:
            data = await self.api.post(CART_UPSERT_PATH, request.to_wire())
        except NotFoundError:
            raise CartNotFoundError()

        cart = parse_response(CartSession, data, CART_UPSERT_PATH)
        logger.info(
            "cart_upsert_applied",
            purchase_id=cart.purchase_id,
            line_count=len(cart.lines),
            grand_total=str(cart.grand_total)
        )
        return cart

    async def set_status(
        self,
        purchase_id: str,
        status: CartStatus,
        payment_method: PaymentMethod = PaymentMethod.CASH
    ) -> CartSession:
        """
        Request a cart status transition.

        Legality is checked by the state machine before calling this.
        """
        request = CartStatusUpdate(
            purchase_id=purchase_id,
            status=status,
            payment_method=payment_method
        )

        logger.info(
            "cart_status_sending",
            purchase_id=purchase_id,
            status=status.value,
            payment_method=payment_method.value
        )

        try:
            data = await self.api.post(CART_STATUS_PATH, request.to_wire())
        except NotFoundError:
            raise CartNotFoundError(purchase_id)

        return parse_response(CartSession, data, CART_STATUS_PATH)

    async def get_invoice_pdf(self, purchase_id: str) -> bytes:
        """Download the invoice PDF of a completed sale."""
        path = INVOICE_PDF_PATH.format(purchase_id=purchase_id)
        try:
            content = await self.api.get_bytes(path)
        except NotFoundError:
            raise CartNotFoundError(purchase_id)

        logger.info("invoice_pdf_downloaded", purchase_id=purchase_id, size=len(content))
        return content

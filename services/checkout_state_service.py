"""
Cart/checkout state machine.

    CREATED --(start checkout)--> PENDING --(record payment)--> COMPLETED
    PENDING --(go back)--> CREATED

The authoritative state lives on the server. This service holds the
last server snapshot, decides which client actions are legal, and
routes the UI (editing vs checkout view) after every response.
"""

from typing import Awaitable, Callable, Optional
from enum import Enum
import structlog

from models.cart import (
    CartSession,
    CartStatus,
    CustomerDetails,
    PaymentMethod,
    is_valid_cart_status_transition,
)
from services.cart_client import CartClient
from services.dedupe_cache import request_signature
from services.mutation_guard import MutationGuard
from exceptions import (
    AppError,
    CartLockedError,
    CartNotFoundError,
    ConflictError,
    InvalidStatusTransitionError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


CART_LOAD_SIGNATURE = request_signature("GET", "/cart")


class CartView(str, Enum):
    """Screen the UI should show for the current cart."""
    EDITING = "EDITING"
    CHECKOUT = "CHECKOUT"


class CartAction(str, Enum):
    """Client actions gated by the cart status."""
    EDIT_LINES = "EDIT_LINES"
    START_CHECKOUT = "START_CHECKOUT"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    GO_BACK = "GO_BACK"
    VIEW_INVOICE = "VIEW_INVOICE"
    START_NEW_SALE = "START_NEW_SALE"


ACTIONS_BY_STATUS = {
    None: frozenset({CartAction.EDIT_LINES}),  # no cart yet
    CartStatus.CREATED: frozenset({CartAction.EDIT_LINES, CartAction.START_CHECKOUT}),
    CartStatus.PENDING: frozenset({CartAction.RECORD_PAYMENT, CartAction.GO_BACK}),
    CartStatus.COMPLETED: frozenset({CartAction.VIEW_INVOICE, CartAction.START_NEW_SALE}),
}


class CheckoutStateMachine:
    """
    Owner of the cart snapshot and its lifecycle.

    Every status transition runs through the mutation guard, so it is
    serialized with line edits.
    """

    def __init__(self, client: CartClient, guard: MutationGuard):
        self.client = client
        self.guard = guard
        self.session: Optional[CartSession] = None
        self.view: CartView = CartView.EDITING

    # ===================
    # STATE
    # ===================

    @property
    def status(self) -> Optional[CartStatus]:
        """Known status of the current snapshot, None without an active cart."""
        if self.session is None:
            return None
        return self.session.known_status

    @property
    def can_edit(self) -> bool:
        return CartAction.EDIT_LINES in self.allowed_actions()

    def allowed_actions(self) -> frozenset:
        """Legal client actions; a snapshot with an unrecognised status allows none."""
        if self.session is None:
            return ACTIONS_BY_STATUS[None]
        status = self.session.known_status
        if status is None:
            return frozenset()
        return ACTIONS_BY_STATUS[status]

    def require_editable(self) -> None:
        """
        Raises:
            CartLockedError: If lines are frozen (PENDING) or the sale is over
        """
        if not self.can_edit:
            raise CartLockedError(self.session.status if self.session else "UNKNOWN")

    def apply_snapshot(self, cart: CartSession) -> None:
        """Replace the local snapshot wholesale with a server response."""
        self.session = cart

    # ===================
    # RESUME / RECONCILE
    # ===================

    async def resume(self) -> CartView:
        """
        Fetch the server's cart and route to the matching view.

        CREATED → editing, PENDING → checkout, anything else (no cart,
        COMPLETED, unknown) → editing with no active cart. Duplicate
        resumes inside the dedupe window share a single request and leave
        the state as the original load (or a later mutation) left it.
        """
        async def load_and_route() -> Optional[CartSession]:
            try:
                cart = await self.client.fetch_cart()
            except CartNotFoundError:
                cart = None
            self._route(cart)
            return cart

        await self.guard.load(CART_LOAD_SIGNATURE, load_and_route)
        logger.info(
            "cart_session_resumed",
            view=self.view.value,
            status=self.session.status if self.session else None
        )
        return self.view

    async def reconcile(self) -> None:
        """
        Re-fetch the cart and replace local state after a failed call.

        Caller must already hold the guard. A failed re-fetch is logged;
        the caller still raises its original error.
        """
        try:
            cart = await self.client.fetch_cart()
        except CartNotFoundError:
            cart = None
        except AppError as e:
            logger.warning("cart_reconcile_failed", error=e.message, code=e.code)
            return

        self._route(cart)
        logger.info("cart_reconciled", view=self.view.value, status=self.session.status if self.session else None)

    def _route(self, cart: Optional[CartSession]) -> None:
        status = cart.known_status if cart else None
        if status == CartStatus.CREATED:
            self.session = cart
            self.view = CartView.EDITING
        elif status == CartStatus.PENDING:
            self.session = cart
            self.view = CartView.CHECKOUT
        else:
            self.session = None
            self.view = CartView.EDITING

    # ===================
    # TRANSITIONS
    # ===================

    async def start_checkout(
        self,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        customer: Optional[CustomerDetails] = None
    ) -> CartSession:
        """
        CREATED → PENDING.

        Attaches customer fields first (an upsert with no lines), then
        requests the status change. Lines are frozen afterwards.
        """
        async def send() -> CartSession:
            purchase_id = self.session.purchase_id
            if customer is not None:
                cart = await self.client.mutate([], customer)
                self.apply_snapshot(cart)
                purchase_id = cart.purchase_id or purchase_id
            if not purchase_id:
                raise CartNotFoundError()
            return await self.client.set_status(purchase_id, CartStatus.PENDING, payment_method)

        cart = await self._transition(CartStatus.PENDING, send, require_lines=True)
        self.view = CartView.CHECKOUT
        return cart

    async def record_payment(self, payment_method: PaymentMethod = PaymentMethod.CASH) -> CartSession:
        """PENDING → COMPLETED. The cart becomes read-only."""
        async def send() -> CartSession:
            return await self.client.set_status(
                self.session.purchase_id, CartStatus.COMPLETED, payment_method
            )

        return await self._transition(CartStatus.COMPLETED, send)

    async def go_back(self) -> CartSession:
        """PENDING → CREATED, reopening the cart for edits."""
        async def send() -> CartSession:
            try:
                payment_method = PaymentMethod(self.session.payment_method)
            except ValueError:
                payment_method = PaymentMethod.CASH
            return await self.client.set_status(
                self.session.purchase_id, CartStatus.CREATED, payment_method
            )

        cart = await self._transition(CartStatus.CREATED, send)
        self.view = CartView.EDITING
        return cart

    def start_new_sale(self) -> None:
        """Drop a COMPLETED snapshot so the next mutation opens a fresh cart."""
        if CartAction.START_NEW_SALE not in self.allowed_actions() and self.session is not None:
            raise InvalidStatusTransitionError(self.session.status, "NEW_SALE")

        logger.info("new_sale_started", previous_purchase_id=self.session.purchase_id if self.session else None)
        self.session = None
        self.view = CartView.EDITING

    async def get_invoice_pdf(self) -> bytes:
        """Read-only access to the invoice of a completed sale."""
        if CartAction.VIEW_INVOICE not in self.allowed_actions():
            raise ConflictError(
                "Invoice is available once payment is recorded",
                code="INVOICE_NOT_READY",
                details={"status": self.session.status if self.session else None}
            )
        return await self.client.get_invoice_pdf(self.session.purchase_id)

    async def _transition(
        self,
        target: CartStatus,
        send: Callable[[], Awaitable[CartSession]],
        require_lines: bool = False
    ) -> CartSession:
        async def operation() -> CartSession:
            # Legality is checked against the snapshot current at admission time
            current = self.status
            if current is None:
                if self.session is None:
                    raise CartNotFoundError()
                raise InvalidStatusTransitionError(self.session.status, target.value)
            if not is_valid_cart_status_transition(current, target):
                raise InvalidStatusTransitionError(current.value, target.value)
            if require_lines and self.session.is_empty:
                raise ValidationError(reason="Cart is empty", field="items")

            try:
                cart = await send()
            except AppError as e:
                logger.warning(
                    "cart_status_change_failed",
                    from_status=current.value,
                    to_status=target.value,
                    code=e.code,
                    error=e.message
                )
                await self.reconcile()
                raise

            self.apply_snapshot(cart)
            logger.info(
                "cart_status_changed",
                purchase_id=cart.purchase_id,
                from_status=current.value,
                to_status=cart.status
            )
            return cart

        return await self.guard.run_exclusive(operation, label=f"status_{target.value.lower()}")

"""
Delta synchronizer.

Turns local quantity edits into signed deltas against the last known
server quantity, sends them through the mutation guard, and replaces
local state with the server's answer. On failure the cart is re-fetched
and the error re-raised; local state never keeps an optimistic guess.
"""

from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Union
import structlog

from models.cart import CartItemDelta, CartLine, CartSession, CustomerDetails
from services.cart_client import CartClient
from services.checkout_state_service import CheckoutStateMachine
from services.mutation_guard import MutationGuard
from exceptions import AppError, CartLineNotFoundError, ValidationError

logger = structlog.get_logger(__name__)

Price = Union[Decimal, int, float, str]


def _to_decimal(value: Price, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(reason=f"Invalid amount: {value}", field=field)


class DeltaSynchronizer:
    """
    Interactive cart editing.

    Every interactive call carries at most one changed line; only clear()
    batches all lines. Batches are built inside the guard, so each delta
    is computed from the snapshot left by the previous response.

    Attributes:
        customer: Customer fields sent along with every upsert once set
        last_error: Error of the last failed call, None after a success
        line_errors: Validation messages keyed by item id (or field)
    """

    def __init__(self, client: CartClient, guard: MutationGuard, state: CheckoutStateMachine):
        self.client = client
        self.guard = guard
        self.state = state
        self.customer: Optional[CustomerDetails] = None
        self.last_error: Optional[AppError] = None
        self.line_errors: dict[str, str] = {}

    @property
    def lines(self) -> list[CartLine]:
        session = self.state.session
        return list(session.lines) if session else []

    @property
    def is_mutating(self) -> bool:
        return self.guard.is_mutating

    # ===================
    # LINE EDITS
    # ===================

    async def add_item(self, item_id: str, unit_price: Price) -> Optional[CartSession]:
        """Scan/add a product: delta +1 at the given selling price."""
        price = _to_decimal(unit_price, "sellingPrice")
        if price <= 0:
            raise ValidationError(reason="Please enter a valid price", field="sellingPrice")

        def build() -> list[CartItemDelta]:
            return [CartItemDelta(id=item_id, quantity=1, selling_price=price)]

        return await self._send(build, "add_item", item_id)

    async def increment(self, item_id: str, n: int = 1) -> Optional[CartSession]:
        """Delta +n on an existing line."""
        self._require_positive(n)

        def build() -> list[CartItemDelta]:
            line = self._require_line(item_id)
            return [self._delta(line, n)]

        return await self._send(build, "increment", item_id)

    async def decrement(self, item_id: str, n: int = 1) -> Optional[CartSession]:
        """
        Delta -n on an existing line.

        Going to zero or below removes the line: the delta becomes the
        negative of the last known full quantity.
        """
        self._require_positive(n)

        def build() -> list[CartItemDelta]:
            line = self._require_line(item_id)
            if line.quantity - n <= 0:
                logger.info("decrement_removes_line", item_id=item_id, quantity=line.quantity)
                return [self._delta(line, -line.quantity)]
            return [self._delta(line, -n)]

        return await self._send(build, "decrement", item_id)

    async def remove_line(self, item_id: str) -> Optional[CartSession]:
        """Remove a line: delta = -last known quantity."""
        def build() -> list[CartItemDelta]:
            line = self._require_line(item_id)
            return [self._delta(line, -line.quantity)]

        return await self._send(build, "remove_line", item_id)

    async def set_quantity(self, item_id: str, quantity: int) -> Optional[CartSession]:
        """
        Typed-in quantity, sent as the difference to the last known
        server quantity. Unchanged quantity sends nothing.
        """
        if quantity < 0:
            raise ValidationError(reason="Quantity cannot be negative", field=item_id)

        def build() -> Optional[list[CartItemDelta]]:
            line = self._require_line(item_id)
            delta = quantity - line.quantity
            if delta == 0:
                return None
            return [self._delta(line, delta)]

        return await self._send(build, "set_quantity", item_id)

    async def clear(self) -> Optional[CartSession]:
        """Remove every line in one batch of negative full-quantity deltas."""
        def build() -> Optional[list[CartItemDelta]]:
            if not self.lines:
                return None
            return [self._delta(line, -line.quantity) for line in self.lines]

        return await self._send(build, "clear")

    async def set_additional_discount(
        self,
        item_id: str,
        additional_discount: Optional[Price]
    ) -> Optional[CartSession]:
        """Per-line extra discount; the batch carries only id and additionalDiscount."""
        value = None
        if additional_discount is not None:
            value = _to_decimal(additional_discount, item_id)
            if value < 0:
                raise ValidationError(reason="Discount cannot be negative", field=item_id)

        def build() -> list[CartItemDelta]:
            self._require_line(item_id)
            return [CartItemDelta(id=item_id, additional_discount=value)]

        return await self._send(build, "set_additional_discount", item_id)

    # ===================
    # CUSTOMER
    # ===================

    async def update_customer(self, customer: CustomerDetails) -> Optional[CartSession]:
        """Attach buyer details to the session (no line changes)."""
        self.customer = customer
        return await self._send(lambda: [], "update_customer", allow_empty=True)

    # ===================
    # INTERNALS
    # ===================

    async def _send(
        self,
        build: Callable[[], Optional[list[CartItemDelta]]],
        intent: str,
        item_id: Optional[str] = None,
        allow_empty: bool = False
    ) -> Optional[CartSession]:
        async def operation() -> Optional[CartSession]:
            self.state.require_editable()
            batch = build()
            if batch is None or (not batch and not allow_empty):
                logger.debug("cart_edit_noop", intent=intent, item_id=item_id)
                return self.state.session

            logger.info(
                "cart_delta_sending",
                intent=intent,
                deltas=[(d.id, d.quantity) for d in batch]
            )
            try:
                cart = await self.client.mutate(batch, self.customer)
            except AppError as e:
                self._record_failure(e, intent, item_id)
                await self.state.reconcile()
                raise

            self.state.apply_snapshot(cart)
            self.last_error = None
            self.line_errors.clear()
            return cart

        return await self.guard.run_exclusive(operation, label=intent)

    def _record_failure(self, error: AppError, intent: str, item_id: Optional[str]) -> None:
        self.last_error = error
        if isinstance(error, ValidationError):
            self.line_errors[item_id or error.field or "cart"] = error.reason
        logger.warning(
            "cart_delta_failed",
            intent=intent,
            item_id=item_id,
            code=error.code,
            error=error.message
        )

    def _require_line(self, item_id: str) -> CartLine:
        session = self.state.session
        line = session.line(item_id) if session else None
        if line is None:
            raise CartLineNotFoundError(item_id)
        return line

    @staticmethod
    def _require_positive(n: int) -> None:
        if n < 1:
            raise ValidationError(reason="Step must be at least 1", field="quantity")

    @staticmethod
    def _delta(line: CartLine, quantity: int) -> CartItemDelta:
        return CartItemDelta(
            id=line.item_id,
            quantity=quantity,
            selling_price=line.unit_price,
            additional_discount=line.additional_discount
        )

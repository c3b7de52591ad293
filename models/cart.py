"""
Cart and checkout schemas.

The client's CartSession is only ever a cache of the last server
response; totals are never recomputed locally.
"""

from pydantic import Field, field_validator, model_validator
from typing import Optional
from enum import Enum
from decimal import Decimal

from models.base import BaseSchema


class CartStatus(str, Enum):
    """Cart lifecycle status values."""
    CREATED = "CREATED"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class PaymentMethod(str, Enum):
    """Payment methods accepted at checkout."""
    CASH = "CASH"
    ONLINE = "ONLINE"


# Allowed client-driven transitions. COMPLETED is terminal.
CART_STATUS_TRANSITIONS = {
    CartStatus.CREATED: frozenset({CartStatus.PENDING}),
    CartStatus.PENDING: frozenset({CartStatus.COMPLETED, CartStatus.CREATED}),
    CartStatus.COMPLETED: frozenset(),
}


def is_valid_cart_status_transition(current: CartStatus, new: CartStatus) -> bool:
    """
    Check if a cart status transition is valid.

    Rules:
    - CREATED → PENDING (start checkout)
    - PENDING → COMPLETED (record payment)
    - PENDING → CREATED (go back to editing)
    - COMPLETED is terminal
    """
    return new in CART_STATUS_TRANSITIONS[current]


# ===================
# CUSTOMER
# ===================

class CustomerDetails(BaseSchema):
    """
    Buyer identity attached to the cart session (not to a line).

    Registered-business identifiers are only sent when
    is_registered_business is set.
    """

    name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=254)
    address: Optional[str] = Field(None, max_length=500)
    is_registered_business: bool = Field(default=False, exclude=True)
    gstin: Optional[str] = Field(None, max_length=15)
    dl_no: Optional[str] = Field(None, max_length=50)
    pan: Optional[str] = Field(None, max_length=10)

    @field_validator("gstin", "pan")
    @classmethod
    def normalize_identifier(cls, v: Optional[str]) -> Optional[str]:
        """Tax identifiers are uppercase."""
        if v is None:
            return v
        return v.upper()

    def to_wire(self) -> dict:
        """Flatten into the customer* fields of a cart upsert, skipping blanks."""
        fields = {
            "customerName": self.name,
            "customerAddress": self.address,
            "customerPhone": self.phone,
            "customerEmail": self.email,
        }
        if self.is_registered_business:
            fields.update({
                "customerGstin": self.gstin,
                "customerDlNo": self.dl_no,
                "customerPan": self.pan,
            })
        return {key: value for key, value in fields.items() if value}


# ===================
# CART LINES
# ===================

class CartLine(BaseSchema):
    """One item+quantity+price entry of a cart, as returned by the server."""

    item_id: str = Field(..., alias="inventoryId", description="Inventory item id")
    name: Optional[str] = None
    quantity: int = Field(..., ge=0)
    unit_price: Decimal = Field(..., ge=0, alias="sellingPrice")
    maximum_retail_price: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    additional_discount: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    sgst: Optional[str] = None
    cgst: Optional[str] = None


class CartItemDelta(BaseSchema):
    """
    One outbound line of a cart upsert.

    quantity is a signed delta relative to the last known server
    quantity, never an absolute target.
    """

    id: str = Field(..., min_length=1)
    quantity: Optional[int] = None
    selling_price: Optional[Decimal] = Field(None, ge=0)
    additional_discount: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def reject_empty_delta(self) -> "CartItemDelta":
        if self.quantity == 0:
            raise ValueError("Delta quantity must be non-zero")
        return self


class CartUpsertRequest(BaseSchema):
    """Body of POST /cart/upsert."""

    business_type: str
    items: list[CartItemDelta] = Field(default_factory=list)
    customer: Optional[CustomerDetails] = None

    def to_wire(self) -> dict:
        body = {
            "businessType": self.business_type,
            "items": [item.to_wire() for item in self.items],
        }
        if self.customer is not None:
            body.update(self.customer.to_wire())
        return body


class CartStatusUpdate(BaseSchema):
    """Body of POST /cart/status."""

    purchase_id: str = Field(..., min_length=1)
    status: CartStatus
    payment_method: PaymentMethod = PaymentMethod.CASH


# ===================
# CART SESSION
# ===================

class CartSession(BaseSchema):
    """
    Authoritative cart snapshot returned by every cart endpoint.

    status is kept as the raw server string so that unknown statuses
    survive parsing; use known_status for the enum.
    """

    purchase_id: Optional[str] = None
    invoice_id: Optional[str] = None
    invoice_no: Optional[str] = None
    business_type: Optional[str] = None
    status: str = CartStatus.CREATED.value
    payment_method: Optional[str] = None

    lines: list[CartLine] = Field(default_factory=list, alias="items")

    sub_total: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    sgst_amount: Optional[Decimal] = None
    cgst_amount: Optional[Decimal] = None
    discount_total: Decimal = Decimal("0")
    additional_discount_total: Decimal = Decimal("0")
    grand_total: Decimal = Decimal("0")

    customer_name: Optional[str] = None
    customer_address: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_gstin: Optional[str] = None
    customer_dl_no: Optional[str] = None
    customer_pan: Optional[str] = None

    @field_validator("lines")
    @classmethod
    def drop_empty_lines(cls, v: list[CartLine]) -> list[CartLine]:
        """A line with quantity 0 is an absent line."""
        return [line for line in v if line.quantity > 0]

    @property
    def known_status(self) -> Optional[CartStatus]:
        """Status as enum, or None when the server sent something unknown."""
        try:
            return CartStatus(self.status)
        except ValueError:
            return None

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def customer(self) -> CustomerDetails:
        return CustomerDetails(
            name=self.customer_name,
            phone=self.customer_phone,
            email=self.customer_email,
            address=self.customer_address,
            is_registered_business=bool(
                self.customer_gstin or self.customer_dl_no or self.customer_pan
            ),
            gstin=self.customer_gstin,
            dl_no=self.customer_dl_no,
            pan=self.customer_pan,
        )

    def line(self, item_id: str) -> Optional[CartLine]:
        """Get the line for an item, or None if absent."""
        for line in self.lines:
            if line.item_id == item_id:
                return line
        return None

    def quantity_of(self, item_id: str) -> int:
        """Last known server quantity of an item (0 if absent)."""
        line = self.line(item_id)
        return line.quantity if line else 0

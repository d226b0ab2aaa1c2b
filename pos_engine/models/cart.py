"""
Cart domain models.

CartState is the unit of persistence and of hold/recall. Every model tolerates
missing optional fields (they load as defaults) and ignores unknown ones, so
older snapshots keep loading after the schema grows.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

from shared.config.settings import settings


# =============================================================================
# Common Types
# =============================================================================

FulfillmentKind = Literal["pickup_now", "pickup_scheduled", "local_delivery", "shipping"]
TradeInState = Literal["pending", "approved", "applied", "rejected", "voided"]


def generate_item_id() -> str:
    """Opaque line item id, unique within a session."""
    return f"item_{uuid.uuid4().hex[:12]}"


# =============================================================================
# Item Identity
# =============================================================================


@dataclass(frozen=True, slots=True)
class Fungible:
    """Interchangeable units of one product. Adding the product again merges quantity."""

    product_id: int


@dataclass(frozen=True, slots=True)
class Serialized:
    """A single tracked unit. Never merged with another line."""

    item_id: str
    serial_number: str


ItemIdentity = Fungible | Serialized


# =============================================================================
# Line Items
# =============================================================================


class ProductInfo(BaseModel):
    """Product as handed to add-to-cart by the catalog or scanner flow."""

    product_id: int = Field(validation_alias=AliasChoices("product_id", "productId", "id"))
    product_name: str = Field(default="", validation_alias=AliasChoices("product_name", "productName", "name"))
    sku: str = Field(default="", validation_alias=AliasChoices("sku", "productSku", "product_sku"))
    unit_price: Decimal = Field(ge=0, validation_alias=AliasChoices("unit_price", "unitPrice", "price"))
    unit_cost: Decimal | None = Field(default=None, ge=0, validation_alias=AliasChoices("unit_cost", "unitCost", "cost"))
    taxable: bool = True


class LineItem(BaseModel):
    """One line of the cart."""

    id: str = Field(default_factory=generate_item_id)
    product_id: int
    product_name: str = ""
    sku: str = ""
    unit_price: Decimal = Field(ge=0)
    unit_cost: Decimal | None = None
    quantity: int = Field(default=1, ge=1)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    taxable: bool = True
    serial_number: str | None = None
    price_override: bool = False
    price_override_reason: str | None = None
    # Price before the first manual override, kept for audit
    original_price: Decimal | None = None
    source_escalation_id: int | None = None
    from_quote: bool = False

    @property
    def identity(self) -> ItemIdentity:
        if self.serial_number:
            return Serialized(item_id=self.id, serial_number=self.serial_number)
        return Fungible(product_id=self.product_id)


# =============================================================================
# Customer, Discounts, Promotions
# =============================================================================


class Customer(BaseModel):
    """Customer attached to the sale."""

    id: int = Field(validation_alias=AliasChoices("id", "customer_id", "customerId"))
    name: str = ""
    email: str | None = None
    phone: str | None = None
    pricing_tier: str | None = None
    marketing_source: str | None = Field(
        default=None, validation_alias=AliasChoices("marketing_source", "marketingSource")
    )
    marketing_source_detail: str | None = Field(
        default=None, validation_alias=AliasChoices("marketing_source_detail", "marketingSourceDetail")
    )


class CartDiscount(BaseModel):
    """Cart-level dollar discount."""

    amount: Decimal = Field(default=Decimal("0"), ge=0)
    reason: str = ""


class Promotion(BaseModel):
    """Applied promotion code."""

    id: int
    code: str
    name: str = ""
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)


class Fulfillment(BaseModel):
    """How the order leaves the store."""

    type: FulfillmentKind
    fee: Decimal = Field(default=Decimal("0"), ge=0)
    scheduled_date: str | None = None  # YYYY-MM-DD
    scheduled_time_start: str | None = None
    scheduled_time_end: str | None = None
    address: dict | None = None
    zone_id: int | None = None
    notes: str | None = None


class TradeIn(BaseModel):
    """Trade-in credit produced by the external assessment flow."""

    id: int
    brand: str = ""
    model: str = ""
    condition: str = ""
    final_value: Decimal = Field(default=Decimal("0"), ge=0)
    requires_approval: bool = False
    status: TradeInState = "pending"


class CommissionSplit(BaseModel):
    """Split of commission between the primary salesperson and a second rep."""

    enabled: bool = False
    secondary_rep_id: int | None = None
    secondary_rep_name: str | None = None
    primary_pct: Decimal = Field(default=Decimal("100"), ge=0, le=100)
    secondary_pct: Decimal = Field(default=Decimal("0"), ge=0, le=100)


# =============================================================================
# Cart State
# =============================================================================


class CartState(BaseModel):
    """The whole active sale."""

    items: list[LineItem] = Field(default_factory=list)
    customer: Customer | None = None
    quote_id: int | None = None
    discount: CartDiscount = Field(default_factory=CartDiscount)
    promotion: Promotion | None = None
    jurisdiction: str = Field(default_factory=lambda: settings.default_jurisdiction)
    salesperson_id: int | None = None
    commission_split: CommissionSplit | None = None
    fulfillment: Fulfillment | None = None
    trade_ins: list[TradeIn] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """No items and no trade-ins."""
        return not self.items and not self.trade_ins

    def find_item(self, item_id: str) -> LineItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_fungible(self, product_id: int) -> LineItem | None:
        """First mergeable line for ``product_id``."""
        target = Fungible(product_id=product_id)
        for item in self.items:
            if item.identity == target:
                return item
        return None


# =============================================================================
# Quotes
# =============================================================================


class QuoteItem(BaseModel):
    """Line of a quote being converted into a sale."""

    product_id: int = Field(validation_alias=AliasChoices("product_id", "productId"))
    product_name: str = Field(default="", validation_alias=AliasChoices("product_name", "productName", "name"))
    sku: str = Field(default="", validation_alias=AliasChoices("sku", "productSku", "product_sku"))
    unit_price: Decimal = Field(
        default=Decimal("0"), ge=0, validation_alias=AliasChoices("unit_price", "unitPrice", "price")
    )
    unit_cost: Decimal | None = Field(default=None, validation_alias=AliasChoices("unit_cost", "unitCost", "cost"))
    quantity: int = Field(default=1, ge=1)
    discount_percent: Decimal = Field(
        default=Decimal("0"), ge=0, le=100, validation_alias=AliasChoices("discount_percent", "discountPercent")
    )
    taxable: bool = True


class QuoteData(BaseModel):
    """Quote payload accepted by load_from_quote."""

    quote_id: int = Field(validation_alias=AliasChoices("quote_id", "quoteId"))
    customer: Customer | None = None
    customer_id: int | None = Field(default=None, validation_alias=AliasChoices("customer_id", "customerId"))
    customer_name: str | None = Field(default=None, validation_alias=AliasChoices("customer_name", "customerName"))
    customer_email: str | None = Field(default=None, validation_alias=AliasChoices("customer_email", "customerEmail"))
    customer_phone: str | None = Field(default=None, validation_alias=AliasChoices("customer_phone", "customerPhone"))
    salesperson_id: int | None = Field(
        default=None, validation_alias=AliasChoices("salesperson_id", "salespersonId", "user_id", "userId")
    )
    items: list[QuoteItem] = Field(default_factory=list)
    discount_amount: Decimal = Field(
        default=Decimal("0"), ge=0, validation_alias=AliasChoices("discount_amount", "discountAmount")
    )
    discount_reason: str | None = Field(
        default=None, validation_alias=AliasChoices("discount_reason", "discountReason")
    )

    def resolved_customer(self) -> Customer | None:
        if self.customer is not None:
            return self.customer
        if self.customer_id is None:
            return None
        return Customer(
            id=self.customer_id,
            name=self.customer_name or "",
            email=self.customer_email,
            phone=self.customer_phone,
        )

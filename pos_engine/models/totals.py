"""
Derived totals. Never stored as the source of truth; recomputed on every read.
"""

from decimal import Decimal

from pydantic import BaseModel


class LineTotals(BaseModel):
    """Money breakdown for a single line item."""

    item_id: str
    effective_unit_price: Decimal
    volume_applied: bool = False
    line_amount: Decimal
    discount_amount: Decimal
    line_total: Decimal
    line_cost: Decimal | None = None
    margin: Decimal | None = None
    margin_percent: Decimal | None = None


class Totals(BaseModel):
    """Cart totals at cent precision."""

    item_count: int = 0
    subtotal: Decimal = Decimal("0.00")
    item_discount_total: Decimal = Decimal("0.00")
    cart_discount: Decimal = Decimal("0.00")
    promo_discount: Decimal = Decimal("0.00")
    discount_total: Decimal = Decimal("0.00")
    subtotal_after_discount: Decimal = Decimal("0.00")
    taxable_amount: Decimal = Decimal("0.00")

    jurisdiction: str = ""
    tax_label: str = ""
    hst_amount: Decimal = Decimal("0.00")
    gst_amount: Decimal = Decimal("0.00")
    pst_amount: Decimal = Decimal("0.00")
    total_tax: Decimal = Decimal("0.00")

    delivery_fee: Decimal = Decimal("0.00")
    order_total: Decimal = Decimal("0.00")

    trade_in_total: Decimal = Decimal("0.00")
    trade_in_excess: Decimal = Decimal("0.00")
    trade_in_count: int = 0
    has_pending_trade_ins: bool = False
    amount_to_pay: Decimal = Decimal("0.00")

    total_cost: Decimal = Decimal("0.00")
    margin: Decimal = Decimal("0.00")
    margin_percent: Decimal = Decimal("0.0")

    lines: list[LineTotals] = []

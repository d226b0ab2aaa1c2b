"""
Totals calculator.

Pure functions from a CartState (plus volume price overrides) to a Totals
record. No I/O and no hidden state: identical inputs give identical output.

Rounding: every line amount and line discount is rounded to cents, sums are
exact sums of rounded values, and each tax component is rounded on its own.
"""

from collections.abc import Mapping
from decimal import Decimal

from shared.config.constants import TradeInStatus
from shared.utils.money import ONE_HUNDRED, ZERO, percent_of, to_money, to_pct
from pos_engine.models.cart import CartState, LineItem, TradeIn
from pos_engine.models.totals import LineTotals, Totals
from pos_engine.pricing.tax_table import Jurisdiction, get_jurisdiction


VolumePrices = Mapping[int, Decimal]


# =============================================================================
# Line Helpers
# =============================================================================


def effective_unit_price(item: LineItem, volume_prices: VolumePrices | None = None) -> tuple[Decimal, bool]:
    """
    Unit price used for the line and whether a volume price was applied.

    Manually overridden prices win over volume pricing. A volume price is only
    used when it is actually lower than the base price.
    """
    if volume_prices and not item.price_override:
        volume_price = volume_prices.get(item.product_id)
        if volume_price is not None and volume_price < item.unit_price:
            return volume_price, True
    return item.unit_price, False


def compute_line(item: LineItem, volume_prices: VolumePrices | None = None) -> LineTotals:
    """Money breakdown for a single line."""
    unit_price, volume_applied = effective_unit_price(item, volume_prices)
    line_amount = to_money(unit_price * item.quantity)
    discount_amount = percent_of(line_amount, item.discount_percent)
    line_total = line_amount - discount_amount

    line_cost = None
    margin = None
    margin_percent = None
    if item.unit_cost is not None:
        line_cost = to_money(item.unit_cost * item.quantity)
        margin = line_total - line_cost
        margin_percent = to_pct(margin / line_total * ONE_HUNDRED) if line_total > 0 else Decimal("0.0")

    return LineTotals(
        item_id=item.id,
        effective_unit_price=unit_price,
        volume_applied=volume_applied,
        line_amount=line_amount,
        discount_amount=discount_amount,
        line_total=line_total,
        line_cost=line_cost,
        margin=margin,
        margin_percent=margin_percent,
    )


def line_total(item: LineItem, volume_prices: VolumePrices | None = None) -> Decimal:
    return compute_line(item, volume_prices).line_total


def line_discount(item: LineItem, volume_prices: VolumePrices | None = None) -> Decimal:
    return compute_line(item, volume_prices).discount_amount


# =============================================================================
# Tax
# =============================================================================


def compute_taxes(taxable_amount: Decimal, jurisdiction: Jurisdiction) -> tuple[Decimal, Decimal, Decimal]:
    """
    Tax components (hst, gst, pst) on ``taxable_amount``, each rounded to cents.

    For compounding jurisdictions the PST base is taxable amount + rounded GST.
    """
    hst = to_money(taxable_amount * jurisdiction.hst)
    gst = to_money(taxable_amount * jurisdiction.gst)
    pst_base = taxable_amount + gst if jurisdiction.compound_pst else taxable_amount
    pst = to_money(pst_base * jurisdiction.pst)
    return hst, gst, pst


def _taxable_share(after_discount: Decimal, subtotal: Decimal, taxable_subtotal: Decimal) -> Decimal:
    """Portion of the discounted subtotal that is taxable, with cart discounts pro-rated."""
    if subtotal <= 0 or taxable_subtotal <= 0:
        return ZERO
    if taxable_subtotal == subtotal:
        return after_discount
    return to_money(after_discount * taxable_subtotal / subtotal)


# =============================================================================
# Trade-ins
# =============================================================================


def trade_in_credit(trade_ins: list[TradeIn]) -> Decimal:
    """Uncapped credit from trade-ins that still count toward the order."""
    return sum(
        (to_money(ti.final_value) for ti in trade_ins if ti.status not in TradeInStatus.NO_CREDIT),
        ZERO,
    )


# =============================================================================
# Totals
# =============================================================================


def compute_totals(state: CartState, volume_prices: VolumePrices | None = None) -> Totals:
    """
    Compute cart totals.

    Invariants:
        order_total = subtotal_after_discount + total_tax + delivery_fee
        trade_in_total = min(credit, order_total)
        amount_to_pay = max(0, order_total - trade_in_total)
    """
    lines = [compute_line(item, volume_prices) for item in state.items]

    item_count = sum(item.quantity for item in state.items)
    subtotal = sum((line.line_total for line in lines), ZERO)
    item_discount_total = sum((line.discount_amount for line in lines), ZERO)
    taxable_subtotal = sum(
        (line.line_total for line, item in zip(lines, state.items) if item.taxable),
        ZERO,
    )
    total_cost = sum((line.line_cost for line in lines if line.line_cost is not None), ZERO)

    cart_discount = to_money(state.discount.amount)
    promo_discount = to_money(state.promotion.discount_amount) if state.promotion else to_money(ZERO)
    subtotal_after = max(to_money(ZERO), subtotal - cart_discount - promo_discount)
    discount_total = item_discount_total + cart_discount + promo_discount

    jurisdiction = get_jurisdiction(state.jurisdiction)
    taxable_amount = _taxable_share(subtotal_after, subtotal, taxable_subtotal)
    hst, gst, pst = compute_taxes(taxable_amount, jurisdiction)
    total_tax = hst + gst + pst

    delivery_fee = to_money(state.fulfillment.fee) if state.fulfillment else to_money(ZERO)
    order_total = subtotal_after + total_tax + delivery_fee

    credit = trade_in_credit(state.trade_ins)
    trade_in_total = min(credit, order_total)
    trade_in_excess = max(to_money(ZERO), credit - order_total)
    amount_to_pay = max(to_money(ZERO), order_total - trade_in_total)

    margin = subtotal - total_cost
    margin_percent = to_pct(margin / subtotal * ONE_HUNDRED) if subtotal > 0 else Decimal("0.0")

    return Totals(
        item_count=item_count,
        subtotal=to_money(subtotal),
        item_discount_total=to_money(item_discount_total),
        cart_discount=cart_discount,
        promo_discount=promo_discount,
        discount_total=to_money(discount_total),
        subtotal_after_discount=to_money(subtotal_after),
        taxable_amount=to_money(taxable_amount),
        jurisdiction=jurisdiction.code,
        tax_label=jurisdiction.label,
        hst_amount=hst,
        gst_amount=gst,
        pst_amount=pst,
        total_tax=to_money(total_tax),
        delivery_fee=delivery_fee,
        order_total=to_money(order_total),
        trade_in_total=to_money(trade_in_total),
        trade_in_excess=to_money(trade_in_excess),
        trade_in_count=len(state.trade_ins),
        has_pending_trade_ins=any(
            ti.requires_approval and ti.status == TradeInStatus.PENDING for ti in state.trade_ins
        ),
        amount_to_pay=to_money(amount_to_pay),
        total_cost=to_money(total_cost),
        margin=to_money(margin),
        margin_percent=margin_percent,
        lines=lines,
    )

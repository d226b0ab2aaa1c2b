"""
Property-based tests with Hypothesis.
"""

from decimal import Decimal

from hypothesis import given, settings, strategies as st

from pos_engine.models.cart import CartDiscount, CartState, Fulfillment, LineItem, TradeIn
from pos_engine.pricing.tax_table import TAX_TABLE
from pos_engine.pricing.totals import compute_totals
from pos_engine.services.cart_state import clamp_percent
from pos_engine.services.discount_authority import compute_ceiling
from pos_engine.services.transaction_assembler import suggested_cash_amounts
from tests.conftest import make_tier


money = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("5000"), places=2)
percent = st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=1)

line_items = st.builds(
    LineItem,
    product_id=st.integers(min_value=1, max_value=50),
    unit_price=money,
    quantity=st.integers(min_value=1, max_value=20),
    discount_percent=percent,
    taxable=st.booleans(),
)


@st.composite
def carts(draw):
    return CartState(
        items=draw(st.lists(line_items, max_size=6)),
        discount=CartDiscount(amount=draw(st.decimals(min_value=Decimal("0"), max_value=Decimal("500"), places=2))),
        fulfillment=draw(
            st.one_of(st.none(), st.builds(Fulfillment, type=st.just("local_delivery"), fee=money))
        ),
        trade_ins=draw(
            st.lists(
                st.builds(
                    TradeIn,
                    id=st.integers(min_value=1, max_value=10_000),
                    final_value=money,
                    status=st.sampled_from(["pending", "approved", "rejected"]),
                ),
                max_size=3,
                unique_by=lambda t: t.id,
            )
        ),
        jurisdiction=draw(st.sampled_from(sorted(TAX_TABLE))),
    )


class TestTotalsProperties:
    """Invariants that hold for any cart."""

    @given(state=carts())
    @settings(max_examples=100)
    def test_order_total_identity(self, state):
        """Property: order total is the sum of its parts."""
        totals = compute_totals(state)
        assert totals.order_total == totals.subtotal_after_discount + totals.total_tax + totals.delivery_fee
        assert totals.total_tax == totals.hst_amount + totals.gst_amount + totals.pst_amount

    @given(state=carts())
    @settings(max_examples=100)
    def test_trade_in_never_exceeds_order(self, state):
        """Property: trade-in credit is capped and nothing is owed below zero."""
        totals = compute_totals(state)
        assert Decimal("0") <= totals.trade_in_total <= totals.order_total
        assert totals.amount_to_pay >= 0
        assert totals.trade_in_total + totals.amount_to_pay == totals.order_total

    @given(state=carts())
    @settings(max_examples=50)
    def test_amounts_are_in_cents(self, state):
        """Property: every money figure has at most two decimal places."""
        totals = compute_totals(state)
        for value in (totals.subtotal, totals.total_tax, totals.order_total, totals.amount_to_pay):
            assert value == value.quantize(Decimal("0.01"))

    @given(state=carts())
    @settings(max_examples=50)
    def test_taxable_amount_bounded(self, state):
        totals = compute_totals(state)
        assert Decimal("0") <= totals.taxable_amount <= totals.subtotal_after_discount


class TestCeilingProperties:
    """Discount ceiling bounds."""

    @given(
        price=money,
        cost=st.one_of(st.none(), money),
        floor_pct=st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=1),
    )
    @settings(max_examples=100)
    def test_ceiling_within_tier_limits(self, price, cost, floor_pct):
        """Property: ceiling is never negative and never above the tier's largest limit."""
        ceiling = compute_ceiling(make_tier(min_margin_floor_pct=floor_pct), price, cost)
        assert Decimal("0") <= ceiling.max_pct <= Decimal("10")

    @given(
        price=money,
        cost=money,
        floors=st.lists(
            st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2), min_size=2, max_size=2
        ),
    )
    @settings(max_examples=100)
    def test_higher_margin_floor_never_raises_ceiling(self, price, cost, floors):
        """Property: raising min_margin_floor_pct never increases the ceiling."""
        low, high = sorted(floors)
        looser = compute_ceiling(make_tier(min_margin_floor_pct=low), price, cost)
        stricter = compute_ceiling(make_tier(min_margin_floor_pct=high), price, cost)
        assert stricter.max_pct <= looser.max_pct

    @given(price=money, cost=money, floor_pct=st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2))
    @settings(max_examples=100)
    def test_ceiling_keeps_price_above_cost_floor(self, price, cost, floor_pct):
        """Property: the published ceiling never prices a unit below the cost floor."""
        tier = make_tier(
            max_discount_pct_high_margin=Decimal("50"),
            max_discount_pct_standard=Decimal("50"),
            min_margin_floor_pct=floor_pct,
        )
        ceiling = compute_ceiling(tier, price, cost)
        if ceiling.max_pct > 0:
            assert price * (1 - ceiling.max_pct / 100) >= cost * (1 + floor_pct / 100)

    @given(value=st.decimals(allow_nan=False, allow_infinity=False, min_value=-1000, max_value=1000))
    def test_clamp_percent_range(self, value):
        assert Decimal("0") <= clamp_percent(value) <= Decimal("100")


class TestCashSuggestionProperties:
    """Quick-tender suggestions."""

    @given(total=money)
    @settings(max_examples=100)
    def test_suggestions_cover_total(self, total):
        suggestions = suggested_cash_amounts(total)
        assert suggestions[0] == total
        assert suggestions == sorted(suggestions)
        assert len(suggestions) <= 5
        assert all(s >= total for s in suggestions)

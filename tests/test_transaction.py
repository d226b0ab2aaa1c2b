"""
Tests for transaction assembly and checkout.

Tests verify:
- Payload projection from cart and totals
- Checkout preconditions and payment validation
- Cart is cleared only after settlement succeeds
- Cash change and quick-tender suggestions
"""

from decimal import Decimal

import pytest

from shared.utils.exceptions import (
    BackendError,
    EmptyCartError,
    MissingSalespersonError,
    NoActiveShiftError,
    PaymentMismatchError,
    TierNotLoadedError,
    ValidationError,
)
from pos_engine.models.transaction import Payment, TransactionResult
from pos_engine.pricing.totals import compute_totals
from pos_engine.services.transaction_assembler import (
    CheckoutService,
    assemble_transaction,
    calculate_change,
    suggested_cash_amounts,
)


def _cash(amount, **kwargs) -> Payment:
    return Payment(payment_method="cash", amount=Decimal(str(amount)), **kwargs)


@pytest.fixture
def shift():
    return {"id": 42}


@pytest.fixture
def checkout(cart, loaded_authority, settlement_client, shift):
    return CheckoutService(
        cart,
        loaded_authority,
        settlement_client,
        totals=lambda: compute_totals(cart.current()),
        shift_id=lambda: shift["id"],
    )


class TestAssembleTransaction:
    """Pure payload projection."""

    def test_payload_mirrors_cart(self, cart, sofa, gift_card):
        cart.add_item(sofa, quantity=2, discount_percent=10)
        cart.add_item(gift_card)
        cart.set_customer({"id": 55, "name": "Dana", "marketing_source": "referral"})
        cart.set_cart_discount("5.00", "Loyalty")
        cart.set_fulfillment({"type": "local_delivery", "fee": "49.00", "zone_id": 3})
        cart.add_trade_in({"id": 11, "final_value": "30.00", "status": "approved"})
        cart.add_trade_in({"id": 12, "final_value": "20.00", "status": "rejected"})
        state = cart.current()
        totals = compute_totals(state)

        payload = assemble_transaction(state, totals, [_cash(totals.amount_to_pay)], shift_id=42)
        wire = payload.to_wire()

        assert wire["shiftId"] == 42
        assert wire["customerId"] == 55
        assert wire["salespersonId"] == 7
        assert wire["taxProvince"] == "ON"
        assert wire["deliveryFee"] == 49.0
        assert wire["discountAmount"] == 5.0
        assert wire["discountReason"] == "Loyalty"
        assert wire["marketingSource"] == "referral"
        assert [i["productId"] for i in wire["items"]] == [1, 3]
        assert wire["items"][0]["discountPercent"] == 10.0
        assert wire["items"][1]["taxable"] is False
        assert wire["tradeIns"] == [{"assessmentId": 11, "creditAmount": 30.0}]
        assert wire["amountToPay"] == float(totals.amount_to_pay)
        assert wire["fulfillment"]["zone_id"] == 3

    def test_volume_price_is_sent_as_unit_price(self, cart, sofa):
        cart.add_item(sofa, quantity=5)
        state = cart.current()
        totals = compute_totals(state, {1: Decimal("90.00")})

        payload = assemble_transaction(state, totals, [], shift_id=1)

        assert payload.items[0].unit_price == Decimal("90.00")

    def test_commission_split_payload(self, cart, sofa):
        cart.add_item(sofa)
        cart.set_commission_split({"enabled": True, "secondary_rep_id": 8, "primary_pct": 60, "secondary_pct": 40})
        state = cart.current()

        payload = assemble_transaction(state, compute_totals(state), [], shift_id=1)

        shares = payload.commission_split.splits
        assert [(s.user_id, s.split_percentage, s.role) for s in shares] == [
            (7, Decimal("60"), "primary"),
            (8, Decimal("40"), "secondary"),
        ]


class TestProcessTransaction:
    """Checkout flow."""

    @pytest.mark.asyncio
    async def test_success_settles_and_clears(self, checkout, cart, settlement_client, sofa):
        cart.add_item(sofa)

        result = await checkout.process_transaction([_cash("113.00")])

        assert result.transaction_id == 9001
        assert cart.current().items == []
        payload = settlement_client.create_transaction.await_args.args[0]
        assert payload.amount_to_pay == Decimal("113.00")

    @pytest.mark.asyncio
    async def test_split_tender_within_tolerance(self, checkout, cart, sofa):
        cart.add_item(sofa)
        payments = [_cash("50.00"), Payment(payment_method="debit", amount=Decimal("62.99"), card_last_four="4242")]

        await checkout.process_transaction(payments)

        assert cart.current().items == []

    @pytest.mark.asyncio
    async def test_accepts_camel_case_payment_dicts(self, checkout, cart, sofa):
        cart.add_item(sofa)
        await checkout.process_transaction([{"paymentMethod": "credit", "amount": 113.0}])
        assert cart.current().items == []

    @pytest.mark.asyncio
    async def test_cash_change_is_recorded(self, checkout, cart, settlement_client, sofa):
        cart.add_item(sofa)

        await checkout.process_transaction([_cash("113.00", cash_tendered=Decimal("120.00"))])

        payment = settlement_client.create_transaction.await_args.args[0].payments[0]
        assert payment.change_given == Decimal("7.00")

    @pytest.mark.asyncio
    async def test_cash_tendered_below_amount(self, checkout, cart, settlement_client, sofa):
        cart.add_item(sofa)

        with pytest.raises(ValidationError, match="Cash tendered"):
            await checkout.process_transaction([_cash("113.00", cash_tendered=Decimal("100.00"))])

        settlement_client.create_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lines_added_during_settlement_survive(self, checkout, cart, settlement_client, sofa, lamp):
        cart.add_item(sofa)
        cart.set_customer({"id": 33, "name": "Jordan"})
        added = {}

        async def settle_while_ringing_up(payload):
            added["item"] = cart.add_item(lamp)
            return TransactionResult(transaction_id=9002)

        settlement_client.create_transaction.side_effect = settle_while_ringing_up

        await checkout.process_transaction([_cash("113.00")])

        state = cart.current()
        assert [item.id for item in state.items] == [added["item"].id]
        assert state.customer.id == 33
        sent = settlement_client.create_transaction.await_args.args[0]
        assert [item.product_id for item in sent.items] == [1]

    @pytest.mark.asyncio
    async def test_settlement_failure_keeps_cart(self, checkout, cart, settlement_client, sofa):
        settlement_client.create_transaction.side_effect = BackendError("settlement", status_code=500)
        cart.add_item(sofa)

        with pytest.raises(BackendError):
            await checkout.process_transaction([_cash("113.00")])

        assert len(cart.current().items) == 1

    @pytest.mark.asyncio
    async def test_payment_mismatch(self, checkout, cart, settlement_client, sofa):
        cart.add_item(sofa)

        with pytest.raises(PaymentMismatchError):
            await checkout.process_transaction([_cash("100.00")])

        settlement_client.create_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_payments(self, checkout, cart, sofa):
        cart.add_item(sofa)
        with pytest.raises(ValidationError):
            await checkout.process_transaction([])

    @pytest.mark.asyncio
    async def test_trade_in_covering_total_needs_no_payment(self, checkout, cart, sofa):
        cart.add_item(sofa)
        cart.add_trade_in({"id": 11, "final_value": "500.00", "status": "approved"})

        await checkout.process_transaction([])

        assert cart.current().is_empty

    @pytest.mark.asyncio
    async def test_deposit_must_be_partial(self, checkout, cart, sofa):
        cart.add_item(sofa)

        with pytest.raises(ValidationError):
            await checkout.process_transaction([_cash("113.00", is_deposit=True)])

        result = await checkout.process_transaction([_cash("20.00", is_deposit=True)])
        assert result.transaction_id == 9001

    @pytest.mark.asyncio
    async def test_deposit_must_be_single_payment(self, checkout, cart, sofa):
        cart.add_item(sofa)
        with pytest.raises(ValidationError):
            await checkout.process_transaction([_cash("10.00", is_deposit=True), _cash("10.00")])

    @pytest.mark.asyncio
    async def test_empty_cart(self, checkout):
        with pytest.raises(EmptyCartError):
            await checkout.process_transaction([_cash("1.00")])

    @pytest.mark.asyncio
    async def test_no_shift(self, checkout, cart, shift, sofa):
        cart.add_item(sofa)
        shift["id"] = None
        with pytest.raises(NoActiveShiftError):
            await checkout.process_transaction([_cash("113.00")])

    @pytest.mark.asyncio
    async def test_missing_salesperson(self, checkout, cart, sofa):
        cart.add_item(sofa)
        cart.set_salesperson(None)
        with pytest.raises(MissingSalespersonError):
            await checkout.process_transaction([_cash("113.00")])

    @pytest.mark.asyncio
    async def test_tier_not_loaded(self, authority, cart, settlement_client, sofa):
        service = CheckoutService(
            cart, authority, settlement_client, totals=lambda: compute_totals(cart.current()), shift_id=lambda: 1
        )
        cart.add_item(sofa)
        with pytest.raises(TierNotLoadedError):
            await service.process_transaction([_cash("113.00")])

    @pytest.mark.asyncio
    async def test_invalid_payment_dict(self, checkout, cart, sofa):
        cart.add_item(sofa)
        with pytest.raises(ValidationError):
            await checkout.process_transaction([{"paymentMethod": "cash", "amount": -5}])


class TestValidateForCheckout:
    """Display-oriented validation."""

    def test_lists_every_problem(self, authority, cart, settlement_client, sofa):
        service = CheckoutService(
            cart, authority, settlement_client, totals=lambda: compute_totals(cart.current()), shift_id=lambda: None
        )
        cart.set_salesperson(None)

        validation = service.validate_for_checkout()

        assert validation.is_valid is False
        assert "Cart is empty" in validation.errors
        assert len(validation.errors) >= 4

    def test_flags_fully_discounted_lines(self, checkout, cart, sofa, lamp):
        cart.add_item(sofa, discount_percent=100)
        cart.add_item(lamp)

        validation = checkout.validate_for_checkout()

        assert validation.errors == ["1 item(s) have 100% discount"]

    def test_valid_cart(self, checkout, cart, sofa):
        cart.add_item(sofa)
        assert checkout.validate_for_checkout().is_valid is True


class TestCashHelpers:
    """Change calculation and tender suggestions."""

    def test_change_due(self):
        change = calculate_change("120", Decimal("113.00"))
        assert change.change == Decimal("7.00")
        assert change.is_short is False
        assert change.is_exact is False

    def test_short(self):
        change = calculate_change(100, Decimal("113.00"))
        assert change.is_short is True
        assert change.short_amount == Decimal("13.00")
        assert change.change == Decimal("0")

    def test_exact(self):
        assert calculate_change("113.00", Decimal("113.00")).is_exact is True

    def test_suggestions(self):
        assert suggested_cash_amounts(Decimal("113.00")) == [
            Decimal("113.00"),
            Decimal("115.00"),
            Decimal("120.00"),
        ]

    def test_suggestions_include_bills(self):
        assert suggested_cash_amounts(Decimal("37.25")) == [
            Decimal("37.25"),
            Decimal("40.00"),
            Decimal("50.00"),
        ]

    def test_no_suggestions_when_nothing_due(self):
        assert suggested_cash_amounts(Decimal("0.00")) == []

    def test_service_helpers_use_amount_to_pay(self, checkout, cart, sofa):
        cart.add_item(sofa)
        cart.add_trade_in({"id": 11, "final_value": "13.00"})

        assert checkout.calculate_change("100").is_exact is True
        assert checkout.suggested_cash_amounts()[0] == Decimal("100.00")

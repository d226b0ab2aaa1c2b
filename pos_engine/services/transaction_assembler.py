"""
Transaction assembly and checkout.

``assemble_transaction`` is a pure projection of the final cart and payments
onto the settlement contract. ``CheckoutService`` validates the sale, hands
the payload to settlement and clears the cart once settlement accepts it.
"""

import math
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ValidationError as PydanticValidationError

from shared.config.constants import ErrorMessages, Limits, PaymentMethod, TradeInStatus
from shared.config.logging import checkout_logger as logger
from shared.utils.exceptions import (
    EmptyCartError,
    MissingSalespersonError,
    NoActiveShiftError,
    PaymentMismatchError,
    TierNotLoadedError,
    ValidationError,
)
from shared.utils.money import ZERO, to_decimal, to_money
from pos_engine.clients.settlement import SettlementClient
from pos_engine.models.cart import CartState
from pos_engine.models.totals import Totals
from pos_engine.models.transaction import (
    CommissionShare,
    CommissionSplitPayload,
    Payment,
    PromotionRef,
    TradeInCredit,
    TransactionItem,
    TransactionPayload,
    TransactionResult,
)
from pos_engine.services.cart_state import CartStateManager
from pos_engine.services.discount_authority import DiscountAuthorityEngine


# =============================================================================
# Assembly (pure)
# =============================================================================


def assemble_transaction(
    state: CartState,
    totals: Totals,
    payments: Sequence[Payment],
    shift_id: int,
) -> TransactionPayload:
    """Canonical settlement payload. Carries no tier, ceiling or cache data."""
    customer = state.customer

    commission_split = None
    split = state.commission_split
    if split is not None and split.enabled:
        commission_split = CommissionSplitPayload(
            splits=[
                CommissionShare(user_id=state.salesperson_id, split_percentage=split.primary_pct, role="primary"),
                CommissionShare(user_id=split.secondary_rep_id, split_percentage=split.secondary_pct, role="secondary"),
            ]
        )

    return TransactionPayload(
        shift_id=shift_id,
        customer_id=customer.id if customer else None,
        quote_id=state.quote_id,
        salesperson_id=state.salesperson_id,
        items=[
            TransactionItem(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=line.effective_unit_price,
                unit_cost=item.unit_cost,
                discount_percent=item.discount_percent,
                serial_number=item.serial_number,
                taxable=item.taxable,
            )
            for item, line in zip(state.items, totals.lines)
        ],
        payments=list(payments),
        discount_amount=totals.cart_discount,
        discount_reason=state.discount.reason or None,
        tax_province=totals.jurisdiction,
        delivery_fee=totals.delivery_fee,
        promotion=(
            PromotionRef(
                promotion_id=state.promotion.id,
                code=state.promotion.code,
                discount_amount=totals.promo_discount,
            )
            if state.promotion
            else None
        ),
        fulfillment=state.fulfillment.model_dump(mode="json") if state.fulfillment else None,
        trade_ins=[
            TradeInCredit(assessment_id=ti.id, credit_amount=to_money(ti.final_value))
            for ti in state.trade_ins
            if ti.status not in TradeInStatus.NO_CREDIT
        ],
        commission_split=commission_split,
        trade_in_total=totals.trade_in_total,
        trade_in_excess=totals.trade_in_excess,
        amount_to_pay=totals.amount_to_pay,
        is_deposit=any(p.is_deposit for p in payments),
        marketing_source=customer.marketing_source if customer else None,
        marketing_source_detail=customer.marketing_source_detail if customer else None,
    )


# =============================================================================
# Cash helpers (pure)
# =============================================================================


class ChangeCalculation(BaseModel):
    cash_tendered: Decimal
    total_due: Decimal
    change: Decimal
    is_exact: bool
    is_short: bool
    short_amount: Decimal


def calculate_change(cash_tendered: Any, total_due: Decimal) -> ChangeCalculation:
    tendered = to_money(cash_tendered)
    difference = tendered - total_due
    return ChangeCalculation(
        cash_tendered=tendered,
        total_due=total_due,
        change=max(ZERO, difference),
        is_exact=abs(difference) < Limits.PAYMENT_TOLERANCE,
        is_short=difference < 0,
        short_amount=-difference if difference < 0 else to_money(ZERO),
    )


def suggested_cash_amounts(total_due: Decimal, limit: int = 5) -> list[Decimal]:
    """Quick-tender buttons: exact, next $5/$10/$20, and common bills up to twice the total."""
    if total_due <= 0:
        return []

    suggestions = {to_money(total_due)}
    for step in (5, 10, 20):
        rounded = Decimal(math.ceil(total_due / step) * step)
        if rounded > total_due and (step != 20 or rounded <= total_due + 20):
            suggestions.add(to_money(rounded))
    for bill in (20, 50, 100):
        amount = Decimal(bill)
        if total_due <= amount <= total_due * 2:
            suggestions.add(to_money(amount))

    return sorted(a for a in suggestions if a >= total_due)[:limit]


def _with_cash_change(payment: Payment) -> Payment:
    """Fill change_given on a cash tender that records the cash handed over."""
    if payment.payment_method != PaymentMethod.CASH or payment.cash_tendered is None:
        return payment
    if payment.cash_tendered < payment.amount:
        raise ValidationError(
            "Cash tendered is less than the payment amount",
            cash_tendered=payment.cash_tendered,
            amount=payment.amount,
        )
    if payment.change_given is not None:
        return payment
    return payment.model_copy(update={"change_given": to_money(payment.cash_tendered - payment.amount)})


# =============================================================================
# Checkout
# =============================================================================


class CheckoutValidation(BaseModel):
    is_valid: bool
    errors: list[str]


class CheckoutService:
    """
    Checkout orchestration for the active cart.

    Args:
        cart: Active cart manager.
        engine: Discount authority; must be loaded to check out.
        settlement: Settlement backend client.
        totals: Callable returning totals for the current cart.
        shift_id: Callable returning the open shift id, or None.
    """

    def __init__(
        self,
        cart: CartStateManager,
        engine: DiscountAuthorityEngine,
        settlement: SettlementClient,
        totals: Callable[[], Totals],
        shift_id: Callable[[], int | None],
    ):
        self._cart = cart
        self._engine = engine
        self._settlement = settlement
        self._totals = totals
        self._shift_id = shift_id

    def validate_for_checkout(self) -> CheckoutValidation:
        """Every reason the current cart cannot be checked out, for display."""
        state = self._cart.current()
        totals = self._totals()
        errors: list[str] = []

        if not state.items:
            errors.append(ErrorMessages.EMPTY_CART)
        if self._shift_id() is None:
            errors.append(ErrorMessages.NO_ACTIVE_SHIFT)
        if not self._engine.is_loaded:
            errors.append(ErrorMessages.NO_TIER)
        if totals.order_total <= 0:
            errors.append("Cart total must be greater than zero")
        if state.salesperson_id is None:
            errors.append(ErrorMessages.SALESPERSON_REQUIRED)

        zero_price = sum(1 for item in state.items if item.unit_price <= 0)
        if zero_price:
            errors.append(f"{zero_price} item(s) have zero price")
        fully_discounted = sum(1 for item in state.items if item.discount_percent >= 100)
        if fully_discounted:
            errors.append(f"{fully_discounted} item(s) have 100% discount")

        return CheckoutValidation(is_valid=not errors, errors=errors)

    def calculate_change(self, cash_tendered: Any) -> ChangeCalculation:
        return calculate_change(cash_tendered, self._totals().amount_to_pay)

    def suggested_cash_amounts(self) -> list[Decimal]:
        return suggested_cash_amounts(self._totals().amount_to_pay)

    async def process_transaction(self, payments: Sequence[Payment | dict]) -> TransactionResult:
        """
        Validate and settle the current cart. The cart is cleared only after
        settlement succeeds; on any failure it is left untouched.

        Raises:
            NoActiveShiftError, TierNotLoadedError: Checkout blocked.
            EmptyCartError, MissingSalespersonError, PaymentMismatchError,
            ValidationError: Bad sale or tender.
            BackendError: Settlement failed.
        """
        try:
            tenders = [p if isinstance(p, Payment) else Payment.model_validate(p) for p in payments]
        except PydanticValidationError as e:
            raise ValidationError("Invalid payment", errors=e.error_count()) from e
        tenders = [_with_cash_change(p) for p in tenders]

        shift_id = self._shift_id()
        if shift_id is None:
            raise NoActiveShiftError()
        if not self._engine.is_loaded:
            raise TierNotLoadedError()

        # Read state and totals now, at validation time
        state = self._cart.current()
        totals = self._totals()

        if not state.items:
            raise EmptyCartError("check out")
        if state.salesperson_id is None:
            raise MissingSalespersonError()
        self._validate_payments(tenders, totals)

        payload = assemble_transaction(state, totals, tenders, shift_id)
        logger.info(
            "Submitting transaction",
            shift_id=shift_id,
            item_count=totals.item_count,
            amount_to_pay=totals.amount_to_pay,
            is_deposit=payload.is_deposit,
        )
        result = await self._settlement.create_transaction(payload)

        self._cart.clear_settled(state)
        logger.info("Transaction completed", transaction_id=result.transaction_id)
        return result

    @staticmethod
    def _validate_payments(payments: Sequence[Payment], totals: Totals) -> None:
        amount_due = totals.amount_to_pay
        if not payments:
            if amount_due == 0:
                return
            raise ValidationError(ErrorMessages.NO_PAYMENTS)

        tendered = to_money(sum((to_decimal(p.amount) for p in payments), ZERO))

        if any(p.is_deposit for p in payments):
            if len(payments) != 1:
                raise ValidationError("Deposit payments must be a single payment")
            if tendered <= 0:
                raise ValidationError("Deposit amount must be greater than zero")
            if tendered >= amount_due:
                raise ValidationError("Deposit amount must be less than the amount due")
            return

        if abs(tendered - amount_due) > Limits.PAYMENT_TOLERANCE:
            raise PaymentMismatchError(tendered, amount_due)

"""
Cart State Manager.

Owns the active CartState. Every operation validates its input, builds the
next state on a copy and swaps it in only when the whole change succeeded, so
a failed operation never leaves a partial mutation behind. After each commit
the state is snapshotted to the local store and listeners are notified; neither
step can fail the mutation.

Always read state through ``current()`` at the point of use. A CartState held
across an ``await`` may be stale.
"""

from collections.abc import Callable
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from shared.config.constants import CartChangeKind, Limits
from shared.config.logging import cart_logger as logger, mask_email
from shared.config.settings import settings
from shared.utils.exceptions import (
    DuplicateEntityError,
    InvalidDiscountError,
    InvalidQuantityError,
    LineItemNotFoundError,
    TradeInNotFoundError,
    UnknownJurisdictionError,
    ValidationError,
)
from shared.utils.money import to_decimal, to_money
from pos_engine.clients.trade_in import TradeInClient
from pos_engine.models.cart import (
    CartDiscount,
    CartState,
    CommissionSplit,
    Customer,
    Fulfillment,
    LineItem,
    ProductInfo,
    Promotion,
    QuoteData,
    TradeIn,
    generate_item_id,
)
from pos_engine.pricing.tax_table import is_known_jurisdiction
from pos_engine.repositories.local_store import LocalStateRepository
from pos_engine.services.favorites import FavoritesTracker


CartListener = Callable[[CartState, CartChangeKind], None]


def clamp_percent(value: Any) -> Decimal:
    """Clamp a discount percentage into [0, 100]."""
    pct = to_decimal(value)
    if pct < Limits.MIN_DISCOUNT_PCT:
        return Limits.MIN_DISCOUNT_PCT
    if pct > Limits.MAX_DISCOUNT_PCT:
        return Limits.MAX_DISCOUNT_PCT
    return pct


def _check_quantity(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise InvalidQuantityError(quantity)
    if quantity < Limits.MIN_QUANTITY or quantity > Limits.MAX_QUANTITY:
        raise InvalidQuantityError(quantity)


class CartStateManager:
    """
    The single writer of the active cart.

    Args:
        store: Local store for snapshots. None disables persistence.
        default_jurisdiction: Tax region for new and cleared carts.
        default_salesperson_id: Session user; salesperson for new and cleared carts.
        favorites: Optional add-to-cart usage tracker.
        trade_in_client: Used to void trade-in assessments on removal.
        initial_state: Restored snapshot to start from.
    """

    def __init__(
        self,
        store: LocalStateRepository | None = None,
        default_jurisdiction: str | None = None,
        default_salesperson_id: int | None = None,
        favorites: FavoritesTracker | None = None,
        trade_in_client: TradeInClient | None = None,
        initial_state: CartState | None = None,
    ):
        self._store = store
        self._default_jurisdiction = (default_jurisdiction or settings.default_jurisdiction).upper()
        self._default_salesperson_id = default_salesperson_id
        self._favorites = favorites
        self._trade_in_client = trade_in_client
        self._listeners: list[CartListener] = []

        if initial_state is not None:
            state = initial_state.model_copy(deep=True)
            if state.salesperson_id is None:
                state.salesperson_id = default_salesperson_id
            self._state = state
        else:
            self._state = self._empty_state()

    # =========================================================================
    # Read access and subscription
    # =========================================================================

    def current(self) -> CartState:
        """The latest committed state. Treat as read-only."""
        return self._state

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def default_salesperson_id(self) -> int | None:
        return self._default_salesperson_id

    # =========================================================================
    # Commit pipeline
    # =========================================================================

    def _empty_state(self) -> CartState:
        return CartState(jurisdiction=self._default_jurisdiction, salesperson_id=self._default_salesperson_id)

    def _draft(self) -> CartState:
        return self._state.model_copy(deep=True)

    def _commit(self, state: CartState, kind: CartChangeKind) -> None:
        self._state = state
        self._persist(state)
        self._notify(state, kind)

    def _persist(self, state: CartState) -> None:
        if self._store is None:
            return
        try:
            self._store.save_cart(state)
        except (SQLAlchemyError, OSError) as e:
            # In-memory cart stays authoritative for the session
            logger.error("Cart snapshot failed", error=str(e))

    def _notify(self, state: CartState, kind: CartChangeKind) -> None:
        for listener in list(self._listeners):
            try:
                listener(state, kind)
            except Exception as e:
                logger.error("Cart listener failed", kind=kind.value, error=str(e), exc_info=True)

    @staticmethod
    def _require_item(state: CartState, item_id: str) -> LineItem:
        item = state.find_item(item_id)
        if item is None:
            raise LineItemNotFoundError(item_id)
        return item

    # =========================================================================
    # Items
    # =========================================================================

    def add_item(
        self,
        product: ProductInfo | dict,
        quantity: int = 1,
        discount_percent: Any = 0,
        serial_number: str | None = None,
    ) -> LineItem:
        """
        Add a product. Merges into an existing line of the same product unless
        a serial number is given, in which case the unit gets its own line.
        """
        info = product if isinstance(product, ProductInfo) else ProductInfo.model_validate(product)
        _check_quantity(quantity)
        serial = serial_number.strip() if serial_number else None

        state = self._draft()
        if serial:
            if quantity != 1:
                raise InvalidQuantityError(quantity, reason="serialized items are added one unit at a time")
            self._check_serial_unique(state, serial)
            item = self._new_line(info, 1, discount_percent, serial)
            state.items.append(item)
        else:
            item = state.find_fungible(info.product_id)
            if item is not None:
                new_quantity = item.quantity + quantity
                _check_quantity(new_quantity)
                item.quantity = new_quantity
            else:
                item = self._new_line(info, quantity, discount_percent, None)
                state.items.append(item)

        self._commit(state, CartChangeKind.ITEMS)
        logger.debug("Item added", product_id=info.product_id, quantity=quantity, serialized=bool(serial))

        if self._favorites is not None:
            self._favorites.record(info.product_id)
        return item

    @staticmethod
    def _new_line(info: ProductInfo, quantity: int, discount_percent: Any, serial: str | None) -> LineItem:
        return LineItem(
            product_id=info.product_id,
            product_name=info.product_name,
            sku=info.sku,
            unit_price=to_money(info.unit_price),
            unit_cost=info.unit_cost,
            quantity=quantity,
            discount_percent=clamp_percent(discount_percent),
            taxable=info.taxable,
            serial_number=serial,
        )

    @staticmethod
    def _check_serial_unique(state: CartState, serial: str, ignore_item_id: str | None = None) -> None:
        for existing in state.items:
            if existing.serial_number == serial and existing.id != ignore_item_id:
                raise DuplicateEntityError("Serial number", serial)

    def remove_item(self, item_id: str) -> None:
        state = self._draft()
        item = self._require_item(state, item_id)
        state.items.remove(item)
        self._commit(state, CartChangeKind.ITEMS)

    def remove_item_by_product_id(self, product_id: int) -> None:
        """Remove every line of a product."""
        state = self._draft()
        remaining = [item for item in state.items if item.product_id != product_id]
        if len(remaining) == len(state.items):
            raise LineItemNotFoundError(product_id=product_id)
        state.items = remaining
        self._commit(state, CartChangeKind.ITEMS)

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """Set a line's quantity. Anything below 1 removes the line."""
        if isinstance(quantity, int) and not isinstance(quantity, bool) and quantity < Limits.MIN_QUANTITY:
            self.remove_item(item_id)
            return
        _check_quantity(quantity)

        state = self._draft()
        item = self._require_item(state, item_id)
        if item.serial_number and quantity != 1:
            raise InvalidQuantityError(quantity, reason="serialized items have a quantity of 1")
        item.quantity = quantity
        self._commit(state, CartChangeKind.ITEMS)

    def update_quantity_by_product_id(self, product_id: int, quantity: int) -> None:
        item = self._state.find_fungible(product_id)
        if item is None:
            raise LineItemNotFoundError(product_id=product_id)
        self.update_quantity(item.id, quantity)

    def increment_quantity(self, item_id: str, by: int = 1) -> None:
        item = self._require_item(self._state, item_id)
        self.update_quantity(item_id, item.quantity + by)

    def decrement_quantity(self, item_id: str, by: int = 1) -> None:
        item = self._require_item(self._state, item_id)
        self.update_quantity(item_id, item.quantity - by)

    def apply_item_discount(
        self,
        item_id: str,
        discount_percent: Any,
        source_escalation_id: int | None = None,
    ) -> LineItem:
        """
        Set a line's discount percentage, clamped to [0, 100].

        This is the raw mutation. Salesperson-initiated discounts go through
        the discount authority engine, which calls this after validation.
        """
        state = self._draft()
        item = self._require_item(state, item_id)
        item.discount_percent = clamp_percent(discount_percent)
        item.source_escalation_id = source_escalation_id if item.discount_percent > 0 else None
        self._commit(state, CartChangeKind.ITEMS)
        return item

    def apply_item_discount_by_product_id(self, product_id: int, discount_percent: Any) -> None:
        """Set the discount on every line of a product."""
        state = self._draft()
        matched = [item for item in state.items if item.product_id == product_id]
        if not matched:
            raise LineItemNotFoundError(product_id=product_id)
        pct = clamp_percent(discount_percent)
        for item in matched:
            item.discount_percent = pct
            item.source_escalation_id = None
        self._commit(state, CartChangeKind.ITEMS)

    def clear_all_item_discounts(self) -> None:
        state = self._draft()
        for item in state.items:
            item.discount_percent = Decimal("0")
            item.source_escalation_id = None
        self._commit(state, CartChangeKind.ITEMS)

    def set_item_price(self, item_id: str, price: Any, reason: str) -> LineItem:
        """Manual price override. Clears the line discount and flags the override."""
        new_price = to_decimal(price)
        if new_price < 0:
            raise ValidationError("Price cannot be negative", item_id=item_id, price=new_price)
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to override a price", item_id=item_id)

        state = self._draft()
        item = self._require_item(state, item_id)
        if item.original_price is None:
            item.original_price = item.unit_price
        item.unit_price = to_money(new_price)
        item.price_override = True
        item.price_override_reason = reason.strip()
        item.discount_percent = Decimal("0")
        item.source_escalation_id = None
        self._commit(state, CartChangeKind.ITEMS)
        logger.info("Price overridden", item_id=item_id, price=item.unit_price, reason=item.price_override_reason)
        return item

    def set_item_serial(self, item_id: str, serial_number: str | None) -> LineItem:
        """
        Attach (or clear) a serial number. A multi-unit line is split so the
        serial lands on a line of its own.
        """
        serial = serial_number.strip() if serial_number else None
        state = self._draft()
        item = self._require_item(state, item_id)

        if not serial:
            item.serial_number = None
            self._commit(state, CartChangeKind.ITEMS)
            return item

        self._check_serial_unique(state, serial, ignore_item_id=item.id)
        if item.quantity > 1:
            item.quantity -= 1
            serialized = item.model_copy(update={"serial_number": serial, "quantity": 1}, deep=True)
            serialized.id = generate_item_id()
            state.items.insert(state.items.index(item) + 1, serialized)
            item = serialized
        else:
            item.serial_number = serial

        self._commit(state, CartChangeKind.ITEMS)
        return item

    # =========================================================================
    # Customer, discounts, promotions, fulfillment
    # =========================================================================

    def set_customer(self, customer: Customer | dict) -> None:
        value = customer if isinstance(customer, Customer) else Customer.model_validate(customer)
        state = self._draft()
        state.customer = value
        self._commit(state, CartChangeKind.CUSTOMER)
        logger.info("Customer attached", customer_id=value.id, email=mask_email(value.email))

    def clear_customer(self) -> None:
        state = self._draft()
        state.customer = None
        self._commit(state, CartChangeKind.CUSTOMER)

    def set_cart_discount(self, amount: Any, reason: str = "") -> None:
        value = to_decimal(amount)
        if value < 0:
            raise InvalidDiscountError(value, "amount cannot be negative")
        state = self._draft()
        state.discount = CartDiscount(amount=to_money(value), reason=reason or "")
        self._commit(state, CartChangeKind.DISCOUNT)

    def clear_cart_discount(self) -> None:
        state = self._draft()
        state.discount = CartDiscount()
        self._commit(state, CartChangeKind.DISCOUNT)

    def apply_promotion(self, promotion: Promotion | dict) -> None:
        value = promotion if isinstance(promotion, Promotion) else Promotion.model_validate(promotion)
        state = self._draft()
        state.promotion = value
        self._commit(state, CartChangeKind.PROMOTION)

    def clear_promotion(self) -> None:
        state = self._draft()
        state.promotion = None
        self._commit(state, CartChangeKind.PROMOTION)

    def set_fulfillment(self, fulfillment: Fulfillment | dict) -> None:
        value = fulfillment if isinstance(fulfillment, Fulfillment) else Fulfillment.model_validate(fulfillment)
        state = self._draft()
        state.fulfillment = value
        self._commit(state, CartChangeKind.FULFILLMENT)

    def clear_fulfillment(self) -> None:
        state = self._draft()
        state.fulfillment = None
        self._commit(state, CartChangeKind.FULFILLMENT)

    # =========================================================================
    # Trade-ins
    # =========================================================================

    def add_trade_in(self, trade_in: TradeIn | dict) -> None:
        value = trade_in if isinstance(trade_in, TradeIn) else TradeIn.model_validate(trade_in)
        state = self._draft()
        if any(existing.id == value.id for existing in state.trade_ins):
            raise DuplicateEntityError("Trade-in", str(value.id))
        state.trade_ins.append(value)
        self._commit(state, CartChangeKind.TRADE_INS)

    async def remove_trade_in(
        self,
        trade_in_id: int,
        void: bool = False,
        reason: str = "Removed from cart",
    ) -> None:
        """
        Remove a trade-in locally, then optionally void the assessment.
        The void is best-effort: local removal stands even if it fails.
        """
        state = self._draft()
        remaining = [ti for ti in state.trade_ins if ti.id != trade_in_id]
        if len(remaining) == len(state.trade_ins):
            raise TradeInNotFoundError(trade_in_id)
        state.trade_ins = remaining
        self._commit(state, CartChangeKind.TRADE_INS)

        if void and self._trade_in_client is not None:
            try:
                await self._trade_in_client.void_assessment(trade_in_id, reason)
            except Exception as e:
                logger.warning("Trade-in void failed, removed locally only", trade_in_id=trade_in_id, error=str(e))

    def clear_trade_ins(self) -> None:
        state = self._draft()
        state.trade_ins = []
        self._commit(state, CartChangeKind.TRADE_INS)

    # =========================================================================
    # Jurisdiction, salesperson, commission
    # =========================================================================

    def set_jurisdiction(self, code: str) -> None:
        if not is_known_jurisdiction(code):
            raise UnknownJurisdictionError(code)
        state = self._draft()
        state.jurisdiction = code.upper()
        self._commit(state, CartChangeKind.JURISDICTION)

    def set_salesperson(self, salesperson_id: int | None) -> None:
        state = self._draft()
        state.salesperson_id = salesperson_id
        self._commit(state, CartChangeKind.SALESPERSON)

    def set_commission_split(self, split: CommissionSplit | dict | None) -> None:
        value = None
        if split is not None:
            value = split if isinstance(split, CommissionSplit) else CommissionSplit.model_validate(split)
            if value.enabled and value.primary_pct + value.secondary_pct != 100:
                raise ValidationError(
                    "Commission split must total 100%",
                    primary_pct=value.primary_pct,
                    secondary_pct=value.secondary_pct,
                )
        state = self._draft()
        state.commission_split = value
        self._commit(state, CartChangeKind.SALESPERSON)

    # =========================================================================
    # Whole-cart operations
    # =========================================================================

    def load_from_quote(self, quote: QuoteData | dict) -> None:
        """
        Replace the cart with a quote's contents in one step.
        The quote is fully parsed before anything changes.
        """
        data = quote if isinstance(quote, QuoteData) else QuoteData.model_validate(quote)

        items = [
            LineItem(
                product_id=q.product_id,
                product_name=q.product_name,
                sku=q.sku,
                unit_price=to_money(q.unit_price),
                unit_cost=q.unit_cost,
                quantity=q.quantity,
                discount_percent=clamp_percent(q.discount_percent),
                taxable=q.taxable,
                from_quote=True,
            )
            for q in data.items
        ]
        state = CartState(
            items=items,
            customer=data.resolved_customer(),
            quote_id=data.quote_id,
            discount=CartDiscount(
                amount=to_money(data.discount_amount),
                reason=data.discount_reason or ("Quote discount" if data.discount_amount else ""),
            ),
            jurisdiction=self._state.jurisdiction,
            salesperson_id=data.salesperson_id if data.salesperson_id is not None else self._default_salesperson_id,
        )
        self._commit(state, CartChangeKind.LOADED)
        logger.info("Cart loaded from quote", quote_id=data.quote_id, item_count=len(items))

    def replace_state(self, state: CartState) -> None:
        """Swap in a whole state (held cart recall, restore)."""
        self._commit(state.model_copy(deep=True), CartChangeKind.LOADED)

    def clear_cart(self) -> None:
        """Reset every field: default jurisdiction, session salesperson, nothing else."""
        self._commit(self._empty_state(), CartChangeKind.CLEARED)

    def clear_settled(self, settled: CartState) -> None:
        """
        Clear the cart after ``settled`` was sold.

        Lines and trade-ins added after the snapshot was taken survive, together
        with the customer, jurisdiction and salesperson. Sale-level adjustments
        (discount, promotion, fulfillment, quote, split) went with the sale.
        """
        if self._state is settled:
            self.clear_cart()
            return

        sold_items = {item.id for item in settled.items}
        sold_trade_ins = {ti.id for ti in settled.trade_ins}
        items = [item for item in self._state.items if item.id not in sold_items]
        trade_ins = [ti for ti in self._state.trade_ins if ti.id not in sold_trade_ins]
        if not items and not trade_ins:
            self.clear_cart()
            return

        state = self._empty_state()
        state.items = [item.model_copy(deep=True) for item in items]
        state.trade_ins = [ti.model_copy(deep=True) for ti in trade_ins]
        state.customer = self._state.customer
        state.jurisdiction = self._state.jurisdiction
        state.salesperson_id = self._state.salesperson_id
        logger.warning(
            "Cart changed during settlement, keeping unsold lines",
            kept_items=len(state.items),
            kept_trade_ins=len(state.trade_ins),
        )
        self._commit(state, CartChangeKind.LOADED)

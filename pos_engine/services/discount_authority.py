"""
Discount Authority Engine.

Decides how far a salesperson may discount a line, applies discounts within
that limit after server re-validation, and routes anything above it through
manager escalation.

Per-proposal lifecycle:
    Normal -> Applying -> Applied | Rejected
    Normal -> Escalation pending -> Approved | Denied | Expired
    Approved (unused) -> applied to a line -> used

Tier and budget belong to the server. The engine only exposes the last fetched
values and re-fetches them after every accepted discount; it never decrements
the budget locally.
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from shared.config.constants import ErrorMessages, EscalationStatus, Limits
from shared.config.logging import authority_logger as logger
from shared.config.settings import settings
from shared.utils.exceptions import (
    AppException,
    AuthorityError,
    DiscountExceedsCeilingError,
    EscalationAlreadyUsedError,
    EscalationNotFoundError,
    InvalidTransitionError,
    LineItemNotFoundError,
    TierNotLoadedError,
    ValidationError,
)
from shared.utils.money import ONE_HUNDRED, ZERO, floor_pct, percent_of, to_money, to_pct
from pos_engine.clients.authority import DiscountAuthorityClient
from pos_engine.models.authority import (
    Budget,
    DiscountCeiling,
    DiscountPreview,
    DiscountRecord,
    DiscountTier,
    Escalation,
    EscalationRequest,
)
from pos_engine.models.cart import LineItem
from pos_engine.services.cart_state import CartStateManager, clamp_percent


# Preview colour bands (percent)
GREEN_ZONE_MAX = Decimal("5")
YELLOW_ZONE_MAX = Decimal("8")


# =============================================================================
# Pure calculations
# =============================================================================


def compute_ceiling(
    tier: DiscountTier,
    price: Decimal,
    cost: Decimal | None,
    unrestricted_ceiling: Decimal | None = None,
) -> DiscountCeiling:
    """
    Maximum discount percentage the tier allows on an item.

    effective = max(0, min(tier ceiling, cost-floor ceiling)) where the tier
    ceiling depends on whether the item's margin clears the high-margin
    threshold, and the cost-floor ceiling keeps the price above
    cost * (1 + min_margin_floor_pct / 100).
    """
    if tier.is_unrestricted:
        ceiling = settings.unrestricted_discount_ceiling_pct if unrestricted_ceiling is None else unrestricted_ceiling
        return DiscountCeiling(max_pct=to_pct(ceiling), is_unrestricted=True)

    cost = cost or ZERO
    floor_price = cost * (1 + tier.min_margin_floor_pct / ONE_HUNDRED)
    if price <= 0:
        return DiscountCeiling(max_pct=Decimal("0.0"), cost_floor_price=to_money(floor_price))

    margin_before_pct = (price - cost) / price * ONE_HUNDRED
    if margin_before_pct >= tier.high_margin_threshold:
        tier_max = tier.max_discount_pct_high_margin
    else:
        tier_max = tier.max_discount_pct_standard

    cost_floor_max = (price - floor_price) / price * ONE_HUNDRED
    # Rounded down so the published ceiling never crosses the cost floor
    effective = max(ZERO, min(tier_max, cost_floor_max))
    return DiscountCeiling(max_pct=floor_pct(effective), cost_floor_price=to_money(floor_price))


def discount_zone(pct: Decimal) -> str:
    if pct <= GREEN_ZONE_MAX:
        return "green"
    if pct <= YELLOW_ZONE_MAX:
        return "yellow"
    return "red"


def preview_discount(
    item: LineItem,
    pct: Decimal,
    ceiling: DiscountCeiling,
    budget: Budget | None = None,
    commission_rate: Decimal | None = None,
) -> DiscountPreview:
    """
    Margin, commission and budget impact of discounting a whole line by ``pct``.
    Local and advisory; nothing here is authoritative for payroll or budget.
    """
    rate = settings.default_commission_rate if commission_rate is None else commission_rate
    price = to_money(item.unit_price * item.quantity)
    cost = to_money((item.unit_cost or ZERO) * item.quantity)

    discount_amount = percent_of(price, pct)
    price_after = price - discount_amount

    if price > 0:
        margin_before_pct = to_pct((price - cost) / price * ONE_HUNDRED)
        margin_after_pct = to_pct((price_after - cost) / price * ONE_HUNDRED)
    else:
        margin_before_pct = margin_after_pct = Decimal("0.0")

    commission_before = to_money(price * rate)
    commission_after = to_money(price_after * rate)

    budget_remaining = budget.remaining_dollars if budget else None
    budget_after = to_money(budget_remaining - discount_amount) if budget_remaining is not None else None

    return DiscountPreview(
        discount_pct=pct,
        discount_amount=discount_amount,
        price_after_discount=price_after,
        margin_before_pct=margin_before_pct,
        margin_before_dollars=price - cost,
        margin_after_pct=margin_after_pct,
        margin_after_dollars=price_after - cost,
        commission_before=commission_before,
        commission_after=commission_after,
        commission_impact=commission_before - commission_after,
        budget_remaining=budget_remaining,
        budget_after=budget_after,
        max_pct=ceiling.max_pct,
        exceeds_ceiling=pct > ceiling.max_pct,
        zone=discount_zone(pct),
    )


# =============================================================================
# Engine
# =============================================================================


class DiscountAuthorityEngine:
    """
    Discount gatekeeper for one salesperson session.

    Usage:
        engine = DiscountAuthorityEngine(client, cart)
        await engine.load()
        await engine.apply_discount(item_id, Decimal("8"))
    """

    def __init__(
        self,
        client: DiscountAuthorityClient,
        cart: CartStateManager,
        commission_rate: Decimal | None = None,
        unrestricted_ceiling: Decimal | None = None,
    ):
        self._client = client
        self._cart = cart
        self._commission_rate = settings.default_commission_rate if commission_rate is None else commission_rate
        self._unrestricted_ceiling = unrestricted_ceiling
        self._tier: DiscountTier | None = None
        self._budget: Budget | None = None
        self._escalations: dict[int, Escalation] = {}
        # Escalations consumed in this session, whether or not the server has echoed it yet
        self._consumed: set[int] = set()
        # Items with an apply in flight
        self._applying: set[str] = set()

    # =========================================================================
    # Tier and budget (read / refresh only)
    # =========================================================================

    @property
    def tier(self) -> DiscountTier | None:
        return self._tier

    @property
    def budget(self) -> Budget | None:
        return self._budget

    @property
    def is_loaded(self) -> bool:
        return self._tier is not None

    @property
    def is_manager(self) -> bool:
        return self._tier is not None and self._tier.is_manager

    def _require_tier(self) -> DiscountTier:
        if self._tier is None:
            raise TierNotLoadedError()
        return self._tier

    async def load(self) -> None:
        """Initialize this period's budget (idempotent) and fetch tier + budget."""
        try:
            await self._client.initialize_budget()
        except AppException as e:
            logger.warning("Budget initialization failed", error=e.detail)
        await self.refresh()

    async def refresh(self) -> None:
        """Re-fetch tier and budget from the server."""
        response = await self._client.get_my_tier()
        self._tier = response.tier
        if response.budget is not None:
            self._budget = response.budget
        logger.debug(
            "Discount authority refreshed",
            tier=self._tier.tier_name,
            budget_used=self._budget.used_dollars if self._budget else None,
        )

    async def _refresh_after_commit(self) -> None:
        """Budget refresh after an accepted discount. A failure keeps the discount."""
        try:
            await self.refresh()
        except AppException as e:
            logger.warning("Budget refresh failed after discount", error=e.detail)

    # =========================================================================
    # Ceiling and preview
    # =========================================================================

    def compute_ceiling(self, price: Decimal, cost: Decimal | None) -> DiscountCeiling:
        return compute_ceiling(self._require_tier(), price, cost, self._unrestricted_ceiling)

    def ceiling_for(self, item: LineItem) -> DiscountCeiling:
        return self.compute_ceiling(item.unit_price, item.unit_cost)

    def preview(self, item_id: str, discount_pct: Any) -> DiscountPreview:
        item = self._find_item(item_id)
        pct = clamp_percent(discount_pct)
        return preview_discount(item, pct, self.ceiling_for(item), self._budget, self._commission_rate)

    def _find_item(self, item_id: str) -> LineItem:
        item = self._cart.current().find_item(item_id)
        if item is None:
            raise LineItemNotFoundError(item_id)
        return item

    # =========================================================================
    # Direct discounts
    # =========================================================================

    async def apply_discount(self, item_id: str, discount_pct: Any) -> LineItem:
        """
        Apply a discount within the salesperson's ceiling.

        The server re-validates before anything changes. The cart is updated
        optimistically while the discount is recorded and rolled back if the
        server refuses it.

        Raises:
            TierNotLoadedError: Authority not loaded yet.
            DiscountExceedsCeilingError: Above the ceiling; request an escalation instead.
            AuthorityError: Server refused the discount.
        """
        self._require_tier()
        pct = clamp_percent(discount_pct)
        item = self._find_item(item_id)

        if pct == 0:
            return self._cart.apply_item_discount(item_id, 0)

        ceiling = self.ceiling_for(item)
        if pct > ceiling.max_pct:
            raise DiscountExceedsCeilingError(pct, ceiling.max_pct, item_id=item_id, product_id=item.product_id)

        if item_id in self._applying:
            raise ValidationError("A discount is already being applied to this item", item_id=item_id)

        self._applying.add(item_id)
        try:
            validation = await self._client.validate_discount(item.product_id, pct)
            if not validation.allowed:
                raise AuthorityError(validation.reason or "Discount not permitted", item_id=item_id, discount_pct=pct)

            # State may have moved while validating
            item = self._find_item(item_id)
            record = self._record_for(item, pct)
            await self._apply_with_rollback(item, pct, record, source_escalation_id=None)
        finally:
            self._applying.discard(item_id)

        logger.info("Discount applied", item_id=item_id, product_id=item.product_id, discount_pct=pct)
        await self._refresh_after_commit()
        return self._find_item(item_id)

    def _record_for(self, item: LineItem, pct: Decimal, escalation_id: int | None = None) -> DiscountRecord:
        line_amount = to_money(item.unit_price * item.quantity)
        return DiscountRecord(
            product_id=item.product_id,
            original_price=item.unit_price,
            cost=item.unit_cost,
            discount_pct=pct,
            discount_amount=percent_of(line_amount, pct),
            quantity=item.quantity,
            escalation_id=escalation_id,
        )

    async def _apply_with_rollback(
        self,
        item: LineItem,
        pct: Decimal,
        record: DiscountRecord,
        source_escalation_id: int | None,
    ):
        previous_pct = item.discount_percent
        previous_source = item.source_escalation_id
        self._cart.apply_item_discount(item.id, pct, source_escalation_id=source_escalation_id)
        try:
            return await self._client.apply_discount(record)
        except AppException as e:
            current = self._cart.current().find_item(item.id)
            # Only undo our own write; a newer local change wins
            if current is not None and current.discount_percent == pct:
                self._cart.apply_item_discount(item.id, previous_pct, source_escalation_id=previous_source)
            if isinstance(e, AuthorityError):
                raise
            raise AuthorityError(e.detail, item_id=item.id) from e

    # =========================================================================
    # Escalations
    # =========================================================================

    async def request_escalation(self, item_id: str, discount_pct: Any, reason: str) -> Escalation:
        """
        Ask a manager for a discount above the ceiling. Never touches the cart.

        Raises:
            ValidationError: Missing justification, or the discount is within
                the ceiling and should be applied directly.
        """
        self._require_tier()
        justification = (reason or "").strip()
        if not justification:
            raise ValidationError(ErrorMessages.REASON_REQUIRED, item_id=item_id)
        if len(justification) > Limits.MAX_ESCALATION_REASON_LENGTH:
            justification = justification[: Limits.MAX_ESCALATION_REASON_LENGTH]

        item = self._find_item(item_id)
        pct = clamp_percent(discount_pct)
        ceiling = self.ceiling_for(item)
        if pct <= ceiling.max_pct:
            raise ValidationError(
                "Discount is within your limit; apply it directly",
                item_id=item_id,
                discount_pct=pct,
                ceiling_pct=ceiling.max_pct,
            )

        preview = preview_discount(item, pct, ceiling, self._budget, self._commission_rate)
        escalation = await self._client.submit_escalation(
            EscalationRequest(
                product_id=item.product_id,
                discount_pct=pct,
                reason=justification,
                margin_after=preview.margin_after_pct,
                commission_impact=preview.commission_impact,
            )
        )
        self._escalations[escalation.id] = escalation
        logger.info("Escalation requested", escalation_id=escalation.id, product_id=item.product_id, discount_pct=pct)
        return escalation

    def get_escalation(self, escalation_id: int) -> Escalation | None:
        return self._escalations.get(escalation_id)

    @property
    def escalations(self) -> list[Escalation]:
        return list(self._escalations.values())

    def is_consumed(self, escalation: Escalation) -> bool:
        return escalation.is_used or escalation.id in self._consumed

    def applicable_escalations(self, product_id: int | None = None) -> list[Escalation]:
        """Approved escalations not yet used, optionally for one product."""
        return [
            esc
            for esc in self._escalations.values()
            if esc.status == EscalationStatus.APPROVED
            and not self.is_consumed(esc)
            and (product_id is None or esc.product_id == product_id)
        ]

    def ingest(self, escalations: Iterable[Escalation]) -> list[str]:
        """
        Merge the latest server view of escalations.

        A denied or expired escalation revokes the discount it was backing.
        Returns the ids of line items whose discount was reset.
        """
        reset: list[str] = []
        for escalation in escalations:
            known = self._escalations.get(escalation.id)
            if known is not None and known.used_in_transaction_id and not escalation.used_in_transaction_id:
                escalation = escalation.model_copy(update={"used_in_transaction_id": known.used_in_transaction_id})
            self._escalations[escalation.id] = escalation
            if escalation.status in EscalationStatus.REVOKING:
                reset.extend(self._revoke(escalation))
        return reset

    def _revoke(self, escalation: Escalation) -> list[str]:
        reset = []
        for item in self._cart.current().items:
            if item.source_escalation_id == escalation.id and item.discount_percent > 0:
                self._cart.apply_item_discount(item.id, 0)
                reset.append(item.id)
                logger.warning(
                    "Escalated discount revoked",
                    escalation_id=escalation.id,
                    status=escalation.status,
                    item_id=item.id,
                )
        return reset

    async def apply_approved_escalation(self, escalation_id: int, item_id: str | None = None) -> LineItem:
        """
        Apply an approved escalation to its line item and mark it used.

        Without ``item_id`` the first line of the escalation's product is used.

        Raises:
            EscalationNotFoundError: Unknown escalation.
            InvalidTransitionError: Escalation is not approved.
            EscalationAlreadyUsedError: Already consumed.
        """
        escalation = self._escalations.get(escalation_id)
        if escalation is None:
            raise EscalationNotFoundError(escalation_id)
        if escalation.status != EscalationStatus.APPROVED:
            raise InvalidTransitionError("Escalation", escalation.status, "used", escalation_id=escalation_id)
        if self.is_consumed(escalation):
            raise EscalationAlreadyUsedError(escalation_id, escalation.used_in_transaction_id)

        item = self._escalation_target(escalation, item_id)
        pct = clamp_percent(escalation.requested_discount_pct)

        # One line per escalation
        for other in self._cart.current().items:
            if other.source_escalation_id == escalation_id and other.id != item.id:
                self._cart.apply_item_discount(other.id, 0)

        record = self._record_for(item, pct, escalation_id=escalation_id)
        # Claimed before the await so a second apply in flight sees it as used
        self._consumed.add(escalation_id)
        try:
            ack = await self._apply_with_rollback(item, pct, record, source_escalation_id=escalation_id)
        except AppException:
            self._consumed.discard(escalation_id)
            raise

        current = self._escalations.get(escalation_id, escalation)
        if ack is not None and ack.transaction_id is not None:
            self._escalations[escalation_id] = current.model_copy(
                update={"used_in_transaction_id": ack.transaction_id}
            )

        logger.info("Approved escalation applied", escalation_id=escalation_id, item_id=item.id, discount_pct=pct)
        await self._refresh_after_commit()
        return self._find_item(item.id)

    def _escalation_target(self, escalation: Escalation, item_id: str | None) -> LineItem:
        if item_id is not None:
            item = self._find_item(item_id)
            if item.product_id != escalation.product_id:
                raise ValidationError(
                    "Escalation was approved for a different product",
                    escalation_id=escalation.id,
                    item_id=item_id,
                )
            return item
        for item in self._cart.current().items:
            if item.product_id == escalation.product_id:
                return item
        raise LineItemNotFoundError(product_id=escalation.product_id, escalation_id=escalation.id)

    # =========================================================================
    # Manager queue
    # =========================================================================

    async def pending_escalations(self) -> list[Escalation]:
        """Team escalations awaiting review."""
        return await self._client.get_pending_escalations()

    async def approve(self, escalation_id: int, notes: str | None = None) -> Escalation | None:
        result = await self._client.approve_escalation(escalation_id, notes)
        logger.info("Escalation approved", escalation_id=escalation_id)
        return result

    async def deny(self, escalation_id: int, reason: str) -> Escalation | None:
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to deny an escalation", escalation_id=escalation_id)
        result = await self._client.deny_escalation(escalation_id, reason.strip())
        logger.info("Escalation denied", escalation_id=escalation_id)
        return result

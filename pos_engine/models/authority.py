"""
Discount authority models: tier, budget, escalations and previews.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from shared.utils.money import ZERO, to_money


EscalationState = Literal["pending", "approved", "denied", "expired"]
DiscountZone = Literal["green", "yellow", "red"]


class DiscountTier(BaseModel):
    """A salesperson's discount ceiling rules. Server-owned, read-only here."""

    tier_name: str = ""
    is_unrestricted: bool = False
    high_margin_threshold: Decimal = Decimal("0")
    max_discount_pct_high_margin: Decimal = Decimal("0")
    max_discount_pct_standard: Decimal = Decimal("0")
    min_margin_floor_pct: Decimal = Decimal("0")
    is_manager: bool = False


class Budget(BaseModel):
    """Rolling discount budget."""

    total_budget_dollars: Decimal = Decimal("0")
    used_dollars: Decimal = Decimal("0")
    period_start: datetime | None = None
    period_end: datetime | None = None

    @property
    def remaining_dollars(self) -> Decimal:
        return to_money(max(ZERO, self.total_budget_dollars - self.used_dollars))


class TierResponse(BaseModel):
    """Response of get_my_tier."""

    tier: DiscountTier
    budget: Budget | None = None


class Escalation(BaseModel):
    """Request to exceed the tier ceiling, awaiting a manager."""

    id: int
    product_id: int
    product_name: str | None = None
    requested_discount_pct: Decimal
    reason: str = ""
    margin_after_discount: Decimal | None = None
    commission_impact: Decimal | None = None
    status: EscalationState = "pending"
    employee_id: int | None = None
    employee_name: str | None = None
    reviewer_name: str | None = None
    review_notes: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None
    used_in_transaction_id: int | None = None

    @property
    def is_used(self) -> bool:
        return self.used_in_transaction_id is not None

    @property
    def is_applicable(self) -> bool:
        """Approved and not yet consumed."""
        return self.status == "approved" and not self.is_used


class EscalationRequest(BaseModel):
    """Body of submit_escalation."""

    product_id: int
    discount_pct: Decimal
    reason: str = Field(min_length=1, max_length=500)
    margin_after: Decimal
    commission_impact: Decimal


class DiscountRecord(BaseModel):
    """Body of apply_discount: an accepted discount to charge against the budget."""

    product_id: int
    original_price: Decimal
    cost: Decimal | None = None
    discount_pct: Decimal
    discount_amount: Decimal
    quantity: int = 1
    escalation_id: int | None = None


class DiscountAck(BaseModel):
    """Server acknowledgement of an applied discount."""

    success: bool = True
    transaction_id: int | None = None


class ValidationResult(BaseModel):
    """Server-side discount validation."""

    allowed: bool
    reason: str | None = None


class DiscountCeiling(BaseModel):
    """Locally computed ceiling for one item. Advisory; the server re-validates."""

    max_pct: Decimal
    cost_floor_price: Decimal | None = None
    is_unrestricted: bool = False


class DiscountPreview(BaseModel):
    """Margin/commission/budget impact of a proposed discount, for display only."""

    discount_pct: Decimal
    discount_amount: Decimal
    price_after_discount: Decimal
    margin_before_pct: Decimal
    margin_before_dollars: Decimal
    margin_after_pct: Decimal
    margin_after_dollars: Decimal
    commission_before: Decimal
    commission_after: Decimal
    commission_impact: Decimal
    budget_remaining: Decimal | None = None
    budget_after: Decimal | None = None
    max_pct: Decimal
    exceeds_ceiling: bool
    zone: DiscountZone

"""
Centralized constants for the POS engine.
Avoids magic strings and repeated constants.

Usage:
    from shared.config.constants import EscalationStatus, Limits

    if escalation.status == EscalationStatus.APPROVED:
        ...
"""

from decimal import Decimal
from enum import Enum
from typing import Final


# =============================================================================
# Entity Status Constants
# =============================================================================


class EscalationStatus:
    """Discount escalation status constants."""

    PENDING: Final[str] = "pending"
    APPROVED: Final[str] = "approved"
    DENIED: Final[str] = "denied"
    EXPIRED: Final[str] = "expired"

    ALL: Final[list[str]] = [PENDING, APPROVED, DENIED, EXPIRED]
    RESOLVED: Final[list[str]] = [APPROVED, DENIED, EXPIRED]
    # Resolutions that revoke any discount the escalation was backing
    REVOKING: Final[list[str]] = [DENIED, EXPIRED]


class TradeInStatus:
    """Trade-in assessment status constants."""

    PENDING: Final[str] = "pending"
    APPROVED: Final[str] = "approved"
    APPLIED: Final[str] = "applied"
    REJECTED: Final[str] = "rejected"
    VOIDED: Final[str] = "voided"

    ALL: Final[list[str]] = [PENDING, APPROVED, APPLIED, REJECTED, VOIDED]
    # Statuses that earn no credit toward the order
    NO_CREDIT: Final[list[str]] = [REJECTED, VOIDED]


class FulfillmentType:
    """Order fulfillment options."""

    PICKUP_NOW: Final[str] = "pickup_now"
    PICKUP_SCHEDULED: Final[str] = "pickup_scheduled"
    LOCAL_DELIVERY: Final[str] = "local_delivery"
    SHIPPING: Final[str] = "shipping"

    ALL: Final[list[str]] = [PICKUP_NOW, PICKUP_SCHEDULED, LOCAL_DELIVERY, SHIPPING]


class PaymentMethod:
    """Tender types accepted at the register."""

    CASH: Final[str] = "cash"
    CREDIT: Final[str] = "credit"
    DEBIT: Final[str] = "debit"
    GIFT_CARD: Final[str] = "gift_card"
    FINANCING: Final[str] = "financing"

    ALL: Final[list[str]] = [CASH, CREDIT, DEBIT, GIFT_CARD, FINANCING]


class CartChangeKind(str, Enum):
    """Kinds of cart mutation broadcast to cart listeners."""

    ITEMS = "items"
    CUSTOMER = "customer"
    DISCOUNT = "discount"
    PROMOTION = "promotion"
    FULFILLMENT = "fulfillment"
    TRADE_INS = "trade_ins"
    JURISDICTION = "jurisdiction"
    SALESPERSON = "salesperson"
    LOADED = "loaded"
    CLEARED = "cleared"


# =============================================================================
# Escalation Status Transitions
# =============================================================================


ESCALATION_TRANSITIONS: Final[dict[str, list[str]]] = {
    EscalationStatus.PENDING: [EscalationStatus.APPROVED, EscalationStatus.DENIED, EscalationStatus.EXPIRED],
    # An approval that is never used can still lapse
    EscalationStatus.APPROVED: [EscalationStatus.EXPIRED],
    EscalationStatus.DENIED: [],
    EscalationStatus.EXPIRED: [],
}


# =============================================================================
# Limits
# =============================================================================


class Limits:
    """Numeric limits enforced at the mutation boundary."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 9999
    MIN_DISCOUNT_PCT: Final[Decimal] = Decimal("0")
    MAX_DISCOUNT_PCT: Final[Decimal] = Decimal("100")
    MAX_ESCALATION_REASON_LENGTH: Final[int] = 500
    MAX_HELD_LABEL_LENGTH: Final[int] = 80
    PAYMENT_TOLERANCE: Final[Decimal] = Decimal("0.01")


# =============================================================================
# Error Messages
# =============================================================================


class ErrorMessages:
    """User-facing error messages."""

    EMPTY_CART: Final[str] = "Cart is empty"
    NO_ACTIVE_SHIFT: Final[str] = "No active shift. Please open a shift first."
    NO_TIER: Final[str] = "Discount authority has not been loaded"
    NO_PAYMENTS: Final[str] = "At least one payment is required"
    SALESPERSON_REQUIRED: Final[str] = "Salesperson is required"
    REASON_REQUIRED: Final[str] = "A justification is required to request an escalation"
    INVALID_TRANSITION: Final[str] = "Invalid status transition"


# =============================================================================
# Validation Functions
# =============================================================================


def validate_escalation_transition(current_status: str, new_status: str) -> bool:
    """
    Check if an escalation can move from current_status to new_status.
    Staying in the same status is always valid.
    """
    if current_status == new_status:
        return True
    allowed = ESCALATION_TRANSITIONS.get(current_status, [])
    return new_status in allowed

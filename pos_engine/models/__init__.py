"""
Domain models: cart, authority, totals, held carts, transaction contract, local tables.
"""

from pos_engine.models.cart import (
    CartDiscount,
    CartState,
    CommissionSplit,
    Customer,
    Fulfillment,
    Fungible,
    ItemIdentity,
    LineItem,
    ProductInfo,
    Promotion,
    QuoteData,
    Serialized,
    TradeIn,
)
from pos_engine.models.authority import (
    Budget,
    DiscountAck,
    DiscountCeiling,
    DiscountPreview,
    DiscountRecord,
    DiscountTier,
    Escalation,
    EscalationRequest,
    TierResponse,
    ValidationResult,
)
from pos_engine.models.totals import LineTotals, Totals
from pos_engine.models.held import HeldCart
from pos_engine.models.transaction import Payment, TransactionPayload, TransactionResult

__all__ = [
    # cart
    "CartDiscount",
    "CartState",
    "CommissionSplit",
    "Customer",
    "Fulfillment",
    "Fungible",
    "ItemIdentity",
    "LineItem",
    "ProductInfo",
    "Promotion",
    "QuoteData",
    "Serialized",
    "TradeIn",
    # authority
    "Budget",
    "DiscountAck",
    "DiscountCeiling",
    "DiscountPreview",
    "DiscountRecord",
    "DiscountTier",
    "Escalation",
    "EscalationRequest",
    "TierResponse",
    "ValidationResult",
    # derived
    "LineTotals",
    "Totals",
    "HeldCart",
    # settlement
    "Payment",
    "TransactionPayload",
    "TransactionResult",
]

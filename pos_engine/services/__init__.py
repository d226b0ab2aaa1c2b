"""
Domain services: cart state, discount authority, escalation polling, held carts, checkout.
"""

from pos_engine.services.cart_state import CartStateManager
from pos_engine.services.discount_authority import DiscountAuthorityEngine, compute_ceiling, preview_discount
from pos_engine.services.escalation_poller import EscalationPoller, PollAction, PollResult
from pos_engine.services.favorites import FavoritesTracker
from pos_engine.services.held_carts import HeldCartManager
from pos_engine.services.transaction_assembler import CheckoutService, assemble_transaction

__all__ = [
    "CartStateManager",
    "DiscountAuthorityEngine",
    "compute_ceiling",
    "preview_discount",
    "EscalationPoller",
    "PollAction",
    "PollResult",
    "FavoritesTracker",
    "HeldCartManager",
    "CheckoutService",
    "assemble_transaction",
]

"""
HTTP clients for backend collaborators.
"""

from pos_engine.clients.base import BackendClient
from pos_engine.clients.authority import DiscountAuthorityClient
from pos_engine.clients.volume import VolumePricingClient
from pos_engine.clients.trade_in import TradeInClient
from pos_engine.clients.settlement import SettlementClient

__all__ = [
    "BackendClient",
    "DiscountAuthorityClient",
    "VolumePricingClient",
    "TradeInClient",
    "SettlementClient",
]

"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import settings, LOCAL_STORE_URL
from shared.config.logging import get_logger, setup_logging
from shared.config.constants import (
    EscalationStatus,
    TradeInStatus,
    FulfillmentType,
    CartChangeKind,
    Limits,
)

__all__ = [
    # settings
    "settings",
    "LOCAL_STORE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "EscalationStatus",
    "TradeInStatus",
    "FulfillmentType",
    "CartChangeKind",
    "Limits",
]

"""
Pytest configuration and fixtures for engine tests.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from shared.infrastructure.db import create_local_engine, create_session_factory
from pos_engine.clients.authority import DiscountAuthorityClient
from pos_engine.clients.settlement import SettlementClient
from pos_engine.clients.trade_in import TradeInClient
from pos_engine.clients.volume import VolumePricingClient
from pos_engine.models.authority import (
    Budget,
    DiscountAck,
    DiscountTier,
    Escalation,
    TierResponse,
    ValidationResult,
)
from pos_engine.models.transaction import TransactionResult
from pos_engine.models.volume import VolumePrice
from pos_engine.repositories.local_store import LocalStateRepository
from pos_engine.services.cart_state import CartStateManager
from pos_engine.services.discount_authority import DiscountAuthorityEngine


SALESPERSON_ID = 7


# =============================================================================
# Local store
# =============================================================================


@pytest.fixture(scope="function")
def db_engine():
    """
    Fresh in-memory SQLite database per test.
    StaticPool keeps the single connection alive across sessions.
    """
    engine = create_local_engine("sqlite:///:memory:")
    LocalStateRepository.create_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def store(db_engine):
    return LocalStateRepository(create_session_factory(db_engine))


# =============================================================================
# Catalog data
# =============================================================================


@pytest.fixture
def sofa():
    """$100 item with $40 cost (60% margin)."""
    return {"product_id": 1, "product_name": "Sofa", "sku": "SOF-1", "unit_price": "100.00", "unit_cost": "40.00"}


@pytest.fixture
def lamp():
    return {"product_id": 2, "product_name": "Lamp", "sku": "LMP-2", "unit_price": "25.00", "unit_cost": "20.00"}


@pytest.fixture
def gift_card():
    """Non-taxable line."""
    return {"product_id": 3, "product_name": "Gift Card", "unit_price": "50.00", "taxable": False}


# =============================================================================
# Cart
# =============================================================================


@pytest.fixture
def cart():
    """Cart manager without persistence."""
    return CartStateManager(default_jurisdiction="ON", default_salesperson_id=SALESPERSON_ID)


@pytest.fixture
def persistent_cart(store):
    return CartStateManager(store=store, default_jurisdiction="ON", default_salesperson_id=SALESPERSON_ID)


# =============================================================================
# Fake backend clients
# =============================================================================


def make_tier(**overrides) -> DiscountTier:
    """Standard rep: 10% on high-margin items, 5% otherwise, 10% margin floor."""
    data = {
        "tier_name": "Sales Associate",
        "high_margin_threshold": Decimal("40"),
        "max_discount_pct_high_margin": Decimal("10"),
        "max_discount_pct_standard": Decimal("5"),
        "min_margin_floor_pct": Decimal("10"),
    }
    data.update(overrides)
    return DiscountTier(**data)


def make_escalation(escalation_id: int = 501, status: str = "pending", **overrides) -> Escalation:
    data = {
        "id": escalation_id,
        "product_id": 1,
        "product_name": "Sofa",
        "requested_discount_pct": Decimal("15"),
        "reason": "Price match",
        "status": status,
        "employee_id": SALESPERSON_ID,
    }
    data.update(overrides)
    return Escalation(**data)


@pytest.fixture
def authority_client():
    """AsyncMock authority client that allows everything by default."""
    client = AsyncMock(spec=DiscountAuthorityClient)
    client.initialize_budget.return_value = None
    client.get_my_tier.return_value = TierResponse(
        tier=make_tier(),
        budget=Budget(total_budget_dollars=Decimal("500.00"), used_dollars=Decimal("100.00")),
    )
    client.validate_discount.return_value = ValidationResult(allowed=True)
    client.apply_discount.return_value = DiscountAck(success=True, transaction_id=None)
    client.submit_escalation.side_effect = lambda request: make_escalation(
        product_id=request.product_id,
        requested_discount_pct=request.discount_pct,
        reason=request.reason,
    )
    client.get_my_escalations.return_value = []
    client.get_pending_escalations.return_value = []
    return client


@pytest.fixture
def authority(authority_client, cart):
    return DiscountAuthorityEngine(authority_client, cart)


@pytest_asyncio.fixture
async def loaded_authority(authority):
    await authority.load()
    return authority


@pytest.fixture
def volume_client():
    """Volume source that never discounts unless a test says so."""
    client = AsyncMock(spec=VolumePricingClient)

    async def no_discount(product_id, quantity, customer_id):
        return VolumePrice(
            product_id=product_id,
            quantity=quantity,
            base_price_cents=10000,
            volume_price_cents=10000,
            discount_percent=Decimal("0"),
            pricing_source="base",
        )

    client.get_volume_price.side_effect = no_discount
    client.get_product_tiers.return_value = []
    return client


@pytest.fixture
def trade_in_client():
    return AsyncMock(spec=TradeInClient)


@pytest.fixture
def settlement_client():
    client = AsyncMock(spec=SettlementClient)
    client.create_transaction.return_value = TransactionResult(transaction_id=9001, transaction_number="TXN-9001")
    return client

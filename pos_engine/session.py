"""
Terminal session wiring.

One PosSession per signed-in salesperson: it restores the last cart from the
local store, connects the volume price adjuster to cart changes, and owns the
lifecycle of the escalation poller and the HTTP clients.

Usage:
    session = PosSession(salesperson_id=7)
    await session.start()
    session.open_shift(42)
    session.cart.add_item({"product_id": 1, "product_name": "Sofa", "unit_price": "899.00"})
    totals = session.totals()
    ...
    await session.stop()
"""

import httpx
from sqlalchemy.engine import Engine

from shared.config.logging import pos_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import create_session_factory, get_engine
from pos_engine.clients.authority import DiscountAuthorityClient
from pos_engine.clients.settlement import SettlementClient
from pos_engine.clients.trade_in import TradeInClient
from pos_engine.clients.volume import VolumePricingClient
from pos_engine.models.totals import Totals
from pos_engine.pricing.totals import compute_totals
from pos_engine.pricing.volume import VolumePriceAdjuster
from pos_engine.repositories.local_store import LocalStateRepository
from pos_engine.services.cart_state import CartStateManager
from pos_engine.services.discount_authority import DiscountAuthorityEngine
from pos_engine.services.escalation_poller import EscalationPoller
from pos_engine.services.favorites import FavoritesTracker
from pos_engine.services.held_carts import HeldCartManager
from pos_engine.services.transaction_assembler import CheckoutService


class PosSession:
    """
    Everything one terminal session needs, wired together.

    Args:
        salesperson_id: Signed-in user; default salesperson for new carts.
        engine: SQLAlchemy engine for the local store. Defaults to the process-wide one.
        base_url: Backend base URL. Defaults to settings.
        token: Bearer token for backend calls.
        transport: Optional httpx transport shared by every client (tests).
    """

    def __init__(
        self,
        salesperson_id: int | None = None,
        engine: Engine | None = None,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.authority_client = DiscountAuthorityClient(base_url, token, transport=transport)
        self.volume_client = VolumePricingClient(base_url, token, transport=transport)
        self.trade_in_client = TradeInClient(base_url, token, transport=transport)
        self.settlement_client = SettlementClient(base_url, token, transport=transport)

        bind = engine or get_engine()
        LocalStateRepository.create_tables(bind)
        self.store = LocalStateRepository(create_session_factory(bind))

        self.favorites = FavoritesTracker(self.store)
        self.cart = CartStateManager(
            store=self.store,
            default_jurisdiction=settings.default_jurisdiction,
            default_salesperson_id=salesperson_id,
            favorites=self.favorites,
            trade_in_client=self.trade_in_client,
            initial_state=self.store.load_cart(),
        )

        self.volume = VolumePriceAdjuster(self.volume_client, self.cart.current)
        self._unsubscribe_volume = self.cart.subscribe(self.volume.on_cart_changed)

        self.authority = DiscountAuthorityEngine(self.authority_client, self.cart)
        self.poller = EscalationPoller(self.authority_client, self.authority)
        self.held = HeldCartManager(self.cart, self.totals, store=self.store)
        self.checkout = CheckoutService(
            self.cart,
            self.authority,
            self.settlement_client,
            totals=self.totals,
            shift_id=lambda: self._shift_id,
        )

        self._shift_id: int | None = None
        self._started = False

    # =========================================================================
    # Derived state
    # =========================================================================

    def totals(self) -> Totals:
        """Totals for the current cart with whatever volume prices have resolved."""
        return compute_totals(self.cart.current(), self.volume.overrides())

    @property
    def shift_id(self) -> int | None:
        return self._shift_id

    def open_shift(self, shift_id: int) -> None:
        self._shift_id = shift_id
        logger.info("Shift opened", shift_id=shift_id)

    def close_shift(self) -> None:
        logger.info("Shift closed", shift_id=self._shift_id)
        self._shift_id = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Load the discount authority, start polling and price the restored cart."""
        if self._started:
            return

        # Refuse to start a production terminal on a bad configuration
        config_errors = settings.validate_production_settings()
        if config_errors:
            for error in config_errors:
                logger.error("Configuration error", error=error)
            if settings.environment == "production":
                raise RuntimeError(f"Production configuration errors: {'; '.join(config_errors)}")
            logger.warning("Running with development configuration problems")

        await self.authority.load()
        await self.poller.start()
        if self.cart.current().items:
            self.volume.schedule_refresh()
        self._started = True
        logger.info(
            "POS session started",
            salesperson_id=self.cart.default_salesperson_id,
            tier=self.authority.tier.tier_name if self.authority.tier else None,
        )

    async def stop(self) -> None:
        """Stop background work and close HTTP connections. The cart snapshot is kept."""
        await self.poller.stop()
        self._unsubscribe_volume()
        await self.volume.close()
        for client in (
            self.authority_client,
            self.volume_client,
            self.trade_in_client,
            self.settlement_client,
        ):
            await client.close()
        self._started = False
        logger.info("POS session stopped")

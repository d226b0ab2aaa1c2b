"""
Volume price adjuster.

Keeps a product -> volume price cache in step with the cart. Refreshes run in
the background after every cart change and never block a mutation; a result
that no longer matches the cart (product removed, quantity or customer changed)
is dropped. Any fetch failure leaves the product at its base price.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import Protocol

from shared.config.constants import CartChangeKind
from shared.config.logging import pricing_logger as logger
from shared.utils.money import to_money
from pos_engine.models.cart import CartState
from pos_engine.models.volume import NextTierInfo, TierPreview, VolumePrice, VolumeTier


class VolumePricingSource(Protocol):
    async def get_volume_price(self, product_id: int, quantity: int, customer_id: int | None) -> VolumePrice: ...

    async def get_product_tiers(self, product_id: int) -> list[VolumeTier]: ...


# =============================================================================
# Tier Selection (pure)
# =============================================================================


def sort_tiers(tiers: Sequence[VolumeTier]) -> list[VolumeTier]:
    """Active tiers, ascending min_qty."""
    return sorted((t for t in tiers if t.is_active), key=lambda t: t.min_qty)


def select_tier(tiers: Sequence[VolumeTier], quantity: int) -> VolumeTier | None:
    """
    Current tier for ``quantity``: the highest tier whose range contains it.
    Overlapping ranges resolve to the larger min_qty.
    """
    current = None
    for tier in sort_tiers(tiers):
        if tier.contains(quantity):
            current = tier
    return current


def next_tier_info(tiers: Sequence[VolumeTier], quantity: int, base_price: Decimal) -> NextTierInfo | None:
    """
    Units needed to reach the next tier that is cheaper than the current price.
    Advisory only; nothing here changes the cart.
    """
    current = select_tier(tiers, quantity)
    current_price = current.unit_price(base_price) if current else to_money(base_price)

    for tier in sort_tiers(tiers):
        if tier.min_qty <= quantity:
            continue
        price = tier.unit_price(base_price)
        if price < current_price:
            return NextTierInfo(
                units_needed=tier.min_qty - quantity,
                tier_name=tier.tier_name,
                unit_price=price,
                discount_percent=tier.effective_discount_pct(base_price),
                savings_per_unit=current_price - price,
            )
    return None


def preview_tiers(tiers: Sequence[VolumeTier], base_price: Decimal, quantity: int = 0) -> list[TierPreview]:
    """Every active tier priced against ``base_price``, marking the one ``quantity`` falls in."""
    current = select_tier(tiers, quantity) if quantity > 0 else None
    base = to_money(base_price)
    return [
        TierPreview(
            min_qty=tier.min_qty,
            max_qty=tier.max_qty,
            tier_name=tier.tier_name,
            unit_price=tier.unit_price(base),
            discount_percent=tier.effective_discount_pct(base),
            savings_per_unit=base - tier.unit_price(base),
            is_current=current is not None and tier is current,
        )
        for tier in sort_tiers(tiers)
    ]


def product_quantities(state: CartState) -> dict[int, int]:
    """Total quantity per product across all of its lines."""
    quantities: dict[int, int] = {}
    for item in state.items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    return quantities


# =============================================================================
# Adjuster
# =============================================================================


class VolumePriceAdjuster:
    """
    Background volume price resolution for the active cart.

    Usage:
        adjuster = VolumePriceAdjuster(client, cart.current)
        cart.subscribe(adjuster.on_cart_changed)
        totals = compute_totals(cart.current(), adjuster.overrides())
    """

    def __init__(self, source: VolumePricingSource, read_state: Callable[[], CartState]):
        self._source = source
        self._read_state = read_state
        self._prices: dict[int, VolumePrice] = {}
        self._tiers: dict[int, list[VolumeTier]] = {}
        self._customer_id: int | None = None
        # Bumped whenever the price cache is invalidated; stale refreshes compare against it
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._alive = True

    # =========================================================================
    # Read access
    # =========================================================================

    def overrides(self) -> dict[int, Decimal]:
        """
        product_id -> discounted unit price, for the totals calculator.

        Only prices fetched for the cart's current quantity and customer count;
        anything older falls back to base price until the next refresh lands.
        """
        state = self._read_state()
        customer_id = state.customer.id if state.customer else None
        if customer_id != self._customer_id:
            return {}
        quantities = product_quantities(state)
        return {
            pid: price.unit_price
            for pid, price in self._prices.items()
            if price.has_discount and price.quantity == quantities.get(pid)
        }

    def price_for(self, product_id: int) -> VolumePrice | None:
        return self._prices.get(product_id)

    @property
    def refresh_pending(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # Cart change handling
    # =========================================================================

    def on_cart_changed(self, state: CartState, kind: CartChangeKind) -> None:
        """Cart listener: invalidate on customer change or clear, then refresh."""
        if not self._alive:
            return

        customer_id = state.customer.id if state.customer else None
        if kind == CartChangeKind.CLEARED or customer_id != self._customer_id:
            self._invalidate(customer_id)

        if kind in (
            CartChangeKind.ITEMS,
            CartChangeKind.CUSTOMER,
            CartChangeKind.LOADED,
            CartChangeKind.CLEARED,
        ):
            self.schedule_refresh()

    def _invalidate(self, customer_id: int | None) -> None:
        self._prices.clear()
        self._customer_id = customer_id
        self._generation += 1

    def schedule_refresh(self) -> None:
        """Start a background refresh, superseding any refresh still in flight."""
        if not self._alive:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Synchronous caller with no loop: prices refresh on the next explicit refresh()
            return

        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = loop.create_task(self.refresh())

    async def refresh(self) -> None:
        """Fetch volume prices for every product in the current cart."""
        state = self._read_state()
        customer_id = state.customer.id if state.customer else None
        if customer_id != self._customer_id:
            self._invalidate(customer_id)
        quantities = product_quantities(state)
        generation = self._generation

        if not quantities:
            self._prices.clear()
            return

        product_ids = list(quantities)
        results = await asyncio.gather(
            *(self._source.get_volume_price(pid, quantities[pid], customer_id) for pid in product_ids),
            return_exceptions=True,
        )

        if not self._alive:
            return

        latest = self._read_state()
        latest_customer = latest.customer.id if latest.customer else None
        if generation != self._generation or latest_customer != customer_id:
            logger.debug("Discarding volume prices for superseded cart", customer_id=customer_id)
            return

        latest_quantities = product_quantities(latest)
        for pid, result in zip(product_ids, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning("Volume price lookup failed, using base price", product_id=pid, error=str(result))
                self._prices.pop(pid, None)
                continue
            if latest_quantities.get(pid) != quantities[pid]:
                # Product removed or quantity changed while the request was in flight
                continue
            self._prices[pid] = result

        for pid in list(self._prices):
            if pid not in latest_quantities:
                del self._prices[pid]

    # =========================================================================
    # Tier tables
    # =========================================================================

    async def get_tiers(self, product_id: int) -> list[VolumeTier]:
        """Ordered tier table for a product, cached. Empty on failure."""
        if product_id in self._tiers:
            return self._tiers[product_id]
        try:
            tiers = sort_tiers(await self._source.get_product_tiers(product_id))
        except Exception as e:
            logger.warning("Volume tier lookup failed", product_id=product_id, error=str(e))
            return []
        if self._alive:
            self._tiers[product_id] = tiers
        return tiers

    async def next_tier(self, product_id: int, base_price: Decimal) -> NextTierInfo | None:
        """Next-tier prompt for the product's current cart quantity."""
        quantity = product_quantities(self._read_state()).get(product_id, 0)
        return next_tier_info(await self.get_tiers(product_id), quantity, base_price)

    async def preview_tiers(self, product_id: int, base_price: Decimal) -> list[TierPreview]:
        """Full tier table for a product, priced and marked against the cart quantity."""
        quantity = product_quantities(self._read_state()).get(product_id, 0)
        return preview_tiers(await self.get_tiers(product_id), base_price, quantity)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Stop applying results and cancel any in-flight refresh."""
        self._alive = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

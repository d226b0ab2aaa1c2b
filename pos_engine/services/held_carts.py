"""
Held-Cart Manager: park, recall, delete and cap held (suspended) sales.
"""

from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from shared.config.constants import Limits
from shared.config.logging import cart_logger as logger
from shared.config.settings import settings
from shared.utils.exceptions import EmptyCartError, HeldCartNotFoundError
from pos_engine.models.held import HeldCart
from pos_engine.models.totals import Totals
from pos_engine.repositories.local_store import LocalStateRepository
from pos_engine.services.cart_state import CartStateManager

AUTO_HOLD_LABEL = "Auto-held"


class HeldCartManager:
    """
    Held sales, newest first, bounded to ``capacity`` entries.

    Args:
        cart: Active cart manager.
        totals: Callable returning totals for the current cart (snapshotted on hold).
        store: Local store; None keeps the list in memory only.
        capacity: Maximum held carts; the oldest is evicted beyond it.
    """

    def __init__(
        self,
        cart: CartStateManager,
        totals: Callable[[], Totals],
        store: LocalStateRepository | None = None,
        capacity: int | None = None,
    ):
        self._cart = cart
        self._totals = totals
        self._store = store
        self._capacity = max(1, capacity or settings.max_held_carts)
        self._held: list[HeldCart] = store.load_held()[: self._capacity] if store else []

    @property
    def held(self) -> list[HeldCart]:
        return list(self._held)

    @property
    def count(self) -> int:
        return len(self._held)

    def get(self, held_id: str) -> HeldCart | None:
        for entry in self._held:
            if entry.id == held_id:
                return entry
        return None

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save_held(self._held)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Held carts snapshot failed", error=str(e))

    def _default_label(self, held_at: datetime) -> str:
        state = self._cart.current()
        if state.customer and state.customer.name:
            return f"{state.customer.name} - {held_at:%H:%M}"
        return f"Sale {held_at:%H:%M}"

    # =========================================================================
    # Operations
    # =========================================================================

    def hold(self, label: str | None = None) -> HeldCart:
        """
        Park the active cart and clear it.

        Raises:
            EmptyCartError: No items and no trade-ins.
        """
        state = self._cart.current()
        if state.is_empty:
            raise EmptyCartError("hold")

        held_at = datetime.now(timezone.utc)
        entry = HeldCart(
            label=(label or self._default_label(held_at))[: Limits.MAX_HELD_LABEL_LENGTH],
            held_at=held_at,
            state=state.model_copy(deep=True),
            totals=self._totals(),
        )

        self._held.insert(0, entry)
        evicted = self._held[self._capacity :]
        del self._held[self._capacity :]
        for old in evicted:
            logger.warning("Held cart evicted at capacity", held_id=old.id, label=old.label)

        self._persist()
        self._cart.clear_cart()
        logger.info("Cart held", held_id=entry.id, label=entry.label, item_count=len(entry.state.items))
        return entry

    def recall(self, held_id: str) -> HeldCart:
        """
        Restore a held cart as the active cart.

        A non-empty active cart is held first so nothing is lost.

        Raises:
            HeldCartNotFoundError: Unknown id.
        """
        entry = self.get(held_id)
        if entry is None:
            raise HeldCartNotFoundError(held_id)

        # Take the target out before auto-holding so eviction can't drop it
        self._held.remove(entry)
        if not self._cart.current().is_empty:
            self.hold(AUTO_HOLD_LABEL)
        else:
            self._persist()

        self._cart.replace_state(entry.state)
        logger.info("Held cart recalled", held_id=held_id)
        return entry

    def delete(self, held_id: str) -> None:
        entry = self.get(held_id)
        if entry is None:
            raise HeldCartNotFoundError(held_id)
        self._held.remove(entry)
        self._persist()

    def clear_all(self) -> None:
        self._held.clear()
        self._persist()

"""
Tests for the local state repository and favorites tracking.
"""

from decimal import Decimal
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from pos_engine.models.cart import CartState, LineItem
from pos_engine.models.held import HeldCart
from pos_engine.models.local_state import LocalStateRecord
from pos_engine.repositories.local_store import ACTIVE_CART_KEY, HELD_CARTS_KEY
from pos_engine.services.favorites import FavoritesTracker


def _state() -> CartState:
    return CartState(
        items=[LineItem(product_id=1, unit_price=Decimal("100.00"), quantity=2, discount_percent=Decimal("7.5"))],
        jurisdiction="QC",
        salesperson_id=7,
    )


def _write_raw(store, key: str, payload: str) -> None:
    with store._session_factory() as db:
        db.merge(LocalStateRecord(key=key, payload=payload))
        db.commit()


class TestCartSnapshot:
    """Active cart persistence."""

    def test_missing_snapshot_loads_as_none(self, store):
        assert store.load_cart() is None

    def test_snapshot_round_trip(self, store):
        state = _state()

        store.save_cart(state)
        loaded = store.load_cart()

        assert loaded == state
        assert loaded.items[0].discount_percent == Decimal("7.5")

    def test_overwrite_keeps_single_record(self, store):
        store.save_cart(_state())
        store.save_cart(CartState(jurisdiction="ON"))

        assert store.load_cart().items == []

    def test_corrupt_json_loads_as_none(self, store):
        _write_raw(store, ACTIVE_CART_KEY, "{not json")
        assert store.load_cart() is None

    def test_invalid_shape_loads_as_none(self, store):
        _write_raw(store, ACTIVE_CART_KEY, '{"items": [{"quantity": "lots"}]}')
        assert store.load_cart() is None

    def test_older_snapshot_missing_fields_loads_with_defaults(self, store):
        _write_raw(store, ACTIVE_CART_KEY, '{"items": [{"product_id": 4, "unit_price": "9.99"}]}')

        loaded = store.load_cart()

        assert loaded.items[0].quantity == 1
        assert loaded.trade_ins == []

    def test_clear(self, store):
        store.save_cart(_state())
        store.clear_cart()
        assert store.load_cart() is None


class TestHeldSnapshot:
    """Held cart list persistence."""

    def test_round_trip_preserves_order(self, store):
        held = [HeldCart(label="A", state=_state()), HeldCart(label="B", state=CartState())]

        store.save_held(held)

        assert [h.label for h in store.load_held()] == ["A", "B"]

    def test_bad_entries_are_skipped(self, store):
        good = HeldCart(label="Good", state=_state()).model_dump_json()
        _write_raw(store, HELD_CARTS_KEY, f'[{good}, {{"label": "no state"}}]')

        assert [h.label for h in store.load_held()] == ["Good"]


class TestFavorites:
    """Favorites usage counters."""

    def test_counts_and_ranking(self, store):
        tracker = FavoritesTracker(store)
        for product_id in (5, 5, 5, 2, 2, 9):
            tracker.record(product_id)

        assert store.get_favorite_count(5) == 3
        assert tracker.top(2) == [5, 2]

    def test_store_failure_is_swallowed(self):
        store = MagicMock()
        store.record_favorite_use.side_effect = OperationalError("UPDATE", {}, Exception("locked"))
        store.top_favorites.side_effect = OperationalError("SELECT", {}, Exception("locked"))
        tracker = FavoritesTracker(store)

        tracker.record(5)

        assert tracker.top() == []

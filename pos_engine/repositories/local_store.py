"""
Local state repository.

Persists the active cart snapshot, the held cart list and favorites usage in
the terminal-local store. Reads are forgiving: a snapshot that fails to parse
loads as the default (and is logged) so a bad write never bricks the register.
Writes raise; callers decide whether a failure is fatal.
"""

import json
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from pos_engine.models.cart import CartState
from pos_engine.models.held import HeldCart
from pos_engine.models.local_state import Base, FavoriteUsage, LocalStateRecord

logger = get_logger(__name__)

ACTIVE_CART_KEY = "active_cart"
HELD_CARTS_KEY = "held_carts"


class LocalStateRepository:
    """
    Single-writer store for one terminal session.

    Args:
        session_factory: Callable returning a new SQLAlchemy Session.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @staticmethod
    def create_tables(engine: Engine) -> None:
        """Create local store tables if they do not exist."""
        Base.metadata.create_all(bind=engine)

    # =========================================================================
    # Keyed documents
    # =========================================================================

    def _read(self, key: str) -> Any | None:
        with self._session_factory() as db:
            record = db.get(LocalStateRecord, key)
            if record is None:
                return None
            payload = record.payload
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable local state", key=key)
            return None

    def _write(self, key: str, value: Any) -> None:
        payload = json.dumps(value, default=str)
        with self._session_factory() as db:
            record = db.get(LocalStateRecord, key)
            if record is None:
                db.add(LocalStateRecord(key=key, payload=payload))
            else:
                record.payload = payload
                record.updated_at = datetime.now(timezone.utc)
            db.commit()

    def _delete(self, key: str) -> None:
        with self._session_factory() as db:
            record = db.get(LocalStateRecord, key)
            if record is not None:
                db.delete(record)
                db.commit()

    # =========================================================================
    # Active cart
    # =========================================================================

    def load_cart(self) -> CartState | None:
        """Last saved cart, or None if there is none or it cannot be parsed."""
        data = self._read(ACTIVE_CART_KEY)
        if data is None:
            return None
        try:
            return CartState.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("Discarding invalid cart snapshot", errors=e.error_count())
            return None

    def save_cart(self, state: CartState) -> None:
        self._write(ACTIVE_CART_KEY, state.model_dump(mode="json"))

    def clear_cart(self) -> None:
        self._delete(ACTIVE_CART_KEY)

    # =========================================================================
    # Held carts
    # =========================================================================

    def load_held(self) -> list[HeldCart]:
        """Held carts in saved order. Entries that fail to parse are skipped."""
        data = self._read(HELD_CARTS_KEY)
        if not isinstance(data, list):
            return []

        held: list[HeldCart] = []
        for entry in data:
            try:
                held.append(HeldCart.model_validate(entry))
            except PydanticValidationError as e:
                logger.warning("Skipping invalid held cart", errors=e.error_count())
        return held

    def save_held(self, held: list[HeldCart]) -> None:
        self._write(HELD_CARTS_KEY, [h.model_dump(mode="json") for h in held])

    # =========================================================================
    # Favorites
    # =========================================================================

    def record_favorite_use(self, product_id: int) -> int:
        """Increment the usage counter for a product. Returns the new count."""
        with self._session_factory() as db:
            usage = db.get(FavoriteUsage, product_id)
            if usage is None:
                usage = FavoriteUsage(product_id=product_id, use_count=0)
                db.add(usage)
            usage.use_count += 1
            usage.last_used_at = datetime.now(timezone.utc)
            db.commit()
            return usage.use_count

    def get_favorite_count(self, product_id: int) -> int:
        with self._session_factory() as db:
            usage = db.get(FavoriteUsage, product_id)
            return usage.use_count if usage else 0

    def top_favorites(self, limit: int = 12) -> list[tuple[int, int]]:
        """(product_id, use_count) pairs, most used first."""
        with self._session_factory() as db:
            rows = db.execute(
                select(FavoriteUsage.product_id, FavoriteUsage.use_count)
                .order_by(FavoriteUsage.use_count.desc(), FavoriteUsage.last_used_at.desc())
                .limit(limit)
            ).all()
        return [(row.product_id, row.use_count) for row in rows]

"""
Favorites usage tracking. Advisory only: failures are logged and ignored.
"""

from sqlalchemy.exc import SQLAlchemyError

from shared.config.logging import get_logger
from pos_engine.repositories.local_store import LocalStateRepository

logger = get_logger(__name__)


class FavoritesTracker:
    """Counts add-to-cart per product so the quick-add grid can rank favorites."""

    def __init__(self, store: LocalStateRepository):
        self._store = store

    def record(self, product_id: int) -> None:
        try:
            self._store.record_favorite_use(product_id)
        except SQLAlchemyError as e:
            logger.warning("Favorites tracking failed", product_id=product_id, error=str(e))

    def top(self, limit: int = 12) -> list[int]:
        """Most used product ids, most used first."""
        try:
            return [product_id for product_id, _ in self._store.top_favorites(limit)]
        except SQLAlchemyError as e:
            logger.warning("Favorites lookup failed", error=str(e))
            return []

"""
ORM tables for the terminal-local store.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for local store models."""

    pass


class LocalStateRecord(Base):
    """
    Keyed singleton JSON documents.

    Keys: "active_cart" (CartState) and "held_carts" (list of HeldCart).
    """

    __tablename__ = "local_state"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<LocalStateRecord(key={self.key!r})>"


class FavoriteUsage(Base):
    """How often a product has been added to a cart from this terminal."""

    __tablename__ = "favorite_usage"

    product_id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<FavoriteUsage(product_id={self.product_id}, use_count={self.use_count})>"

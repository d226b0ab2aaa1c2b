"""
Held (parked) sale snapshot.
"""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from pos_engine.models.cart import CartState
from pos_engine.models.totals import Totals


def generate_held_id() -> str:
    return f"held_{uuid.uuid4().hex}"


class HeldCart(BaseModel):
    """Frozen copy of a CartState with the totals it had when parked."""

    id: str = Field(default_factory=generate_held_id)
    label: str = ""
    held_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    state: CartState
    totals: Totals | None = None

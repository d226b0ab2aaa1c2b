"""
Discount authority service client.
"""

from decimal import Decimal

from shared.utils.exceptions import AppException, AuthorityError
from pos_engine.clients.base import BackendClient
from pos_engine.models.authority import (
    Budget,
    DiscountAck,
    DiscountRecord,
    Escalation,
    EscalationRequest,
    TierResponse,
    ValidationResult,
)

PREFIX = "/api/discount-authority"


class DiscountAuthorityClient(BackendClient):
    """Tier, budget and escalation endpoints. Refusals surface as AuthorityError."""

    service_name = "discount-authority"

    def _rejected(self, reason: str, status_code: int, path: str) -> AppException:
        return AuthorityError(reason, status_code=status_code, path=path)

    async def get_my_tier(self) -> TierResponse:
        data = await self.get(f"{PREFIX}/my-tier")
        return TierResponse.model_validate(data)

    async def initialize_budget(self) -> Budget | None:
        """Create this period's budget if missing. Safe to call repeatedly."""
        data = await self.post(f"{PREFIX}/budget/initialize")
        return Budget.model_validate(data) if data else None

    async def validate_discount(self, product_id: int, discount_pct: Decimal) -> ValidationResult:
        data = await self.post(
            f"{PREFIX}/validate",
            json={"product_id": product_id, "discount_pct": str(discount_pct)},
        )
        return ValidationResult.model_validate(data)

    async def apply_discount(self, record: DiscountRecord) -> DiscountAck:
        data = await self.post(f"{PREFIX}/apply", json=record.model_dump(mode="json"))
        return DiscountAck.model_validate(data or {})

    async def submit_escalation(self, request: EscalationRequest) -> Escalation:
        data = await self.post(f"{PREFIX}/escalations", json=request.model_dump(mode="json"))
        return Escalation.model_validate(data)

    async def get_my_escalations(self) -> list[Escalation]:
        data = await self.get(f"{PREFIX}/escalations/mine")
        return [Escalation.model_validate(row) for row in data or []]

    async def get_pending_escalations(self) -> list[Escalation]:
        """Team queue awaiting review. Managers only."""
        data = await self.get(f"{PREFIX}/escalations/pending")
        return [Escalation.model_validate(row) for row in data or []]

    async def approve_escalation(self, escalation_id: int, notes: str | None = None) -> Escalation | None:
        data = await self.post(f"{PREFIX}/escalations/{escalation_id}/approve", json={"notes": notes})
        return Escalation.model_validate(data) if data else None

    async def deny_escalation(self, escalation_id: int, reason: str) -> Escalation | None:
        data = await self.post(f"{PREFIX}/escalations/{escalation_id}/deny", json={"reason": reason})
        return Escalation.model_validate(data) if data else None

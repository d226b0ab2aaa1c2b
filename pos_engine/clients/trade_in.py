"""
Trade-in assessment service client.
"""

from pos_engine.clients.base import BackendClient


class TradeInClient(BackendClient):
    service_name = "trade-in"

    async def void_assessment(self, assessment_id: int, reason: str) -> None:
        await self.post(f"/api/trade-in/assessments/{assessment_id}/void", json={"reason": reason})

"""
Settlement (transactions) service client.
"""

from pos_engine.clients.base import BackendClient
from pos_engine.models.transaction import TransactionPayload, TransactionResult


class SettlementClient(BackendClient):
    service_name = "settlement"

    async def create_transaction(self, payload: TransactionPayload) -> TransactionResult:
        data = await self.post("/api/transactions", json=payload.to_wire())
        return TransactionResult.model_validate(data)

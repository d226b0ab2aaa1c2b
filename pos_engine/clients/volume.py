"""
Volume pricing service client.
"""

from pos_engine.clients.base import BackendClient
from pos_engine.models.volume import VolumePrice, VolumeTier


class VolumePricingClient(BackendClient):
    service_name = "volume-pricing"

    async def get_volume_price(self, product_id: int, quantity: int, customer_id: int | None) -> VolumePrice:
        params: dict = {"quantity": quantity}
        if customer_id is not None:
            params["customer_id"] = customer_id
        data = await self.get(f"/api/pricing/volume/{product_id}", params=params)
        return VolumePrice.model_validate({"product_id": product_id, "quantity": quantity, **(data or {})})

    async def get_product_tiers(self, product_id: int) -> list[VolumeTier]:
        data = await self.get(f"/api/pricing/volume/{product_id}/tiers")
        return [VolumeTier.model_validate(row) for row in data or []]

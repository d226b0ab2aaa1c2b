"""
Tests for backend HTTP clients using httpx.MockTransport.

Tests verify:
- Envelope unwrapping and model parsing
- Mapping of HTTP failures onto domain exceptions
- GET retry on transient failures, no retry for POST
"""

import json
from decimal import Decimal

import httpx
import pytest

from shared.infrastructure.retry import RetryConfig
from shared.utils.exceptions import (
    AuthorityError,
    BackendError,
    BackendUnavailableError,
    NotFoundError,
    ValidationError,
)
from pos_engine.clients.authority import DiscountAuthorityClient
from pos_engine.clients.settlement import SettlementClient
from pos_engine.clients.trade_in import TradeInClient
from pos_engine.clients.volume import VolumePricingClient
from pos_engine.models.authority import DiscountRecord
from pos_engine.models.transaction import Payment, TransactionItem, TransactionPayload


FAST_RETRY = RetryConfig(initial_delay=0.001, max_delay=0.001, max_attempts=3)


def _client(cls, handler, **kwargs):
    return cls(
        base_url="http://pos.test",
        token="secret",
        retry_config=FAST_RETRY,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestAuthorityClient:
    """Discount authority endpoints."""

    @pytest.mark.asyncio
    async def test_get_my_tier_unwraps_envelope(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["path"] = request.url.path
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {
                        "tier": {"tier_name": "Senior", "max_discount_pct_high_margin": 12, "is_manager": True},
                        "budget": {"total_budget_dollars": "500.00", "used_dollars": "120.50"},
                    },
                },
            )

        client = _client(DiscountAuthorityClient, handler)
        response = await client.get_my_tier()
        await client.close()

        assert seen == {"auth": "Bearer secret", "path": "/api/discount-authority/my-tier"}
        assert response.tier.tier_name == "Senior"
        assert response.tier.is_manager is True
        assert response.budget.remaining_dollars == Decimal("379.50")

    @pytest.mark.asyncio
    async def test_rejection_becomes_authority_error(self):
        def handler(request):
            return httpx.Response(403, json={"error": "Weekly budget exceeded"})

        client = _client(DiscountAuthorityClient, handler)
        record = DiscountRecord(
            product_id=1,
            original_price=Decimal("100"),
            discount_pct=Decimal("5"),
            discount_amount=Decimal("5.00"),
        )

        with pytest.raises(AuthorityError, match="Weekly budget exceeded"):
            await client.apply_discount(record)

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope_is_rejected(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "Not allowed"})

        client = _client(DiscountAuthorityClient, handler)

        with pytest.raises(AuthorityError, match="Not allowed"):
            await client.validate_discount(1, Decimal("5"))

    @pytest.mark.asyncio
    async def test_escalation_list_parsing(self):
        def handler(request):
            return httpx.Response(
                200,
                json=[
                    {"id": 1, "product_id": 4, "requested_discount_pct": "15", "status": "approved"},
                    {"id": 2, "product_id": 5, "requested_discount_pct": "12.5", "status": "pending"},
                ],
            )

        client = _client(DiscountAuthorityClient, handler)
        escalations = await client.get_my_escalations()

        assert [e.status for e in escalations] == ["approved", "pending"]
        assert escalations[1].requested_discount_pct == Decimal("12.5")

    @pytest.mark.asyncio
    async def test_deny_sends_reason(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(204)

        client = _client(DiscountAuthorityClient, handler)
        result = await client.deny_escalation(9, "Below cost")

        assert result is None
        assert bodies == [{"reason": "Below cost"}]


class TestTransport:
    """Shared transport behaviour."""

    @pytest.mark.asyncio
    async def test_get_retries_transient_status(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[])

        client = _client(DiscountAuthorityClient, handler)

        assert await client.get_pending_escalations() == []
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_get_gives_up_after_max_attempts(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(VolumePricingClient, handler)

        with pytest.raises(BackendUnavailableError):
            await client.get_product_tiers(1)

    @pytest.mark.asyncio
    async def test_post_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502, json={"message": "Bad gateway"})

        client = _client(TradeInClient, handler)

        with pytest.raises(BackendError) as exc:
            await client.void_assessment(4, "Removed")

        assert len(calls) == 1
        assert exc.value.status_code == 502

    @pytest.mark.asyncio
    async def test_not_found(self):
        def handler(request):
            return httpx.Response(404)

        client = _client(VolumePricingClient, handler)

        with pytest.raises(NotFoundError):
            await client.get_volume_price(1, 2, None)

    @pytest.mark.asyncio
    async def test_default_rejection_is_validation_error(self):
        def handler(request):
            return httpx.Response(422, json={"detail": "quantity must be positive"})

        client = _client(VolumePricingClient, handler)

        with pytest.raises(ValidationError, match="quantity must be positive"):
            await client.get_volume_price(1, 0, None)

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>", headers={"Content-Type": "text/html"})

        client = _client(VolumePricingClient, handler)

        with pytest.raises(BackendError):
            await client.get_product_tiers(1)


class TestVolumeAndSettlementClients:
    """Request shapes for volume pricing and settlement."""

    @pytest.mark.asyncio
    async def test_volume_price_query(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(
                200,
                json={"basePriceCents": 10000, "volumePriceCents": 9000, "discountPercent": 10, "tierName": "5+"},
            )

        client = _client(VolumePricingClient, handler)
        price = await client.get_volume_price(1, 5, 33)

        assert seen["params"] == {"quantity": "5", "customer_id": "33"}
        assert price.product_id == 1
        assert price.unit_price == Decimal("90.00")
        assert price.has_discount

    @pytest.mark.asyncio
    async def test_create_transaction_sends_camel_case(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"success": True, "data": {"transactionId": 55, "transactionNumber": "T-55"}})

        client = _client(SettlementClient, handler)
        payload = TransactionPayload(
            shift_id=3,
            items=[TransactionItem(product_id=1, quantity=1, unit_price=Decimal("100.00"), discount_percent=Decimal("0"))],
            payments=[Payment(payment_method="cash", amount=Decimal("113.00"))],
            tax_province="ON",
            amount_to_pay=Decimal("113.00"),
        )

        result = await client.create_transaction(payload)

        assert result.transaction_id == 55
        body = bodies[0]
        assert body["shiftId"] == 3
        assert body["payments"][0]["paymentMethod"] == "cash"
        assert body["payments"][0]["amount"] == 113.0
        assert body["items"][0]["unitPrice"] == 100.0

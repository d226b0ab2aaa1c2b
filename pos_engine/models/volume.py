"""
Volume (quantity-break) pricing models.
"""

from decimal import Decimal

from pydantic import AliasChoices, BaseModel, Field

from shared.utils.money import ONE_HUNDRED, ZERO, to_money, to_pct


class VolumeTier(BaseModel):
    """
    One quantity break for a product.

    A tier sets either a fixed unit price (``price_cents``) or a percentage off
    the base price. ``max_qty`` of None means open-ended.
    """

    id: int | None = None
    min_qty: int = Field(ge=1, validation_alias=AliasChoices("min_qty", "minQty"))
    max_qty: int | None = Field(default=None, validation_alias=AliasChoices("max_qty", "maxQty"))
    price_cents: int | None = Field(default=None, ge=0, validation_alias=AliasChoices("price_cents", "priceCents"))
    discount_percent: Decimal | None = Field(
        default=None, ge=0, le=100, validation_alias=AliasChoices("discount_percent", "discountPercent")
    )
    tier_name: str | None = Field(default=None, validation_alias=AliasChoices("tier_name", "tierName"))
    is_active: bool = Field(default=True, validation_alias=AliasChoices("is_active", "isActive"))

    def contains(self, quantity: int) -> bool:
        return self.min_qty <= quantity and (self.max_qty is None or quantity <= self.max_qty)

    def unit_price(self, base_price: Decimal) -> Decimal:
        if self.price_cents is not None:
            return to_money(Decimal(self.price_cents) / ONE_HUNDRED)
        if self.discount_percent is not None:
            return to_money(base_price * (ONE_HUNDRED - self.discount_percent) / ONE_HUNDRED)
        return to_money(base_price)

    def effective_discount_pct(self, base_price: Decimal) -> Decimal:
        if base_price <= 0:
            return Decimal("0.0")
        return to_pct((base_price - self.unit_price(base_price)) / base_price * ONE_HUNDRED)


class VolumePrice(BaseModel):
    """Resolved price for (product, customer, quantity)."""

    product_id: int = Field(validation_alias=AliasChoices("product_id", "productId"))
    quantity: int
    base_price_cents: int = Field(validation_alias=AliasChoices("base_price_cents", "basePriceCents"))
    volume_price_cents: int = Field(validation_alias=AliasChoices("volume_price_cents", "volumePriceCents"))
    discount_percent: Decimal = Field(
        default=Decimal("0"), validation_alias=AliasChoices("discount_percent", "discountPercent")
    )
    tier_name: str | None = Field(default=None, validation_alias=AliasChoices("tier_name", "tierName"))
    pricing_source: str | None = Field(default=None, validation_alias=AliasChoices("pricing_source", "pricingSource"))

    @property
    def base_price(self) -> Decimal:
        return to_money(Decimal(self.base_price_cents) / ONE_HUNDRED)

    @property
    def unit_price(self) -> Decimal:
        return to_money(Decimal(self.volume_price_cents) / ONE_HUNDRED)

    @property
    def has_discount(self) -> bool:
        return self.volume_price_cents < self.base_price_cents


class NextTierInfo(BaseModel):
    """Advisory prompt: buy ``units_needed`` more to reach a better tier."""

    units_needed: int
    tier_name: str | None = None
    unit_price: Decimal
    discount_percent: Decimal
    savings_per_unit: Decimal = ZERO


class TierPreview(BaseModel):
    """A product's tier table priced against its base price."""

    min_qty: int
    max_qty: int | None = None
    tier_name: str | None = None
    unit_price: Decimal
    discount_percent: Decimal
    savings_per_unit: Decimal
    is_current: bool = False

"""
Settlement contract: payments and the canonical transaction payload.

The payload is the only thing the settlement backend sees. It is sent as
camelCase JSON with money as numbers.
"""

from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


TenderType = Literal["cash", "credit", "debit", "gift_card", "financing"]

# Money serialized as a JSON number
JsonMoney = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Payment(WireModel):
    """One tender line."""

    payment_method: TenderType
    amount: JsonMoney = Field(gt=0)
    is_deposit: bool = False
    cash_tendered: JsonMoney | None = None
    change_given: JsonMoney | None = None
    card_last_four: str | None = Field(default=None, max_length=4)
    authorization_code: str | None = None


class TransactionItem(WireModel):
    product_id: int
    quantity: int
    unit_price: JsonMoney
    unit_cost: JsonMoney | None = None
    discount_percent: JsonMoney
    # Line discounts travel as a percentage only
    discount_amount: JsonMoney = Decimal("0")
    serial_number: str | None = None
    taxable: bool = True


class PromotionRef(WireModel):
    promotion_id: int
    code: str
    discount_amount: JsonMoney


class TradeInCredit(WireModel):
    assessment_id: int
    credit_amount: JsonMoney


class CommissionShare(WireModel):
    user_id: int | None
    split_percentage: JsonMoney
    role: Literal["primary", "secondary"]


class CommissionSplitPayload(WireModel):
    splits: list[CommissionShare]


class TransactionPayload(WireModel):
    """Canonical sale handed to settlement."""

    shift_id: int
    customer_id: int | None = None
    quote_id: int | None = None
    salesperson_id: int | None = None
    items: list[TransactionItem]
    payments: list[Payment]
    discount_amount: JsonMoney = Decimal("0")
    discount_reason: str | None = None
    tax_province: str
    delivery_fee: JsonMoney = Decimal("0")
    promotion: PromotionRef | None = None
    fulfillment: dict[str, Any] | None = None
    trade_ins: list[TradeInCredit] = Field(default_factory=list)
    commission_split: CommissionSplitPayload | None = None
    trade_in_total: JsonMoney = Decimal("0")
    trade_in_excess: JsonMoney = Decimal("0")
    amount_to_pay: JsonMoney
    is_deposit: bool = False
    marketing_source: str | None = None
    marketing_source_detail: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TransactionResult(WireModel):
    """Settlement response."""

    transaction_id: int
    transaction_number: str | None = None
    totals: dict[str, Any] | None = None

"""Pydantic schemas for ng_settlement API requests/responses."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from src.ng_common.datetime_utils import utc_now
from src.ng_common.money import price_to_display
from src.ng_settlement.domain.models import SettlementToken


class ValidateTokenRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    item_id: str = Field(min_length=1)


class RedeemTokenRequest(BaseModel):
    purchase_ref: str = Field(min_length=1, max_length=128)
    item_id: str | None = None

    @field_validator("purchase_ref")
    @classmethod
    def no_surrounding_whitespace(cls, v: str) -> str:
        if v != v.strip():
            raise ValueError("purchase_ref must not have leading or trailing whitespace")
        return v


class SettlementTokenOut(BaseModel):
    code: str
    negotiation_id: str
    item_id: str
    original_price: int
    discounted_price: int
    discounted_price_display: str
    discount_amount: int
    discount_percentage: int
    expires_at: str
    is_used: bool
    used_at: str | None
    is_valid: bool

    @classmethod
    def from_domain(
        cls, t: SettlementToken, now: datetime | None = None
    ) -> "SettlementTokenOut":
        return cls(
            code=t.code,
            negotiation_id=t.negotiation_id,
            item_id=t.item_id,
            original_price=t.original_price,
            discounted_price=t.discounted_price,
            discounted_price_display=price_to_display(t.discounted_price),
            discount_amount=t.discount_amount,
            discount_percentage=t.discount_percentage,
            expires_at=t.expires_at.isoformat(),
            is_used=t.is_used,
            used_at=t.used_at.isoformat() if t.used_at else None,
            is_valid=t.is_valid(now or utc_now()),
        )


class ValidateTokenResponse(BaseModel):
    valid: bool
    reason: str | None = None
    token: SettlementTokenOut | None = None


class RedeemTokenResponse(BaseModel):
    code: str
    purchase_ref: str
    discounted_price: int
    used_at: str

    @classmethod
    def from_domain(cls, t: SettlementToken) -> "RedeemTokenResponse":
        return cls(
            code=t.code,
            purchase_ref=t.purchase_ref or "",
            discounted_price=t.discounted_price,
            used_at=t.used_at.isoformat() if t.used_at else "",
        )


class TokenListResponse(BaseModel):
    items: list[SettlementTokenOut]

"""Settlement token domain model — pure dataclass, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SettlementToken:
    id: str
    code: str
    negotiation_id: str
    item_id: str
    buyer_id: str
    seller_id: str
    original_price: int
    discounted_price: int  # == negotiation.final_price
    discount_amount: int  # original_price - discounted_price
    discount_percentage: int  # whole percent, halves rounded up
    expires_at: datetime
    created_at: datetime
    is_active: bool = True
    is_used: bool = False
    used_at: datetime | None = None
    purchase_ref: str | None = None

    def is_bound_to(self, buyer_id: str, item_id: str) -> bool:
        return self.buyer_id == buyer_id and self.item_id == item_id

    def is_valid(self, now: datetime) -> bool:
        return self.is_active and not self.is_used and now <= self.expires_at

    def is_valid_for(self, buyer_id: str, item_id: str, now: datetime) -> bool:
        return self.is_bound_to(buyer_id, item_id) and self.is_valid(now)

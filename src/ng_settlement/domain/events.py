"""Domain events for ng_settlement."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TokenIssued:
    token_id: str
    code: str
    negotiation_id: str
    buyer_id: str
    discounted_price: int
    expires_at: datetime
    occurred_at: datetime


@dataclass(frozen=True)
class TokenRedeemed:
    token_id: str
    code: str
    purchase_ref: str
    occurred_at: datetime

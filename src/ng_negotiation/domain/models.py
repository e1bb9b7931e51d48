"""Domain models for ng_negotiation — frozen dataclasses, no SQLAlchemy dependency.

State changes never mutate these objects; command functions in
`domain/commands.py` return a new instance via `dataclasses.replace`.
"""

from dataclasses import dataclass, field
from datetime import datetime

from src.ng_common.enums import NegotiationStatus


@dataclass(frozen=True)
class Message:
    id: str
    seq: int  # 1-based position in the session log
    type: str  # MessageType value
    content: str  # stored after filtering; never rewritten
    sender_id: str
    timestamp: datetime
    template_id: str | None = None
    price_offer: int | None = None
    is_filtered: bool = False
    filtered_reason: str | None = None


@dataclass(frozen=True)
class Report:
    user_id: str
    reason: str
    timestamp: datetime


@dataclass(frozen=True)
class NegotiationSession:
    id: str
    item_id: str
    buyer_id: str
    seller_id: str
    status: str
    original_price: int
    minimum_price: int  # floor, recomputed whenever original_price is set
    created_at: datetime
    expires_at: datetime
    last_activity: datetime
    current_offer: int | None = None
    final_price: int | None = None
    messages: tuple[Message, ...] = field(default_factory=tuple)
    reports: tuple[Report, ...] = field(default_factory=tuple)
    is_blocked: bool = False
    blocked_reason: str | None = None
    # Counters, kept consistent with `messages` by the command functions
    buyer_message_count: int = 0
    seller_message_count: int = 0
    offer_count: int = 0
    last_buyer_message: datetime | None = None
    last_seller_message: datetime | None = None
    version: int = 0  # optimistic concurrency token

    def is_expired(self, now: datetime) -> bool:
        """Lazily evaluated: a session past its deadline is expired even if no write happened."""
        if self.status == NegotiationStatus.EXPIRED.value:
            return True
        return self.status == NegotiationStatus.ACTIVE.value and now > self.expires_at

    def effective_status(self, now: datetime) -> str:
        if self.is_expired(now):
            return NegotiationStatus.EXPIRED.value
        return self.status

    @property
    def is_active(self) -> bool:
        return self.status == NegotiationStatus.ACTIVE.value

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def has_reported(self, user_id: str) -> bool:
        return any(r.user_id == user_id for r in self.reports)

    @property
    def next_seq(self) -> int:
        return self.messages[-1].seq + 1 if self.messages else 1

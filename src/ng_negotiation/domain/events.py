"""Domain events emitted by the negotiation command functions.

Returned alongside the new state in `Outcome.events`; the application
service logs them after commit. Delivery to notification collaborators
(email, push) happens outside this service.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SessionOpened:
    negotiation_id: str
    item_id: str
    buyer_id: str
    seller_id: str
    original_price: int
    minimum_price: int
    occurred_at: datetime


@dataclass(frozen=True)
class MessagePosted:
    negotiation_id: str
    message_id: str
    sender_id: str
    type: str
    is_filtered: bool
    occurred_at: datetime


@dataclass(frozen=True)
class OfferMade:
    negotiation_id: str
    sender_id: str
    price: int
    occurred_at: datetime


@dataclass(frozen=True)
class SessionAccepted:
    negotiation_id: str
    accepted_by: str
    final_price: int
    occurred_at: datetime


@dataclass(frozen=True)
class SessionRejected:
    negotiation_id: str
    rejected_by: str
    reason: str | None
    occurred_at: datetime


@dataclass(frozen=True)
class SessionReported:
    negotiation_id: str
    user_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class SessionCompleted:
    negotiation_id: str
    occurred_at: datetime

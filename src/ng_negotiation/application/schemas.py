"""Pydantic schemas for ng_negotiation API requests/responses.

Cursor format for listings (VARCHAR PK, ordered by last_activity DESC):
  {"ts": "<last_activity ISO>", "id": "<negotiation_id>"}
  Encoded as Base64 JSON string.
"""

import base64
import json
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from src.ng_common.datetime_utils import parse_utc
from src.ng_common.money import price_to_display
from src.ng_negotiation.domain.models import Message, NegotiationSession
from src.ng_settlement.application.schemas import SettlementTokenOut

# ---------------------------------------------------------------------------
# Cursor utilities
# ---------------------------------------------------------------------------


def cursor_encode(last: NegotiationSession) -> str:
    payload = {"ts": last.last_activity.isoformat(), "id": last.id}
    return base64.b64encode(json.dumps(payload).encode()).decode()


def cursor_decode(cursor: str | None) -> tuple[datetime | None, str | None]:
    """Decode composite cursor -> (last_activity, negotiation_id), or (None, None) on error."""
    if cursor is None:
        return None, None
    try:
        data = json.loads(base64.b64decode(cursor.encode()).decode())
        return parse_utc(data["ts"]), data["id"]
    except Exception:
        return None, None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class OpenNegotiationRequest(BaseModel):
    item_id: str = Field(min_length=1)
    seller_id: str = Field(min_length=1)
    original_price: int = Field(gt=0)
    message: str | None = Field(None, max_length=500)
    template_id: str | None = None


class PostMessageRequest(BaseModel):
    type: Literal["template", "price_offer", "counter_offer"]
    content: str | None = Field(None, max_length=500)
    template_id: str | None = None
    price_offer: int | None = Field(None, ge=1)

    @model_validator(mode="after")
    def offer_needs_price(self) -> "PostMessageRequest":
        if self.type != "template" and self.price_offer is None:
            raise ValueError("price_offer is required for offers")
        return self


class RejectRequest(BaseModel):
    reason: str | None = Field(None, max_length=200)


class ReportRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class MessageOut(BaseModel):
    id: str
    seq: int
    type: str
    content: str
    sender_id: str
    template_id: str | None
    price_offer: int | None
    is_filtered: bool
    filtered_reason: str | None
    timestamp: str

    @classmethod
    def from_domain(cls, m: Message) -> "MessageOut":
        return cls(
            id=m.id,
            seq=m.seq,
            type=m.type,
            content=m.content,
            sender_id=m.sender_id,
            template_id=m.template_id,
            price_offer=m.price_offer,
            is_filtered=m.is_filtered,
            filtered_reason=m.filtered_reason,
            timestamp=m.timestamp.isoformat(),
        )


class NegotiationSummary(BaseModel):
    """List item: no message log."""

    id: str
    item_id: str
    buyer_id: str
    seller_id: str
    status: str
    is_expired: bool
    original_price: int
    minimum_price: int
    current_offer: int | None
    final_price: int | None
    final_price_display: str | None
    last_activity: str
    expires_at: str

    @classmethod
    def from_domain(cls, s: NegotiationSession, now: datetime) -> "NegotiationSummary":
        return cls(
            id=s.id,
            item_id=s.item_id,
            buyer_id=s.buyer_id,
            seller_id=s.seller_id,
            status=s.effective_status(now),
            is_expired=s.is_expired(now),
            original_price=s.original_price,
            minimum_price=s.minimum_price,
            current_offer=s.current_offer,
            final_price=s.final_price,
            final_price_display=price_to_display(s.final_price) if s.final_price else None,
            last_activity=s.last_activity.isoformat(),
            expires_at=s.expires_at.isoformat(),
        )


class NegotiationDetail(NegotiationSummary):
    buyer_message_count: int
    seller_message_count: int
    offer_count: int
    is_blocked: bool
    report_count: int
    created_at: str
    messages: list[MessageOut]

    @classmethod
    def from_domain(cls, s: NegotiationSession, now: datetime) -> "NegotiationDetail":
        base = NegotiationSummary.from_domain(s, now).model_dump()
        return cls(
            **base,
            buyer_message_count=s.buyer_message_count,
            seller_message_count=s.seller_message_count,
            offer_count=s.offer_count,
            is_blocked=s.is_blocked,
            report_count=len(s.reports),
            created_at=s.created_at.isoformat(),
            messages=[MessageOut.from_domain(m) for m in s.messages],
        )


class NegotiationListResponse(BaseModel):
    items: list[NegotiationSummary]
    next_cursor: str | None
    has_more: bool


class AcceptOfferResponse(BaseModel):
    negotiation: NegotiationDetail
    token: SettlementTokenOut
    already_processed: bool = False


class TemplateOut(BaseModel):
    id: str
    text: str


class ReportResponse(BaseModel):
    negotiation_id: str
    reported: bool = True

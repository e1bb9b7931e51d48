"""Negotiation command functions.

Each command takes the current NegotiationSession plus the caller's input and
`now`, and returns an Outcome carrying a Transition (the new session state
and whatever was appended) together with the resulting domain events.
Expected policy violations come back as `Outcome.failure(...)`.
Nothing in this module touches storage; the application service persists
the Transition under the session's optimistic version.
"""

from dataclasses import dataclass, replace
from datetime import datetime

from src.ng_common.enums import (
    CALLER_MESSAGE_TYPES,
    OFFER_MESSAGE_TYPES,
    MessageType,
    NegotiationStatus,
)
from src.ng_common.errors import (
    AlreadyReportedError,
    AppError,
    InvalidFieldError,
    NoOfferToAcceptError,
    NotAuthorizedError,
    RateLimitExceededError,
    SessionExpiredError,
    SessionTerminalError,
)
from src.ng_common.ids import new_message_id
from src.ng_common.money import price_floor, price_to_display
from src.ng_common.outcome import Outcome
from src.ng_moderation.content_filter.pipeline import ContentFilter
from src.ng_moderation.rules.rate_limit import RateLimiter
from src.ng_negotiation.domain.events import (
    MessagePosted,
    OfferMade,
    SessionAccepted,
    SessionCompleted,
    SessionOpened,
    SessionRejected,
    SessionReported,
)
from src.ng_negotiation.domain.models import Message, NegotiationSession, Report
from src.ng_negotiation.domain.policy import NegotiationPolicy
from src.ng_negotiation.domain.templates import template_text


@dataclass(frozen=True)
class Transition:
    session: NegotiationSession
    message: Message | None = None
    report: Report | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def set_original_price(
    session: NegotiationSession, original_price: int, policy: NegotiationPolicy
) -> NegotiationSession:
    """Set the listed price and recompute the floor from it."""
    return replace(
        session,
        original_price=original_price,
        minimum_price=price_floor(original_price, policy.price_floor_bps),
    )


def _check_active(
    session: NegotiationSession, now: datetime, expired_error: AppError
) -> AppError | None:
    if not session.is_active:
        return SessionTerminalError(session.status)
    if session.is_expired(now):
        return expired_error
    return None


def _append(session: NegotiationSession, message: Message, now: datetime) -> NegotiationSession:
    """Append to the log and bump the sender-side counters."""
    changes: dict[str, object] = {
        "messages": session.messages + (message,),
        "last_activity": now,
    }
    if message.sender_id == session.buyer_id:
        changes["buyer_message_count"] = session.buyer_message_count + 1
        changes["last_buyer_message"] = now
    else:
        changes["seller_message_count"] = session.seller_message_count + 1
        changes["last_seller_message"] = now
    return replace(session, **changes)  # type: ignore[arg-type]


def _resolve_content(
    message_type: str,
    content: str | None,
    template_id: str | None,
    policy: NegotiationPolicy,
) -> tuple[str | None, AppError | None]:
    if message_type not in CALLER_MESSAGE_TYPES:
        return None, InvalidFieldError("type", f"cannot post messages of type {message_type}")
    if template_id is not None:
        canned = template_text(template_id)
        if canned is None:
            return None, InvalidFieldError("template_id", f"unknown template {template_id}")
        content = canned
    if content is None or not content.strip():
        return None, InvalidFieldError("content", "Message or template required")
    if len(content) > policy.message_max_length:
        return None, InvalidFieldError(
            "content", f"must be at most {policy.message_max_length} characters"
        )
    return content, None


def _bounded(text: str, policy: NegotiationPolicy) -> str:
    """Redaction markers can outgrow the spans they replace; the stored text stays in bounds."""
    return text[: policy.message_max_length]


def _check_offer(session: NegotiationSession, price_offer: int | None) -> AppError | None:
    if price_offer is None:
        return InvalidFieldError("price_offer", "required for price offers")
    if price_offer <= 0:
        return InvalidFieldError("price_offer", "must be greater than zero")
    if price_offer < session.minimum_price:
        return InvalidFieldError(
            "price_offer",
            f"Price cannot be below minimum of {price_to_display(session.minimum_price)}",
        )
    if price_offer > session.original_price:
        return InvalidFieldError("price_offer", "Price cannot exceed the original price")
    return None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def open_session(
    *,
    negotiation_id: str,
    item_id: str,
    buyer_id: str,
    seller_id: str,
    original_price: int,
    now: datetime,
    policy: NegotiationPolicy,
) -> Outcome[Transition]:
    if original_price <= 0:
        return Outcome.failure(InvalidFieldError("original_price", "must be greater than zero"))
    if buyer_id == seller_id:
        return Outcome.failure(
            InvalidFieldError("seller_id", "Cannot negotiate on your own item")
        )

    session = NegotiationSession(
        id=negotiation_id,
        item_id=item_id,
        buyer_id=buyer_id,
        seller_id=seller_id,
        status=NegotiationStatus.ACTIVE.value,
        original_price=original_price,
        minimum_price=0,
        created_at=now,
        expires_at=now + policy.session_ttl,
        last_activity=now,
    )
    session = set_original_price(session, original_price, policy)
    event = SessionOpened(
        negotiation_id=session.id,
        item_id=item_id,
        buyer_id=buyer_id,
        seller_id=seller_id,
        original_price=session.original_price,
        minimum_price=session.minimum_price,
        occurred_at=now,
    )
    return Outcome.success(Transition(session=session), events=(event,))


def post_message(
    session: NegotiationSession,
    *,
    sender_id: str,
    message_type: str,
    content: str | None,
    now: datetime,
    policy: NegotiationPolicy,
    content_filter: ContentFilter,
    rate_limiter: RateLimiter,
    template_id: str | None = None,
    price_offer: int | None = None,
) -> Outcome[Transition]:
    """Filter, validate and append one participant message.

    Order matters: terminal/expiry guard, then rate limit, then input
    validation, then redaction. A refused attempt leaves the log and the
    counters untouched.
    """
    if not session.is_participant(sender_id):
        return Outcome.failure(NotAuthorizedError())
    error = _check_active(session, now, SessionTerminalError(NegotiationStatus.EXPIRED.value))
    if error is not None:
        return Outcome.failure(error)
    if not rate_limiter.check(session, sender_id, now):
        return Outcome.failure(RateLimitExceededError())

    text, error = _resolve_content(message_type, content, template_id, policy)
    if error is not None:
        return Outcome.failure(error)
    is_offer = message_type in OFFER_MESSAGE_TYPES
    if is_offer:
        error = _check_offer(session, price_offer)
        if error is not None:
            return Outcome.failure(error)

    filtered = content_filter.filter(text)  # type: ignore[arg-type]
    message = Message(
        id=new_message_id(),
        seq=session.next_seq,
        type=message_type,
        content=_bounded(filtered.filtered_content, policy),
        sender_id=sender_id,
        timestamp=now,
        template_id=template_id,
        price_offer=price_offer if is_offer else None,
        is_filtered=filtered.is_filtered,
        filtered_reason=filtered.reason,
    )

    updated = _append(session, message, now)
    events: list[object] = [
        MessagePosted(
            negotiation_id=session.id,
            message_id=message.id,
            sender_id=sender_id,
            type=message_type,
            is_filtered=filtered.is_filtered,
            occurred_at=now,
        )
    ]
    if is_offer:
        updated = replace(
            updated, current_offer=price_offer, offer_count=updated.offer_count + 1
        )
        events.append(
            OfferMade(
                negotiation_id=session.id,
                sender_id=sender_id,
                price=price_offer,  # type: ignore[arg-type]
                occurred_at=now,
            )
        )
    return Outcome.success(Transition(session=updated, message=message), events=tuple(events))


def accept(
    session: NegotiationSession, *, actor_id: str, now: datetime
) -> Outcome[Transition]:
    """active -> accepted; the current offer becomes the final price."""
    if actor_id != session.seller_id:
        return Outcome.failure(NotAuthorizedError("Only the seller can accept offers"))
    error = _check_active(session, now, SessionExpiredError())
    if error is not None:
        return Outcome.failure(error)
    if session.current_offer is None:
        return Outcome.failure(NoOfferToAcceptError())

    final_price = session.current_offer
    message = Message(
        id=new_message_id(),
        seq=session.next_seq,
        type=MessageType.ACCEPTANCE.value,
        content=(
            f"Offer accepted at {price_to_display(final_price)}. "
            "A single-use discount code has been issued to the buyer."
        ),
        sender_id=actor_id,
        timestamp=now,
    )
    updated = replace(
        _append(session, message, now),
        status=NegotiationStatus.ACCEPTED.value,
        final_price=final_price,
    )
    event = SessionAccepted(
        negotiation_id=session.id, accepted_by=actor_id, final_price=final_price, occurred_at=now
    )
    return Outcome.success(Transition(session=updated, message=message), events=(event,))


def reject(
    session: NegotiationSession,
    *,
    actor_id: str,
    reason: str | None,
    now: datetime,
    policy: NegotiationPolicy,
    content_filter: ContentFilter,
) -> Outcome[Transition]:
    """active -> rejected. The seller declines or the buyer withdraws."""
    if not session.is_participant(actor_id):
        return Outcome.failure(NotAuthorizedError())
    if reason is not None and len(reason) > policy.reject_reason_max_length:
        return Outcome.failure(
            InvalidFieldError(
                "reason", f"must be at most {policy.reject_reason_max_length} characters"
            )
        )
    error = _check_active(session, now, SessionExpiredError())
    if error is not None:
        return Outcome.failure(error)

    if actor_id == session.seller_id:
        text = "Offer rejected by seller."
    else:
        text = "Negotiation withdrawn by buyer."
    filtered = None
    if reason and reason.strip():
        filtered = content_filter.filter(reason.strip())
        text = f"{text} Reason: {filtered.filtered_content}"

    message = Message(
        id=new_message_id(),
        seq=session.next_seq,
        type=MessageType.REJECTION.value,
        content=_bounded(text, policy),
        sender_id=actor_id,
        timestamp=now,
        is_filtered=bool(filtered and filtered.is_filtered),
        filtered_reason=filtered.reason if filtered else None,
    )
    updated = replace(_append(session, message, now), status=NegotiationStatus.REJECTED.value)
    event = SessionRejected(
        negotiation_id=session.id,
        rejected_by=actor_id,
        reason=filtered.filtered_content if filtered else None,
        occurred_at=now,
    )
    return Outcome.success(Transition(session=updated, message=message), events=(event,))


def report(
    session: NegotiationSession,
    *,
    user_id: str,
    reason: str,
    now: datetime,
    policy: NegotiationPolicy,
) -> Outcome[Transition]:
    """Record a moderation report. Allowed in any status; one per user."""
    if not session.is_participant(user_id):
        return Outcome.failure(NotAuthorizedError())
    reason = (reason or "").strip()
    if not reason:
        return Outcome.failure(InvalidFieldError("reason", "Valid reason required"))
    if len(reason) > policy.report_reason_max_length:
        return Outcome.failure(
            InvalidFieldError(
                "reason", f"must be at most {policy.report_reason_max_length} characters"
            )
        )
    if session.has_reported(user_id):
        return Outcome.failure(AlreadyReportedError())

    entry = Report(user_id=user_id, reason=reason, timestamp=now)
    updated = replace(session, reports=session.reports + (entry,))
    event = SessionReported(negotiation_id=session.id, user_id=user_id, occurred_at=now)
    return Outcome.success(Transition(session=updated, report=entry), events=(event,))


def expire(session: NegotiationSession, *, now: datetime) -> Outcome[Transition]:
    """Persist the lazily derived expiry (active and past deadline -> expired)."""
    if not (session.is_active and session.is_expired(now)):
        return Outcome.failure(SessionTerminalError(session.effective_status(now)))
    return Outcome.success(
        Transition(session=replace(session, status=NegotiationStatus.EXPIRED.value))
    )


def complete(session: NegotiationSession, *, now: datetime) -> Outcome[Transition]:
    """accepted -> completed, driven by the external purchase flow."""
    if session.status != NegotiationStatus.ACCEPTED.value:
        return Outcome.failure(SessionTerminalError(session.status))
    updated = replace(session, status=NegotiationStatus.COMPLETED.value, last_activity=now)
    return Outcome.success(
        Transition(session=updated),
        events=(SessionCompleted(negotiation_id=session.id, occurred_at=now),),
    )

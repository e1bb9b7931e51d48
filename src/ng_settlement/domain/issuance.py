"""Pure construction of a settlement token from an accepted negotiation."""

from datetime import datetime, timedelta

from src.ng_common.ids import new_token_id
from src.ng_common.money import discount_percentage
from src.ng_negotiation.domain.models import NegotiationSession
from src.ng_settlement.domain.events import TokenIssued
from src.ng_settlement.domain.models import SettlementToken


def build_token(
    session: NegotiationSession, code: str, now: datetime, ttl: timedelta
) -> tuple[SettlementToken, TokenIssued]:
    """Bind a token to (session, item, buyer, seller) at the session's final price.

    The 48h token window is counted from issuance and is independent of the
    session's own expiry.
    """
    if session.final_price is None:
        raise ValueError(f"negotiation {session.id} has no final price")
    discounted = session.final_price
    token = SettlementToken(
        id=new_token_id(),
        code=code,
        negotiation_id=session.id,
        item_id=session.item_id,
        buyer_id=session.buyer_id,
        seller_id=session.seller_id,
        original_price=session.original_price,
        discounted_price=discounted,
        discount_amount=session.original_price - discounted,
        discount_percentage=discount_percentage(session.original_price, discounted),
        expires_at=now + ttl,
        created_at=now,
    )
    event = TokenIssued(
        token_id=token.id,
        code=token.code,
        negotiation_id=token.negotiation_id,
        buyer_id=token.buyer_id,
        discounted_price=token.discounted_price,
        expires_at=token.expires_at,
        occurred_at=now,
    )
    return token, event

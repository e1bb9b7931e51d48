"""SettlementTokenValidator — purchase-time check and exactly-once redemption.

validate() answers with one generic reason on any failure so that callers
cannot probe which check (unknown code, wrong buyer, wrong item, used,
expired) tripped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_common.datetime_utils import utc_now
from src.ng_common.errors import (
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from src.ng_common.outcome import Outcome
from src.ng_settlement.domain.codes import normalize_code
from src.ng_settlement.domain.events import TokenRedeemed
from src.ng_settlement.domain.models import SettlementToken
from src.ng_settlement.domain.repository import SettlementTokenRepositoryProtocol
from src.ng_settlement.infrastructure.persistence import SettlementTokenRepository

logger = logging.getLogger(__name__)

INVALID_CODE_REASON = "Invalid or expired discount code"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    token: SettlementToken | None = None
    reason: str | None = None


class SettlementTokenValidator:
    def __init__(self, repo: SettlementTokenRepositoryProtocol | None = None) -> None:
        self._repo: SettlementTokenRepositoryProtocol = repo or SettlementTokenRepository()

    async def validate(
        self,
        db: AsyncSession,
        code: str,
        buyer_id: str,
        item_id: str,
        now: datetime | None = None,
    ) -> ValidationResult:
        now = now or utc_now()
        token = await self._repo.get_by_code(db, normalize_code(code))
        if token is None or not token.is_valid_for(buyer_id, item_id, now):
            return ValidationResult(valid=False, reason=INVALID_CODE_REASON)
        return ValidationResult(valid=True, token=token)

    async def redeem(
        self,
        db: AsyncSession,
        code: str,
        purchase_ref: str,
        now: datetime | None = None,
        buyer_id: str | None = None,
        item_id: str | None = None,
    ) -> Outcome[SettlementToken]:
        """Mark the token used, at most once.

        The conditional UPDATE is the whole guarantee; the follow-up read
        only decides which refusal to report to a losing caller.
        """
        now = now or utc_now()
        code = normalize_code(code)
        token = await self._repo.mark_used(db, code, purchase_ref, now, buyer_id, item_id)
        if token is not None:
            logger.info("Token redeemed: code=%s purchase_ref=%s", code, purchase_ref)
            event = TokenRedeemed(
                token_id=token.id, code=code, purchase_ref=purchase_ref, occurred_at=now
            )
            return Outcome.success(token, events=(event,))

        current = await self._repo.get_by_code(db, code)
        if current is None or not current.is_active:
            return Outcome.failure(TokenNotFoundError())
        if buyer_id is not None and current.buyer_id != buyer_id:
            return Outcome.failure(TokenNotFoundError())
        if item_id is not None and current.item_id != item_id:
            return Outcome.failure(TokenNotFoundError())
        if current.is_used:
            logger.info("Redemption race lost: code=%s", code)
            return Outcome.failure(TokenAlreadyUsedError())
        if now > current.expires_at:
            return Outcome.failure(TokenExpiredError())

        logger.warning("Redemption guard failed on a valid-looking token: code=%s", code)
        return Outcome.failure(TokenAlreadyUsedError())

"""SettlementApplicationService — validate / redeem / list for the purchase flow.

validate and list are read-only. redeem commits on success and rolls back on
any refusal so a half-applied statement never lingers on the session.
"""

from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_common.datetime_utils import utc_now
from src.ng_common.outcome import Outcome
from src.ng_settlement.application.schemas import (
    RedeemTokenResponse,
    SettlementTokenOut,
    TokenListResponse,
    ValidateTokenResponse,
)
from src.ng_settlement.application.validator import SettlementTokenValidator
from src.ng_settlement.domain.repository import SettlementTokenRepositoryProtocol
from src.ng_settlement.infrastructure.persistence import SettlementTokenRepository


class SettlementApplicationService:
    def __init__(
        self,
        repo: SettlementTokenRepositoryProtocol | None = None,
        validator: SettlementTokenValidator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo: SettlementTokenRepositoryProtocol = repo or SettlementTokenRepository()
        self._validator = validator or SettlementTokenValidator(self._repo)
        self._clock = clock or utc_now

    async def validate_token(
        self, db: AsyncSession, code: str, buyer_id: str, item_id: str
    ) -> ValidateTokenResponse:
        now = self._clock()
        result = await self._validator.validate(db, code, buyer_id, item_id, now)
        if not result.valid or result.token is None:
            return ValidateTokenResponse(valid=False, reason=result.reason)
        return ValidateTokenResponse(
            valid=True, token=SettlementTokenOut.from_domain(result.token, now)
        )

    async def redeem_token(
        self,
        db: AsyncSession,
        code: str,
        purchase_ref: str,
        buyer_id: str | None = None,
        item_id: str | None = None,
    ) -> Outcome[RedeemTokenResponse]:
        try:
            outcome = await self._validator.redeem(
                db, code, purchase_ref, self._clock(), buyer_id=buyer_id, item_id=item_id
            )
            if outcome.ok:
                await db.commit()
            else:
                await db.rollback()
        except Exception:
            await db.rollback()
            raise
        if not outcome.ok or outcome.value is None:
            return Outcome.failure(outcome.error)  # type: ignore[arg-type]
        return Outcome.success(
            RedeemTokenResponse.from_domain(outcome.value), events=outcome.events
        )

    async def list_my_tokens(self, db: AsyncSession, buyer_id: str) -> TokenListResponse:
        now = self._clock()
        tokens = await self._repo.list_for_buyer(db, buyer_id)
        return TokenListResponse(items=[SettlementTokenOut.from_domain(t, now) for t in tokens])

"""SettlementTokenIssuer — mints the discount code for an accepted negotiation.

Runs inside the caller's transaction (the accept flow), so the status
transition and the token insert commit or roll back together.

Idempotent: a negotiation that already holds an active token gets that token
back. The partial unique index on settlement_tokens(negotiation_id) is the
final guard when two issuers race.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.ng_common.datetime_utils import utc_now
from src.ng_common.enums import NegotiationStatus
from src.ng_common.errors import SessionTerminalError, TokenGenerationError
from src.ng_common.outcome import Outcome
from src.ng_negotiation.domain.models import NegotiationSession
from src.ng_settlement.domain.codes import generate_code
from src.ng_settlement.domain.issuance import build_token
from src.ng_settlement.domain.models import SettlementToken
from src.ng_settlement.domain.repository import SettlementTokenRepositoryProtocol
from src.ng_settlement.infrastructure.persistence import SettlementTokenRepository

logger = logging.getLogger(__name__)

_ISSUABLE_STATUSES = (NegotiationStatus.ACCEPTED.value, NegotiationStatus.COMPLETED.value)


def _default_code_factory() -> str:
    return generate_code(settings.TOKEN_CODE_PREFIX, settings.TOKEN_CODE_LENGTH)


class SettlementTokenIssuer:
    def __init__(
        self,
        repo: SettlementTokenRepositoryProtocol | None = None,
        code_factory: Callable[[], str] | None = None,
        ttl: timedelta | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._repo: SettlementTokenRepositoryProtocol = repo or SettlementTokenRepository()
        self._code_factory = code_factory or _default_code_factory
        self._ttl = ttl or timedelta(hours=settings.TOKEN_TTL_HOURS)
        self._max_attempts = max_attempts or settings.TOKEN_MAX_GENERATION_ATTEMPTS

    async def issue_for_acceptance(
        self,
        db: AsyncSession,
        session: NegotiationSession,
        now: datetime | None = None,
    ) -> Outcome[SettlementToken]:
        if session.status not in _ISSUABLE_STATUSES or session.final_price is None:
            return Outcome.failure(SessionTerminalError(session.status))

        existing = await self._repo.get_active_for_negotiation(db, session.id)
        if existing is not None:
            logger.info("Token reuse: negotiation=%s code=%s", session.id, existing.code)
            return Outcome.success(existing, already_processed=True)

        now = now or utc_now()
        for attempt in range(1, self._max_attempts + 1):
            code = self._code_factory()
            if await self._repo.code_exists(db, code):
                logger.info("Discount code collision on attempt %d, regenerating", attempt)
                continue

            token, event = build_token(session, code, now, self._ttl)
            if await self._repo.insert(db, token):
                logger.info(
                    "Token issued: negotiation=%s code=%s expires_at=%s",
                    session.id,
                    token.code,
                    token.expires_at.isoformat(),
                )
                return Outcome.success(token, events=(event,))

            # Lost a race: either another issuer bound this negotiation,
            # or someone inserted the same code since our existence check.
            existing = await self._repo.get_active_for_negotiation(db, session.id)
            if existing is not None:
                logger.info("Token race lost: negotiation=%s", session.id)
                return Outcome.success(existing, already_processed=True)

        logger.error("Token generation exhausted: negotiation=%s", session.id)
        return Outcome.failure(TokenGenerationError(self._max_attempts))

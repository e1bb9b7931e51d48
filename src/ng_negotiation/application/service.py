"""NegotiationApplicationService — loads a session, runs a pure command, persists the Transition.

Transaction ownership: every mutating method commits on success and rolls
back on refusal or fault. The accept flow writes the status transition and
the settlement token in ONE transaction, so a failed issuance leaves the
session active.

Concurrency: saves are version-guarded (see NegotiationRepository). A lost
guard on accept is resolved by re-reading: if the session is now accepted,
the caller gets the already-issued token with `already_processed=True`.
"""

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_common.datetime_utils import utc_now
from src.ng_common.enums import MessageType, NegotiationStatus
from src.ng_common.errors import (
    AlreadyReportedError,
    AppError,
    ConcurrentModificationError,
    DuplicateActiveSessionError,
    NegotiationNotFoundError,
    NotAuthorizedError,
    RateLimitExceededError,
)
from src.ng_common.ids import new_negotiation_id
from src.ng_common.outcome import Outcome
from src.ng_moderation.content_filter.pipeline import ContentFilter, get_content_filter
from src.ng_moderation.rules.rate_limit import RateLimiter
from src.ng_negotiation.application.schemas import (
    AcceptOfferResponse,
    MessageOut,
    NegotiationDetail,
    NegotiationListResponse,
    NegotiationSummary,
    ReportResponse,
    TemplateOut,
    cursor_decode,
    cursor_encode,
)
from src.ng_negotiation.domain import commands
from src.ng_negotiation.domain.models import Message, NegotiationSession
from src.ng_negotiation.domain.policy import NegotiationPolicy
from src.ng_negotiation.domain.repository import NegotiationRepositoryProtocol
from src.ng_negotiation.domain.templates import MESSAGE_TEMPLATES
from src.ng_negotiation.infrastructure.persistence import NegotiationRepository
from src.ng_settlement.application.issuer import SettlementTokenIssuer
from src.ng_settlement.application.schemas import SettlementTokenOut

logger = logging.getLogger(__name__)


class NegotiationApplicationService:
    def __init__(
        self,
        repo: NegotiationRepositoryProtocol | None = None,
        issuer: SettlementTokenIssuer | None = None,
        content_filter: ContentFilter | None = None,
        rate_limiter: RateLimiter | None = None,
        policy: NegotiationPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo: NegotiationRepositoryProtocol = repo or NegotiationRepository()
        self._issuer = issuer or SettlementTokenIssuer()
        self._filter = content_filter or get_content_filter()
        self._rate_limiter = rate_limiter or RateLimiter()
        self._policy = policy or NegotiationPolicy.from_settings()
        self._clock = clock or utc_now

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_for(
        self, db: AsyncSession, negotiation_id: str, actor_id: str
    ) -> tuple[NegotiationSession | None, AppError | None]:
        session = await self._repo.get_by_id(db, negotiation_id)
        if session is None:
            return None, NegotiationNotFoundError(negotiation_id)
        if not session.is_participant(actor_id):
            return None, NotAuthorizedError()
        return session, None

    async def _refuse(self, db: AsyncSession, error: AppError) -> Outcome:
        await db.rollback()
        return Outcome.failure(error)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def open_negotiation(
        self,
        db: AsyncSession,
        buyer_id: str,
        item_id: str,
        seller_id: str,
        original_price: int,
        message: str | None = None,
        template_id: str | None = None,
    ) -> Outcome[NegotiationDetail]:
        now = self._clock()
        try:
            existing = await self._repo.find_active(db, item_id, buyer_id)
            if existing is not None:
                if not existing.is_expired(now):
                    return await self._refuse(db, DuplicateActiveSessionError(item_id))
                # Free the (item, buyer) slot held by a lazily expired session.
                expired = commands.expire(existing, now=now)
                if expired.ok and expired.value is not None:
                    await self._repo.save(
                        db,
                        expired.value.session,
                        [],
                        require_status=NegotiationStatus.ACTIVE.value,
                    )
                    logger.info("Negotiation expired on reopen: %s", existing.id)

            opened = commands.open_session(
                negotiation_id=new_negotiation_id(),
                item_id=item_id,
                buyer_id=buyer_id,
                seller_id=seller_id,
                original_price=original_price,
                now=now,
                policy=self._policy,
            )
            if not opened.ok or opened.value is None:
                return await self._refuse(db, opened.error)  # type: ignore[arg-type]
            session = opened.value.session
            events = list(opened.events)
            messages: list[Message] = []

            if message is not None or template_id is not None:
                posted = commands.post_message(
                    session,
                    sender_id=buyer_id,
                    message_type=MessageType.TEMPLATE.value,
                    content=message,
                    template_id=template_id,
                    now=now,
                    policy=self._policy,
                    content_filter=self._filter,
                    rate_limiter=self._rate_limiter,
                )
                if not posted.ok or posted.value is None:
                    return await self._refuse(db, posted.error)  # type: ignore[arg-type]
                session = posted.value.session
                messages.append(posted.value.message)
                events.extend(posted.events)

            if not await self._repo.insert(db, session, messages):
                return await self._refuse(db, DuplicateActiveSessionError(item_id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Negotiation opened: id=%s item=%s buyer=%s floor=%d",
            session.id,
            item_id,
            buyer_id,
            session.minimum_price,
        )
        return Outcome.success(NegotiationDetail.from_domain(session, now), events=tuple(events))

    async def post_message(
        self,
        db: AsyncSession,
        negotiation_id: str,
        sender_id: str,
        message_type: str,
        content: str | None = None,
        template_id: str | None = None,
        price_offer: int | None = None,
    ) -> Outcome[MessageOut]:
        now = self._clock()
        try:
            session, error = await self._load_for(db, negotiation_id, sender_id)
            if error is not None or session is None:
                return await self._refuse(db, error)  # type: ignore[arg-type]

            posted = commands.post_message(
                session,
                sender_id=sender_id,
                message_type=message_type,
                content=content,
                template_id=template_id,
                price_offer=price_offer,
                now=now,
                policy=self._policy,
                content_filter=self._filter,
                rate_limiter=self._rate_limiter,
            )
            if not posted.ok or posted.value is None or posted.value.message is None:
                if isinstance(posted.error, RateLimitExceededError):
                    logger.info(
                        "Rate limit hit: negotiation=%s user=%s", negotiation_id, sender_id
                    )
                return await self._refuse(db, posted.error)  # type: ignore[arg-type]

            saved = await self._repo.save(db, posted.value.session, [posted.value.message])
            if saved is None:
                return await self._refuse(db, ConcurrentModificationError(negotiation_id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        message = posted.value.message
        if message.is_filtered:
            logger.info("Message redacted: negotiation=%s message=%s", negotiation_id, message.id)
        if message.price_offer is not None:
            logger.info(
                "Offer posted: negotiation=%s sender=%s price=%d",
                negotiation_id,
                sender_id,
                message.price_offer,
            )
        return Outcome.success(MessageOut.from_domain(message), events=posted.events)

    async def accept_offer(
        self, db: AsyncSession, negotiation_id: str, actor_id: str
    ) -> Outcome[AcceptOfferResponse]:
        now = self._clock()
        try:
            session, error = await self._load_for(db, negotiation_id, actor_id)
            if error is not None or session is None:
                return await self._refuse(db, error)  # type: ignore[arg-type]

            if session.status in (
                NegotiationStatus.ACCEPTED.value,
                NegotiationStatus.COMPLETED.value,
            ) and actor_id == session.seller_id:
                return await self._replay_acceptance(db, session, now)

            accepted = commands.accept(session, actor_id=actor_id, now=now)
            if not accepted.ok or accepted.value is None:
                return await self._refuse(db, accepted.error)  # type: ignore[arg-type]
            transition = accepted.value

            new_version = await self._repo.save(
                db,
                transition.session,
                [transition.message] if transition.message else [],
                require_status=NegotiationStatus.ACTIVE.value,
            )
            if new_version is None:
                await db.rollback()
                logger.info("Acceptance race lost: negotiation=%s", negotiation_id)
                current = await self._repo.get_by_id(db, negotiation_id)
                if current is not None and current.status == NegotiationStatus.ACCEPTED.value:
                    return await self._replay_acceptance(db, current, now)
                return Outcome.failure(ConcurrentModificationError(negotiation_id))

            session = replace(transition.session, version=new_version)
            issued = await self._issuer.issue_for_acceptance(db, session, now)
            if not issued.ok or issued.value is None:
                return await self._refuse(db, issued.error)  # type: ignore[arg-type]
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Offer accepted: negotiation=%s final_price=%d",
            negotiation_id,
            session.final_price,
        )
        response = AcceptOfferResponse(
            negotiation=NegotiationDetail.from_domain(session, now),
            token=SettlementTokenOut.from_domain(issued.value, now),
            already_processed=issued.already_processed,
        )
        return Outcome.success(
            response,
            events=accepted.events + issued.events,
            already_processed=issued.already_processed,
        )

    async def _replay_acceptance(
        self, db: AsyncSession, session: NegotiationSession, now: datetime
    ) -> Outcome[AcceptOfferResponse]:
        """Someone already accepted: hand back the bound token instead of minting another."""
        issued = await self._issuer.issue_for_acceptance(db, session, now)
        if not issued.ok or issued.value is None:
            return await self._refuse(db, issued.error)  # type: ignore[arg-type]
        if issued.already_processed:
            await db.rollback()
        else:
            # Accepted without a token (should not happen); the replay repairs it.
            await db.commit()
            logger.warning("Token re-issued for accepted negotiation %s", session.id)
        response = AcceptOfferResponse(
            negotiation=NegotiationDetail.from_domain(session, now),
            token=SettlementTokenOut.from_domain(issued.value, now),
            already_processed=True,
        )
        return Outcome.success(response, already_processed=True)

    async def reject_offer(
        self,
        db: AsyncSession,
        negotiation_id: str,
        actor_id: str,
        reason: str | None = None,
    ) -> Outcome[NegotiationDetail]:
        now = self._clock()
        try:
            session, error = await self._load_for(db, negotiation_id, actor_id)
            if error is not None or session is None:
                return await self._refuse(db, error)  # type: ignore[arg-type]

            rejected = commands.reject(
                session,
                actor_id=actor_id,
                reason=reason,
                now=now,
                policy=self._policy,
                content_filter=self._filter,
            )
            if not rejected.ok or rejected.value is None:
                return await self._refuse(db, rejected.error)  # type: ignore[arg-type]
            transition = rejected.value

            new_version = await self._repo.save(
                db,
                transition.session,
                [transition.message] if transition.message else [],
                require_status=NegotiationStatus.ACTIVE.value,
            )
            if new_version is None:
                return await self._refuse(db, ConcurrentModificationError(negotiation_id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Negotiation rejected: id=%s by=%s", negotiation_id, actor_id)
        session = replace(transition.session, version=new_version)
        return Outcome.success(NegotiationDetail.from_domain(session, now), events=rejected.events)

    async def report_negotiation(
        self, db: AsyncSession, negotiation_id: str, user_id: str, reason: str
    ) -> Outcome[ReportResponse]:
        now = self._clock()
        try:
            session, error = await self._load_for(db, negotiation_id, user_id)
            if error is not None or session is None:
                return await self._refuse(db, error)  # type: ignore[arg-type]

            reported = commands.report(
                session, user_id=user_id, reason=reason, now=now, policy=self._policy
            )
            if not reported.ok or reported.value is None or reported.value.report is None:
                return await self._refuse(db, reported.error)  # type: ignore[arg-type]

            if not await self._repo.add_report(db, negotiation_id, reported.value.report):
                return await self._refuse(db, AlreadyReportedError())
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.warning("Negotiation reported: id=%s by=%s", negotiation_id, user_id)
        return Outcome.success(
            ReportResponse(negotiation_id=negotiation_id), events=reported.events
        )

    async def complete_negotiation(
        self, db: AsyncSession, negotiation_id: str
    ) -> Outcome[NegotiationSummary]:
        """accepted -> completed. Called by the purchase flow, not by participants."""
        now = self._clock()
        try:
            session = await self._repo.get_by_id(db, negotiation_id)
            if session is None:
                return await self._refuse(db, NegotiationNotFoundError(negotiation_id))

            completed = commands.complete(session, now=now)
            if not completed.ok or completed.value is None:
                return await self._refuse(db, completed.error)  # type: ignore[arg-type]

            new_version = await self._repo.save(
                db,
                completed.value.session,
                [],
                require_status=NegotiationStatus.ACCEPTED.value,
            )
            if new_version is None:
                return await self._refuse(db, ConcurrentModificationError(negotiation_id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Negotiation completed: id=%s", negotiation_id)
        session = replace(completed.value.session, version=new_version)
        return Outcome.success(
            NegotiationSummary.from_domain(session, now), events=completed.events
        )

    # ------------------------------------------------------------------
    # Queries (read-only, no commit)
    # ------------------------------------------------------------------

    async def get_negotiation(
        self, db: AsyncSession, negotiation_id: str, actor_id: str
    ) -> Outcome[NegotiationDetail]:
        session, error = await self._load_for(db, negotiation_id, actor_id)
        if error is not None or session is None:
            return Outcome.failure(error)  # type: ignore[arg-type]
        return Outcome.success(NegotiationDetail.from_domain(session, self._clock()))

    async def list_negotiations(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        cursor: str | None,
        limit: int,
    ) -> NegotiationListResponse:
        now = self._clock()
        cursor_ts, cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without COUNT(*)
        sessions = await self._repo.list_for_user(
            db, user_id, status, cursor_ts, cursor_id, limit + 1, now
        )
        has_more = len(sessions) > limit
        page = sessions[:limit]

        items = [NegotiationSummary.from_domain(s, now) for s in page]
        next_cursor = cursor_encode(page[-1]) if has_more and page else None
        return NegotiationListResponse(items=items, next_cursor=next_cursor, has_more=has_more)

    def list_templates(self) -> list[TemplateOut]:
        return [TemplateOut(id=key, text=text) for key, text in MESSAGE_TEMPLATES.items()]

"""NegotiationRepository — concrete implementation of NegotiationRepositoryProtocol.

All queries use raw text() SQL (no ORM).
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.

Concurrency: every session write is `UPDATE ... WHERE version = :version`,
so two requests that loaded the same state cannot both commit. Accept adds
`AND status = 'active'` so only one caller wins the transition.

Transaction ownership: the CALLER (application service) commits or rolls back.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_negotiation.domain.models import Message, NegotiationSession, Report

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_SESSION_COLUMNS = """
    id, item_id, buyer_id, seller_id, status,
    original_price, minimum_price, current_offer, final_price,
    is_blocked, blocked_reason,
    buyer_message_count, seller_message_count, offer_count,
    last_buyer_message, last_seller_message,
    last_activity, expires_at, created_at, version
"""

_GET_SESSION_SQL = text(f"""
    SELECT {_SESSION_COLUMNS}
    FROM negotiations
    WHERE id = :id
""")

_FIND_ACTIVE_SQL = text(f"""
    SELECT {_SESSION_COLUMNS}
    FROM negotiations
    WHERE item_id = :item_id AND buyer_id = :buyer_id AND status = 'active'
""")

_GET_MESSAGES_SQL = text("""
    SELECT id, seq, type, content, template_id, price_offer, sender_id,
           is_filtered, filtered_reason, created_at
    FROM negotiation_messages
    WHERE negotiation_id = :negotiation_id
    ORDER BY seq
""")

_GET_REPORTS_SQL = text("""
    SELECT user_id, reason, created_at
    FROM negotiation_reports
    WHERE negotiation_id = :negotiation_id
    ORDER BY created_at
""")

# Partial unique index uq_negotiations_active_item_buyer enforces one active
# session per (item, buyer); losing the race inserts nothing.
_INSERT_SESSION_SQL = text("""
    INSERT INTO negotiations (
        id, item_id, buyer_id, seller_id, status,
        original_price, minimum_price, current_offer, final_price,
        buyer_message_count, seller_message_count, offer_count,
        last_buyer_message, last_seller_message,
        last_activity, expires_at, created_at, version)
    VALUES (
        :id, :item_id, :buyer_id, :seller_id, :status,
        :original_price, :minimum_price, :current_offer, :final_price,
        :buyer_message_count, :seller_message_count, :offer_count,
        :last_buyer_message, :last_seller_message,
        :last_activity, :expires_at, :created_at, 0)
    ON CONFLICT (item_id, buyer_id) WHERE status = 'active' DO NOTHING
    RETURNING id
""")

_SAVE_SESSION_SQL = text("""
    UPDATE negotiations
    SET status = :status,
        original_price = :original_price,
        minimum_price = :minimum_price,
        current_offer = :current_offer,
        final_price = :final_price,
        buyer_message_count = :buyer_message_count,
        seller_message_count = :seller_message_count,
        offer_count = :offer_count,
        last_buyer_message = :last_buyer_message,
        last_seller_message = :last_seller_message,
        last_activity = :last_activity,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :id
      AND version = :version
      AND (CAST(:require_status AS TEXT) IS NULL OR status = CAST(:require_status AS TEXT))
    RETURNING version
""")

_INSERT_MESSAGE_SQL = text("""
    INSERT INTO negotiation_messages (
        id, negotiation_id, seq, type, content, template_id, price_offer,
        sender_id, is_filtered, filtered_reason, created_at)
    VALUES (
        :id, :negotiation_id, :seq, :type, :content, :template_id, :price_offer,
        :sender_id, :is_filtered, :filtered_reason, :created_at)
""")

_INSERT_REPORT_SQL = text("""
    INSERT INTO negotiation_reports (negotiation_id, user_id, reason, created_at)
    VALUES (:negotiation_id, :user_id, :reason, :created_at)
    ON CONFLICT (negotiation_id, user_id) DO NOTHING
    RETURNING id
""")

# The status filter matches the lazily derived status: an active row past
# expires_at is listed under "expired", not "active".
_LIST_FOR_USER_SQL = text(f"""
    SELECT {_SESSION_COLUMNS}
    FROM negotiations
    WHERE (buyer_id = :user_id OR seller_id = :user_id)
      AND (
          CAST(:status AS TEXT) IS NULL
          OR (
              CAST(:status AS TEXT) = 'active'
              AND status = 'active' AND expires_at >= :now
          )
          OR (
              CAST(:status AS TEXT) = 'expired'
              AND (status = 'expired' OR (status = 'active' AND expires_at < :now))
          )
          OR (
              CAST(:status AS TEXT) NOT IN ('active', 'expired')
              AND status = CAST(:status AS TEXT)
          )
      )
      AND (
          CAST(:cursor_ts AS TIMESTAMPTZ) IS NULL
          OR last_activity < CAST(:cursor_ts AS TIMESTAMPTZ)
          OR (
              last_activity = CAST(:cursor_ts AS TIMESTAMPTZ)
              AND id < CAST(:cursor_id AS TEXT)
          )
      )
    ORDER BY last_activity DESC, id DESC
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_message(row: Any) -> Message:
    return Message(
        id=row.id,
        seq=row.seq,
        type=row.type,
        content=row.content,
        sender_id=row.sender_id,
        timestamp=row.created_at,
        template_id=row.template_id,
        price_offer=row.price_offer,
        is_filtered=row.is_filtered,
        filtered_reason=row.filtered_reason,
    )


def _row_to_report(row: Any) -> Report:
    return Report(user_id=row.user_id, reason=row.reason, timestamp=row.created_at)


def _row_to_session(
    row: Any,
    messages: tuple[Message, ...] = (),
    reports: tuple[Report, ...] = (),
) -> NegotiationSession:
    return NegotiationSession(
        id=row.id,
        item_id=row.item_id,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        status=row.status,
        original_price=row.original_price,
        minimum_price=row.minimum_price,
        current_offer=row.current_offer,
        final_price=row.final_price,
        messages=messages,
        reports=reports,
        is_blocked=row.is_blocked,
        blocked_reason=row.blocked_reason,
        buyer_message_count=row.buyer_message_count,
        seller_message_count=row.seller_message_count,
        offer_count=row.offer_count,
        last_buyer_message=row.last_buyer_message,
        last_seller_message=row.last_seller_message,
        last_activity=row.last_activity,
        expires_at=row.expires_at,
        created_at=row.created_at,
        version=row.version,
    )


def _session_params(session: NegotiationSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "item_id": session.item_id,
        "buyer_id": session.buyer_id,
        "seller_id": session.seller_id,
        "status": session.status,
        "original_price": session.original_price,
        "minimum_price": session.minimum_price,
        "current_offer": session.current_offer,
        "final_price": session.final_price,
        "buyer_message_count": session.buyer_message_count,
        "seller_message_count": session.seller_message_count,
        "offer_count": session.offer_count,
        "last_buyer_message": session.last_buyer_message,
        "last_seller_message": session.last_seller_message,
        "last_activity": session.last_activity,
        "expires_at": session.expires_at,
        "created_at": session.created_at,
    }


def _message_params(negotiation_id: str, message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "negotiation_id": negotiation_id,
        "seq": message.seq,
        "type": message.type,
        "content": message.content,
        "template_id": message.template_id,
        "price_offer": message.price_offer,
        "sender_id": message.sender_id,
        "is_filtered": message.is_filtered,
        "filtered_reason": message.filtered_reason,
        "created_at": message.timestamp,
    }


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class NegotiationRepository:
    async def _load(self, db: AsyncSession, row: Any) -> NegotiationSession:
        msg_result = await db.execute(_GET_MESSAGES_SQL, {"negotiation_id": row.id})
        messages = tuple(_row_to_message(r) for r in msg_result.fetchall())
        rep_result = await db.execute(_GET_REPORTS_SQL, {"negotiation_id": row.id})
        reports = tuple(_row_to_report(r) for r in rep_result.fetchall())
        return _row_to_session(row, messages, reports)

    async def get_by_id(
        self, db: AsyncSession, negotiation_id: str
    ) -> NegotiationSession | None:
        result = await db.execute(_GET_SESSION_SQL, {"id": negotiation_id})
        row = result.fetchone()
        return await self._load(db, row) if row else None

    async def find_active(
        self, db: AsyncSession, item_id: str, buyer_id: str
    ) -> NegotiationSession | None:
        result = await db.execute(
            _FIND_ACTIVE_SQL, {"item_id": item_id, "buyer_id": buyer_id}
        )
        row = result.fetchone()
        return await self._load(db, row) if row else None

    async def _insert_messages(
        self, db: AsyncSession, negotiation_id: str, messages: list[Message]
    ) -> None:
        for message in messages:
            await db.execute(_INSERT_MESSAGE_SQL, _message_params(negotiation_id, message))

    async def insert(
        self, db: AsyncSession, session: NegotiationSession, messages: list[Message]
    ) -> bool:
        result = await db.execute(_INSERT_SESSION_SQL, _session_params(session))
        if result.fetchone() is None:
            return False
        await self._insert_messages(db, session.id, messages)
        return True

    async def save(
        self,
        db: AsyncSession,
        session: NegotiationSession,
        new_messages: list[Message],
        require_status: str | None = None,
    ) -> int | None:
        params = _session_params(session)
        params["version"] = session.version
        params["require_status"] = require_status
        result = await db.execute(_SAVE_SESSION_SQL, params)
        row = result.fetchone()
        if row is None:
            return None
        await self._insert_messages(db, session.id, new_messages)
        return row.version

    async def add_report(
        self, db: AsyncSession, negotiation_id: str, report: Report
    ) -> bool:
        result = await db.execute(
            _INSERT_REPORT_SQL,
            {
                "negotiation_id": negotiation_id,
                "user_id": report.user_id,
                "reason": report.reason,
                "created_at": report.timestamp,
            },
        )
        return result.fetchone() is not None

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
        now: datetime,
    ) -> list[NegotiationSession]:
        """Summaries only: messages and reports are not loaded."""
        result = await db.execute(
            _LIST_FOR_USER_SQL,
            {
                "user_id": user_id,
                "status": status,
                "cursor_ts": cursor_ts,
                "cursor_id": cursor_id,
                "limit": limit,
                "now": now,
            },
        )
        return [_row_to_session(row) for row in result.fetchall()]

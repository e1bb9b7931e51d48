"""SettlementTokenRepository — raw SQL persistence implementation.

Uniqueness and at-most-once semantics live in the database:
  - uq_settlement_tokens_code                 one row per code
  - uq_settlement_tokens_active_negotiation   one active token per negotiation
  - redemption is UPDATE ... WHERE is_used = FALSE ... RETURNING
A result of 0 rows means another caller got there first or a guard failed.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_settlement.domain.models import SettlementToken

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_COLUMNS = """
    id, code, negotiation_id, item_id, buyer_id, seller_id,
    original_price, discounted_price, discount_amount, discount_percentage,
    is_active, is_used, used_at, purchase_ref, expires_at, created_at
"""

_GET_BY_CODE_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM settlement_tokens WHERE code = :code
""")

_GET_ACTIVE_FOR_NEGOTIATION_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM settlement_tokens
    WHERE negotiation_id = :negotiation_id AND is_active
""")

_CODE_EXISTS_SQL = text("SELECT 1 FROM settlement_tokens WHERE code = :code")

_INSERT_TOKEN_SQL = text("""
    INSERT INTO settlement_tokens (
        id, code, negotiation_id, item_id, buyer_id, seller_id,
        original_price, discounted_price, discount_amount, discount_percentage,
        is_active, is_used, expires_at, created_at)
    VALUES (
        :id, :code, :negotiation_id, :item_id, :buyer_id, :seller_id,
        :original_price, :discounted_price, :discount_amount, :discount_percentage,
        TRUE, FALSE, :expires_at, :created_at)
    ON CONFLICT DO NOTHING
    RETURNING id
""")

_MARK_USED_SQL = text(f"""
    UPDATE settlement_tokens
    SET is_used = TRUE, used_at = :now, purchase_ref = :purchase_ref, updated_at = NOW()
    WHERE code = :code
      AND is_active
      AND NOT is_used
      AND expires_at >= :now
      AND (CAST(:buyer_id AS TEXT) IS NULL OR buyer_id = CAST(:buyer_id AS TEXT))
      AND (CAST(:item_id AS TEXT) IS NULL OR item_id = CAST(:item_id AS TEXT))
    RETURNING {_SELECT_COLUMNS}
""")

_LIST_FOR_BUYER_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM settlement_tokens
    WHERE buyer_id = :buyer_id
    ORDER BY created_at DESC
""")


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_token(row: Any) -> SettlementToken:
    return SettlementToken(
        id=row.id,
        code=row.code,
        negotiation_id=row.negotiation_id,
        item_id=row.item_id,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        original_price=row.original_price,
        discounted_price=row.discounted_price,
        discount_amount=row.discount_amount,
        discount_percentage=row.discount_percentage,
        is_active=row.is_active,
        is_used=row.is_used,
        used_at=row.used_at,
        purchase_ref=row.purchase_ref,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SettlementTokenRepository:
    """Concrete implementation of SettlementTokenRepositoryProtocol using raw SQL."""

    async def get_by_code(self, db: AsyncSession, code: str) -> SettlementToken | None:
        result = await db.execute(_GET_BY_CODE_SQL, {"code": code})
        row = result.fetchone()
        return _row_to_token(row) if row else None

    async def get_active_for_negotiation(
        self, db: AsyncSession, negotiation_id: str
    ) -> SettlementToken | None:
        result = await db.execute(
            _GET_ACTIVE_FOR_NEGOTIATION_SQL, {"negotiation_id": negotiation_id}
        )
        row = result.fetchone()
        return _row_to_token(row) if row else None

    async def code_exists(self, db: AsyncSession, code: str) -> bool:
        result = await db.execute(_CODE_EXISTS_SQL, {"code": code})
        return result.fetchone() is not None

    async def insert(self, db: AsyncSession, token: SettlementToken) -> bool:
        result = await db.execute(
            _INSERT_TOKEN_SQL,
            {
                "id": token.id,
                "code": token.code,
                "negotiation_id": token.negotiation_id,
                "item_id": token.item_id,
                "buyer_id": token.buyer_id,
                "seller_id": token.seller_id,
                "original_price": token.original_price,
                "discounted_price": token.discounted_price,
                "discount_amount": token.discount_amount,
                "discount_percentage": token.discount_percentage,
                "expires_at": token.expires_at,
                "created_at": token.created_at,
            },
        )
        return result.fetchone() is not None

    async def mark_used(
        self,
        db: AsyncSession,
        code: str,
        purchase_ref: str,
        now: datetime,
        buyer_id: str | None = None,
        item_id: str | None = None,
    ) -> SettlementToken | None:
        result = await db.execute(
            _MARK_USED_SQL,
            {
                "code": code,
                "purchase_ref": purchase_ref,
                "now": now,
                "buyer_id": buyer_id,
                "item_id": item_id,
            },
        )
        row = result.fetchone()
        return _row_to_token(row) if row else None

    async def list_for_buyer(
        self, db: AsyncSession, buyer_id: str
    ) -> list[SettlementToken]:
        result = await db.execute(_LIST_FOR_BUYER_SQL, {"buyer_id": buyer_id})
        return [_row_to_token(row) for row in result.fetchall()]

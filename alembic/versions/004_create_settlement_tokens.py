"""004: create settlement_tokens table

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE settlement_tokens (
            id                   VARCHAR(64)  PRIMARY KEY,
            code                 VARCHAR(32)  NOT NULL,
            negotiation_id       VARCHAR(64)  NOT NULL REFERENCES negotiations (id),
            item_id              VARCHAR(64)  NOT NULL,
            buyer_id             VARCHAR(64)  NOT NULL,
            seller_id            VARCHAR(64)  NOT NULL,
            original_price       BIGINT       NOT NULL,
            discounted_price     BIGINT       NOT NULL,
            discount_amount      BIGINT       NOT NULL,
            discount_percentage  SMALLINT     NOT NULL,
            is_active            BOOLEAN      NOT NULL DEFAULT TRUE,
            is_used              BOOLEAN      NOT NULL DEFAULT FALSE,
            used_at              TIMESTAMPTZ  DEFAULT NULL,
            purchase_ref         VARCHAR(128) DEFAULT NULL,
            expires_at           TIMESTAMPTZ  NOT NULL,
            created_at           TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_settlement_tokens_code UNIQUE (code),
            CONSTRAINT ck_settlement_tokens_amounts CHECK (
                discount_amount = original_price - discounted_price
                AND discounted_price > 0
            ),
            CONSTRAINT ck_settlement_tokens_pct CHECK (discount_percentage BETWEEN 0 AND 100),
            CONSTRAINT ck_settlement_tokens_used CHECK (is_used = (used_at IS NOT NULL))
        );
    """)
    # At most one active token per negotiation; tokens are never deleted.
    op.execute("""
        CREATE UNIQUE INDEX uq_settlement_tokens_active_negotiation
            ON settlement_tokens (negotiation_id)
            WHERE is_active;
    """)
    op.execute("CREATE INDEX idx_settlement_tokens_buyer ON settlement_tokens (buyer_id, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_settlement_tokens_updated_at
            BEFORE UPDATE ON settlement_tokens
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE settlement_tokens IS 'Single-use discount codes minted on negotiation acceptance';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS settlement_tokens CASCADE;")

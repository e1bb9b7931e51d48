"""001: create negotiations table

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE negotiations (
            id                    VARCHAR(64)  PRIMARY KEY,
            item_id               VARCHAR(64)  NOT NULL,
            buyer_id              VARCHAR(64)  NOT NULL,
            seller_id             VARCHAR(64)  NOT NULL,
            status                VARCHAR(16)  NOT NULL DEFAULT 'active',
            original_price        BIGINT       NOT NULL,
            minimum_price         BIGINT       NOT NULL,
            current_offer         BIGINT       DEFAULT NULL,
            final_price           BIGINT       DEFAULT NULL,
            is_blocked            BOOLEAN      NOT NULL DEFAULT FALSE,
            blocked_reason        TEXT         DEFAULT NULL,
            buyer_message_count   INT          NOT NULL DEFAULT 0,
            seller_message_count  INT          NOT NULL DEFAULT 0,
            offer_count           INT          NOT NULL DEFAULT 0,
            last_buyer_message    TIMESTAMPTZ  DEFAULT NULL,
            last_seller_message   TIMESTAMPTZ  DEFAULT NULL,
            last_activity         TIMESTAMPTZ  NOT NULL,
            expires_at            TIMESTAMPTZ  NOT NULL,
            version               BIGINT       NOT NULL DEFAULT 0,
            created_at            TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            updated_at            TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_negotiations_status CHECK (
                status IN ('active', 'accepted', 'rejected', 'expired', 'completed')
            ),
            CONSTRAINT ck_negotiations_original_price_gt_0 CHECK (original_price > 0),
            CONSTRAINT ck_negotiations_minimum_price CHECK (
                minimum_price >= 0 AND minimum_price <= original_price
            ),
            CONSTRAINT ck_negotiations_final_price CHECK (
                (status IN ('accepted', 'completed')) = (final_price IS NOT NULL)
            ),
            CONSTRAINT ck_negotiations_diff_users CHECK (buyer_id != seller_id)
        );
    """)
    # At most one active session per (item, buyer); terminal rows are history.
    op.execute("""
        CREATE UNIQUE INDEX uq_negotiations_active_item_buyer
            ON negotiations (item_id, buyer_id)
            WHERE status = 'active';
    """)
    op.execute("CREATE INDEX idx_negotiations_buyer ON negotiations (buyer_id, last_activity DESC);")
    op.execute("CREATE INDEX idx_negotiations_seller ON negotiations (seller_id, last_activity DESC);")
    op.execute("CREATE INDEX idx_negotiations_status_expiry ON negotiations (status, expires_at);")
    op.execute("""
        CREATE TRIGGER trg_negotiations_updated_at
            BEFORE UPDATE ON negotiations
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE negotiations IS 'Buyer/seller price negotiation sessions';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS negotiations CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")

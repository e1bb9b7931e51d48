"""002: create negotiation_messages table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE negotiation_messages (
            id               VARCHAR(64)  PRIMARY KEY,
            negotiation_id   VARCHAR(64)  NOT NULL REFERENCES negotiations (id),
            seq              INT          NOT NULL,
            type             VARCHAR(20)  NOT NULL,
            content          TEXT         NOT NULL,
            template_id      VARCHAR(32)  DEFAULT NULL,
            price_offer      BIGINT       DEFAULT NULL,
            sender_id        VARCHAR(64)  NOT NULL,
            is_filtered      BOOLEAN      NOT NULL DEFAULT FALSE,
            filtered_reason  TEXT         DEFAULT NULL,
            created_at       TIMESTAMPTZ  NOT NULL,
            CONSTRAINT uq_negotiation_messages_seq UNIQUE (negotiation_id, seq),
            CONSTRAINT ck_negotiation_messages_type CHECK (
                type IN ('template', 'price_offer', 'counter_offer',
                         'acceptance', 'rejection', 'system')
            ),
            CONSTRAINT ck_negotiation_messages_price CHECK (
                price_offer IS NULL OR price_offer > 0
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_negotiation_messages_sender_time
            ON negotiation_messages (negotiation_id, sender_id, created_at DESC);
    """)
    op.execute("COMMENT ON TABLE negotiation_messages IS 'Append-only negotiation log, content stored post-filter';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS negotiation_messages CASCADE;")

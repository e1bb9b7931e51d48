"""003: create negotiation_reports table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE negotiation_reports (
            id               BIGSERIAL    PRIMARY KEY,
            negotiation_id   VARCHAR(64)  NOT NULL REFERENCES negotiations (id),
            user_id          VARCHAR(64)  NOT NULL,
            reason           TEXT         NOT NULL,
            created_at       TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_negotiation_reports_user UNIQUE (negotiation_id, user_id)
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS negotiation_reports CASCADE;")

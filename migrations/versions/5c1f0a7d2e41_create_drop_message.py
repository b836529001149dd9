"""create drop_message

Revision ID: 5c1f0a7d2e41
Revises:
Create Date: 2026-10-18 09:12:44.301552

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1f0a7d2e41"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the anonymous drop message table."""
    op.create_table(
        "drop_message",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("drop_token_hash", sa.String(length=43), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_drop_message_token_created",
        "drop_message",
        ["drop_token_hash", "created_at"],
    )
    op.create_index("ix_drop_message_expires_at", "drop_message", ["expires_at"])


def downgrade() -> None:
    """Drop the anonymous drop message table."""
    op.drop_index("ix_drop_message_expires_at", table_name="drop_message")
    op.drop_index("ix_drop_message_token_created", table_name="drop_message")
    op.drop_table("drop_message")

"""Initial schema: likes, matches, conversations, messages, profiles

Revision ID: 20261019_001
Revises:
Create Date: 2026-10-19 10:00:00

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Directed like edges, one per ordered pair
    op.create_table(
        "likes",
        sa.Column("from_uid", sa.String(length=128), nullable=False),
        sa.Column("to_uid", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("from_uid", "to_uid"),
        sa.CheckConstraint("from_uid <> to_uid", name="chk_like_no_self"),
    )
    op.create_index("idx_likes_to_uid", "likes", ["to_uid"], unique=False)

    # Matches keyed by canonical pair; the unique pair_key is the create-if-absent guard
    op.create_table(
        "matches",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("pair_key", sa.String(length=257), nullable=False),
        sa.Column("uid_low", sa.String(length=128), nullable=False),
        sa.Column("uid_high", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pair_key"),
        sa.CheckConstraint("uid_low < uid_high", name="chk_match_ordered_pair"),
    )
    op.create_index(op.f("ix_matches_uid_low"), "matches", ["uid_low"], unique=False)
    op.create_index(op.f("ix_matches_uid_high"), "matches", ["uid_high"], unique=False)

    # One conversation per match, carrying the sequence counter
    op.create_table(
        "conversations",
        sa.Column("match_id", sa.BigInteger(), nullable=False),
        sa.Column("last_seq", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["match_id"], ["matches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("match_id"),
    )

    op.create_table(
        "messages",
        sa.Column("match_id", sa.BigInteger(), nullable=False),
        sa.Column("seq", sa.BigInteger(), nullable=False),
        sa.Column("sender_uid", sa.String(length=128), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["match_id"], ["conversations.match_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("match_id", "seq"),
    )
    op.create_index("idx_messages_match_read", "messages", ["match_id", "read"], unique=False)

    # Read-only mirror of the profile store
    op.create_table(
        "profiles",
        sa.Column("uid", sa.String(length=128), nullable=False),
        sa.Column("nickname", sa.String(length=64), nullable=False),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("gender", sa.String(length=16), nullable=True),
        sa.Column("bio", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("uid"),
    )


def downgrade() -> None:
    op.drop_table("profiles")
    op.drop_index("idx_messages_match_read", table_name="messages")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_index(op.f("ix_matches_uid_high"), table_name="matches")
    op.drop_index(op.f("ix_matches_uid_low"), table_name="matches")
    op.drop_table("matches")
    op.drop_index("idx_likes_to_uid", table_name="likes")
    op.drop_table("likes")

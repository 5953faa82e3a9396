"""Create entries and entry_tags tables.

Revision ID: 20261018_create_entries
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261018_create_entries"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "entries",
        sa.Column("entry_id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("partition_id", sa.String(length=64), nullable=True),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("ordinal", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "visibility",
            sa.String(length=20),
            nullable=False,
            server_default="private",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "owner_id",
            "entry_date",
            "ordinal",
            name="uq_entries_owner_date_ordinal",
        ),
        sa.CheckConstraint("ordinal >= 1", name="ck_entries_ordinal_positive"),
    )
    op.create_index(
        "ix_entries_owner_partition",
        "entries",
        ["owner_id", "partition_id"],
    )
    op.create_table(
        "entry_tags",
        sa.Column(
            "entry_id",
            sa.String(length=36),
            sa.ForeignKey("entries.entry_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("position", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("tag", sa.String(length=255), nullable=False),
    )
    op.create_index(
        "ix_entry_tags_owner_tag",
        "entry_tags",
        ["owner_id", "tag"],
    )


def downgrade() -> None:
    op.drop_index("ix_entry_tags_owner_tag", table_name="entry_tags")
    op.drop_table("entry_tags")
    op.drop_index("ix_entries_owner_partition", table_name="entries")
    op.drop_table("entries")

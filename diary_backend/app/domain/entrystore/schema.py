"""Table definitions for the entry store."""

from __future__ import annotations

from typing import NamedTuple

import sqlalchemy as sa

__all__ = ["EntryTables", "define_entry_tables", "ENTRY_ORDINAL_CONSTRAINT"]

ENTRY_ORDINAL_CONSTRAINT = "uq_entries_owner_date_ordinal"


class EntryTables(NamedTuple):
    entries: sa.Table
    tags: sa.Table


def define_entry_tables(metadata: sa.MetaData) -> EntryTables:
    """Register ``entries`` and ``entry_tags`` on ``metadata``."""

    entries = sa.Table(
        "entries",
        metadata,
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
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "owner_id", "entry_date", "ordinal", name=ENTRY_ORDINAL_CONSTRAINT
        ),
        sa.CheckConstraint("ordinal >= 1", name="ck_entries_ordinal_positive"),
        sa.Index("ix_entries_owner_partition", "owner_id", "partition_id"),
    )
    tags = sa.Table(
        "entry_tags",
        metadata,
        sa.Column(
            "entry_id",
            sa.String(length=36),
            sa.ForeignKey("entries.entry_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("position", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("tag", sa.String(length=255), nullable=False),
        sa.Index("ix_entry_tags_owner_tag", "owner_id", "tag"),
    )
    return EntryTables(entries=entries, tags=tags)

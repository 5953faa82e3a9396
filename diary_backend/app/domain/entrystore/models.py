"""Journal entry data models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence
from uuid import uuid4

__all__ = [
    "Entry",
    "Visibility",
    "utcnow",
    "today",
]


def utcnow() -> datetime:
    """Return timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def today() -> date:
    """Return the current UTC calendar date."""

    return utcnow().date()


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class Entry:
    """A stored journal entry.

    ``entry_date`` is the grouping key; ``ordinal`` is the entry's 1-based
    position among the owner's entries on that date.
    """

    entry_id: str
    owner_id: str
    entry_date: date
    ordinal: int
    content: str
    visibility: Visibility
    created_at: datetime
    updated_at: datetime
    tags: List[str] = field(default_factory=list)
    partition_id: Optional[str] = None

    @property
    def group(self) -> tuple[str, date]:
        return (self.owner_id, self.entry_date)

    @classmethod
    def new(
        cls,
        *,
        owner_id: str,
        entry_date: date,
        ordinal: int,
        content: str,
        tags: Sequence[str] = (),
        visibility: Visibility = Visibility.PRIVATE,
        partition_id: Optional[str] = None,
        entry_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> "Entry":
        """Factory that generates IDs/timestamps."""

        ts = timestamp or utcnow()
        return cls(
            entry_id=entry_id or str(uuid4()),
            owner_id=owner_id,
            entry_date=entry_date,
            ordinal=ordinal,
            content=content,
            visibility=visibility,
            created_at=ts,
            updated_at=ts,
            tags=list(tags),
            partition_id=partition_id,
        )

    def with_fields(
        self,
        *,
        content: str,
        tags: Sequence[str],
        visibility: Visibility,
        timestamp: Optional[datetime] = None,
    ) -> "Entry":
        return replace(
            self,
            content=content,
            tags=list(tags),
            visibility=visibility,
            updated_at=timestamp or utcnow(),
        )

    def with_visibility(
        self, visibility: Visibility, *, timestamp: Optional[datetime] = None
    ) -> "Entry":
        return replace(self, visibility=visibility, updated_at=timestamp or utcnow())

    def with_position(
        self,
        *,
        entry_date: date,
        ordinal: int,
        timestamp: Optional[datetime] = None,
    ) -> "Entry":
        """Return a copy placed at ``(entry_date, ordinal)``."""

        return replace(
            self,
            entry_date=entry_date,
            ordinal=ordinal,
            updated_at=timestamp or utcnow(),
        )

"""Result containers returned by the journal components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from ..entrystore.models import Entry


@dataclass(frozen=True)
class MutationResult:
    success: bool
    entry: Optional[Entry] = None


@dataclass(frozen=True)
class DeleteAllResult:
    success: bool
    deleted_count: int


@dataclass(frozen=True)
class EntryPage:
    """One page of the canonical listing plus the owner's tag vocabulary."""

    entries: List[Entry]
    total: int
    page: int
    page_size: int
    total_pages: int
    distinct_tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class EntryPosition:
    found: bool
    page: Optional[int] = None
    entry_id: Optional[str] = None


@dataclass(frozen=True)
class FirstEntryPosition:
    found: bool
    page: int = 1
    entry_id: Optional[str] = None
    available_years: List[int] = field(default_factory=list)
    available_months: List[str] = field(default_factory=list)

"""Composable entry predicates shared by listing and position queries.

A query is the owner scope plus a tuple of conjunctive clauses. Each clause
can evaluate itself against an in-memory :class:`Entry` and render itself as
a SQLAlchemy expression, so both store adapters answer the same question.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy import and_, exists, or_, select

from .models import Entry, Visibility
from .schema import EntryTables

__all__ = [
    "Clause",
    "OwnerIs",
    "PartitionIs",
    "DateIs",
    "DateInRange",
    "VisibilityIs",
    "IdIs",
    "OrdinalIs",
    "TextSearch",
    "HasAllTags",
    "SortsBefore",
    "EntryQuery",
    "EntryFilters",
    "canonical_sort_key",
    "group_query",
]


class Clause(Protocol):  # pragma: no cover - interface only
    def matches(self, entry: Entry) -> bool: ...

    def to_sql(self, tables: EntryTables) -> Any: ...


@dataclass(frozen=True)
class OwnerIs:
    owner_id: str

    def matches(self, entry: Entry) -> bool:
        return entry.owner_id == self.owner_id

    def to_sql(self, tables: EntryTables) -> Any:
        return tables.entries.c.owner_id == self.owner_id


@dataclass(frozen=True)
class PartitionIs:
    partition_id: str

    def matches(self, entry: Entry) -> bool:
        return entry.partition_id == self.partition_id

    def to_sql(self, tables: EntryTables) -> Any:
        return tables.entries.c.partition_id == self.partition_id


@dataclass(frozen=True)
class DateIs:
    entry_date: date

    def matches(self, entry: Entry) -> bool:
        return entry.entry_date == self.entry_date

    def to_sql(self, tables: EntryTables) -> Any:
        return tables.entries.c.entry_date == self.entry_date


@dataclass(frozen=True)
class DateInRange:
    """Half-open ``[start, end)`` date window."""

    start: date
    end: date

    def matches(self, entry: Entry) -> bool:
        return self.start <= entry.entry_date < self.end

    def to_sql(self, tables: EntryTables) -> Any:
        column = tables.entries.c.entry_date
        return and_(column >= self.start, column < self.end)


@dataclass(frozen=True)
class VisibilityIs:
    visibility: Visibility

    def matches(self, entry: Entry) -> bool:
        return entry.visibility is self.visibility

    def to_sql(self, tables: EntryTables) -> Any:
        return tables.entries.c.visibility == self.visibility.value


@dataclass(frozen=True)
class IdIs:
    entry_id: str

    def matches(self, entry: Entry) -> bool:
        return entry.entry_id == self.entry_id

    def to_sql(self, tables: EntryTables) -> Any:
        return tables.entries.c.entry_id == self.entry_id


@dataclass(frozen=True)
class OrdinalIs:
    ordinal: int

    def matches(self, entry: Entry) -> bool:
        return entry.ordinal == self.ordinal

    def to_sql(self, tables: EntryTables) -> Any:
        return tables.entries.c.ordinal == self.ordinal


@dataclass(frozen=True)
class TextSearch:
    """Case-insensitive substring of content, or an exact tag match."""

    term: str

    def matches(self, entry: Entry) -> bool:
        return self.term.lower() in entry.content.lower() or self.term in entry.tags

    def to_sql(self, tables: EntryTables) -> Any:
        pattern = f"%{_escape_like(self.term)}%"
        return or_(
            tables.entries.c.content.ilike(pattern, escape="\\"),
            _has_tag(tables, self.term),
        )


@dataclass(frozen=True)
class HasAllTags:
    tags: tuple[str, ...]

    def matches(self, entry: Entry) -> bool:
        return set(self.tags).issubset(entry.tags)

    def to_sql(self, tables: EntryTables) -> Any:
        return and_(*(_has_tag(tables, tag) for tag in self.tags))


@dataclass(frozen=True)
class SortsBefore:
    """Entries strictly ahead of ``(entry_date, ordinal)`` in canonical order."""

    entry_date: date
    ordinal: int

    def matches(self, entry: Entry) -> bool:
        if entry.entry_date != self.entry_date:
            return entry.entry_date > self.entry_date
        return entry.ordinal < self.ordinal

    def to_sql(self, tables: EntryTables) -> Any:
        c = tables.entries.c
        if self.ordinal <= 1:
            return c.entry_date > self.entry_date
        return or_(
            c.entry_date > self.entry_date,
            and_(c.entry_date == self.entry_date, c.ordinal < self.ordinal),
        )


def _has_tag(tables: EntryTables, tag: str) -> Any:
    # Aliased so the subquery never correlates against an outer entry_tags.
    tagged = tables.tags.alias("tagged")
    return exists(
        select(tagged.c.entry_id).where(
            tagged.c.entry_id == tables.entries.c.entry_id,
            tagged.c.tag == tag,
        )
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def canonical_sort_key(entry: Entry) -> tuple[int, int]:
    """Sort key for ``(entry_date DESC, ordinal ASC)``."""

    return (-entry.entry_date.toordinal(), entry.ordinal)


@dataclass(frozen=True)
class EntryQuery:
    """Owner-scoped conjunction of clauses."""

    owner_id: str
    clauses: tuple[Any, ...] = field(default_factory=tuple)

    def where(self, *clauses: Clause) -> "EntryQuery":
        return replace(self, clauses=self.clauses + tuple(clauses))

    @property
    def all_clauses(self) -> tuple[Any, ...]:
        return (OwnerIs(self.owner_id), *self.clauses)

    def matches(self, entry: Entry) -> bool:
        return all(clause.matches(entry) for clause in self.all_clauses)

    def to_sql(self, tables: EntryTables) -> list[Any]:
        return [clause.to_sql(tables) for clause in self.all_clauses]


def group_query(owner_id: str, entry_date: date) -> EntryQuery:
    """Query selecting one ordinal group."""

    return EntryQuery(owner_id).where(DateIs(entry_date))


@dataclass(frozen=True)
class EntryFilters:
    """Caller-facing listing filters.

    :meth:`to_query` is the single place filters become clauses; listing and
    position resolution both go through it.
    """

    search: Optional[str] = None
    tags: tuple[str, ...] = tuple()
    entry_date: Optional[date] = None
    visibility: Optional[Visibility] = None
    partition_id: Optional[str] = None

    @classmethod
    def build(
        cls,
        *,
        search: Optional[str] = None,
        tags: Sequence[str] = (),
        entry_date: Optional[date] = None,
        visibility: Optional[Visibility] = None,
        partition_id: Optional[str] = None,
    ) -> "EntryFilters":
        normalized_search = (search or "").strip() or None
        normalized_tags = tuple(dict.fromkeys(t.strip() for t in tags if t.strip()))
        return cls(
            search=normalized_search,
            tags=normalized_tags,
            entry_date=entry_date,
            visibility=visibility,
            partition_id=partition_id,
        )

    def to_query(self, owner_id: str) -> EntryQuery:
        query = EntryQuery(owner_id)
        if self.search:
            query = query.where(TextSearch(self.search))
        if self.tags:
            query = query.where(HasAllTags(self.tags))
        if self.entry_date is not None:
            query = query.where(DateIs(self.entry_date))
        if self.visibility is not None:
            query = query.where(VisibilityIs(self.visibility))
        if self.partition_id is not None:
            query = query.where(PartitionIs(self.partition_id))
        return query

    def scope_query(self, owner_id: str) -> EntryQuery:
        """Owner (and partition) scope, ignoring the narrowing filters."""

        query = EntryQuery(owner_id)
        if self.partition_id is not None:
            query = query.where(PartitionIs(self.partition_id))
        return query

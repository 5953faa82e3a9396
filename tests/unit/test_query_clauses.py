"""Tests for entry query clauses and listing filters."""

from __future__ import annotations

from datetime import date

import pytest

from diary_backend.app.domain.entrystore.models import Entry, Visibility
from diary_backend.app.domain.entrystore.query import (
    DateInRange,
    EntryFilters,
    EntryQuery,
    HasAllTags,
    SortsBefore,
    TextSearch,
    canonical_sort_key,
)

pytestmark = [pytest.mark.entrystore]


def _entry(
    *,
    day: date = date(2024, 1, 15),
    ordinal: int = 1,
    content: str = "Walked the dog",
    tags: tuple[str, ...] = (),
    visibility: Visibility = Visibility.PRIVATE,
    owner_id: str = "alice",
    partition_id: str | None = None,
) -> Entry:
    return Entry.new(
        owner_id=owner_id,
        entry_date=day,
        ordinal=ordinal,
        content=content,
        tags=tags,
        visibility=visibility,
        partition_id=partition_id,
    )


def test_text_search_matches_content_case_insensitively_or_exact_tag():
    clause = TextSearch("dog")

    assert clause.matches(_entry(content="The DOG barked"))
    assert clause.matches(_entry(content="nothing here", tags=("dog",)))
    assert not clause.matches(_entry(content="nothing here", tags=("Dogs",)))


def test_has_all_tags_requires_every_tag():
    clause = HasAllTags(("work", "travel"))

    assert clause.matches(_entry(tags=("travel", "work", "extra")))
    assert not clause.matches(_entry(tags=("work",)))


def test_date_in_range_is_half_open():
    clause = DateInRange(date(2024, 1, 1), date(2024, 2, 1))

    assert clause.matches(_entry(day=date(2024, 1, 1)))
    assert clause.matches(_entry(day=date(2024, 1, 31)))
    assert not clause.matches(_entry(day=date(2024, 2, 1)))


def test_sorts_before_follows_canonical_order():
    pivot = SortsBefore(date(2024, 1, 15), 2)

    assert pivot.matches(_entry(day=date(2024, 1, 16), ordinal=5))
    assert pivot.matches(_entry(day=date(2024, 1, 15), ordinal=1))
    assert not pivot.matches(_entry(day=date(2024, 1, 15), ordinal=2))
    assert not pivot.matches(_entry(day=date(2024, 1, 14), ordinal=1))


def test_canonical_sort_key_orders_date_desc_then_ordinal_asc():
    entries = [
        _entry(day=date(2024, 1, 14), ordinal=1),
        _entry(day=date(2024, 1, 15), ordinal=2),
        _entry(day=date(2024, 1, 15), ordinal=1),
        _entry(day=date(2024, 1, 16), ordinal=1),
    ]

    ordered = sorted(entries, key=canonical_sort_key)

    assert [(e.entry_date.day, e.ordinal) for e in ordered] == [
        (16, 1),
        (15, 1),
        (15, 2),
        (14, 1),
    ]


def test_entry_query_is_always_owner_scoped():
    query = EntryQuery("alice")

    assert query.matches(_entry(owner_id="alice"))
    assert not query.matches(_entry(owner_id="bob"))


def test_filters_build_normalizes_search_and_tags():
    filters = EntryFilters.build(search="  ", tags=[" work ", "", "work", "home"])

    assert filters.search is None
    assert filters.tags == ("work", "home")
    assert EntryFilters.build() == EntryFilters()


def test_filters_to_query_combines_every_dimension():
    filters = EntryFilters.build(
        search="walk",
        tags=["outdoors"],
        entry_date=date(2024, 1, 15),
        visibility=Visibility.PUBLIC,
        partition_id="travel",
    )
    query = filters.to_query("alice")
    matching = _entry(
        content="Long walk",
        tags=("outdoors",),
        visibility=Visibility.PUBLIC,
        partition_id="travel",
    )

    assert query.matches(matching)
    assert not query.matches(
        _entry(
            content="Long walk",
            tags=("outdoors",),
            visibility=Visibility.PRIVATE,
            partition_id="travel",
        )
    )
    assert not query.matches(
        _entry(
            content="Long walk",
            tags=("outdoors",),
            visibility=Visibility.PUBLIC,
            partition_id="home",
        )
    )


def test_scope_query_ignores_narrowing_filters():
    filters = EntryFilters.build(search="nothing matches", partition_id="travel")
    scope = filters.scope_query("alice")

    assert scope.matches(_entry(content="unrelated", partition_id="travel"))
    assert not scope.matches(_entry(partition_id="home"))

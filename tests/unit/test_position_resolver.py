"""Tests for jump-to page resolution."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from diary_backend.app.config import EntriesConfig
from diary_backend.app.domain.entrystore.errors import ValidationError
from diary_backend.app.domain.entrystore.query import EntryFilters
from diary_backend.app.domain.journal import JournalService
from diary_backend.app.domain.journal.positions import page_for_rank, period_bounds
from tests.helpers.stores import STORE_KINDS, StubMetrics, build_store

pytestmark = [pytest.mark.journal]


@pytest.fixture(params=STORE_KINDS)
def service(request) -> JournalService:
    return JournalService(
        gateway=build_store(request.param),
        config=EntriesConfig(),
        metrics=StubMetrics(),
    )


def _create(service, day, content="note", tags=(), **kwargs):
    return service.create_entry(
        "alice", content=content, tags=list(tags), entry_date=day, **kwargs
    ).entry


def test_entry_ranked_eleven_lands_on_page_two(service):
    start = date(2024, 1, 1)
    created = [_create(service, start + timedelta(days=i)) for i in range(25)]
    # Newest first: the 12th newest entry has 11 entries ahead of it.
    target = created[24 - 11]

    by_id = service.resolve_by_id("alice", target.entry_id, page_size=10)
    by_date = service.resolve_by_date_ordinal(
        "alice", target.entry_date, target.ordinal, page_size=10
    )

    assert (by_id.found, by_id.page, by_id.entry_id) == (True, 2, target.entry_id)
    assert (by_date.found, by_date.page, by_date.entry_id) == (
        True,
        2,
        target.entry_id,
    )


def test_resolved_pages_contain_the_entry_under_same_filters(service):
    start = date(2024, 3, 1)
    for i in range(12):
        day = start + timedelta(days=i // 3)
        _create(service, day, f"entry {i}", tags=("even",) if i % 2 == 0 else ())
    filters = EntryFilters.build(tags=["even"])
    listing = service.list_entries("alice", filters, page=1, page_size=50)

    for entry in listing.entries:
        position = service.resolve_by_id(
            "alice", entry.entry_id, page_size=2, filters=filters
        )
        page = service.list_entries("alice", filters, page=position.page, page_size=2)
        assert entry.entry_id in [e.entry_id for e in page.entries]


def test_entry_outside_active_filters_is_not_found(service):
    entry = _create(service, date(2024, 1, 15), "plain")

    by_id = service.resolve_by_id(
        "alice", entry.entry_id, page_size=10, filters=EntryFilters.build(search="zzz")
    )
    by_date = service.resolve_by_date_ordinal(
        "alice",
        date(2024, 1, 15),
        1,
        page_size=10,
        filters=EntryFilters.build(tags=["missing"]),
    )
    other_owner = service.resolve_by_id("bob", entry.entry_id, page_size=10)
    missing_ordinal = service.resolve_by_date_ordinal(
        "alice", date(2024, 1, 15), 2, page_size=10
    )

    assert not by_id.found and by_id.page is None
    assert not by_date.found
    assert not other_owner.found
    assert not missing_ordinal.found


def test_ordinal_defaults_to_one(service):
    first = _create(service, date(2024, 1, 15))
    _create(service, date(2024, 1, 15))

    position = service.resolve_by_date_ordinal("alice", "2024-01-15", page_size=10)

    assert position.entry_id == first.entry_id


def test_first_entry_of_year_and_month(service):
    _create(service, date(2023, 12, 30))
    _create(service, date(2024, 1, 3))
    first_jan = _create(service, date(2024, 1, 2))
    _create(service, date(2024, 1, 2))
    for day in range(1, 6):
        _create(service, date(2024, 2, day))

    year = service.resolve_first("alice", year=2024, page_size=3)
    month = service.resolve_first("alice", year=2024, month=1, page_size=3)
    december = service.resolve_first("alice", year=2023, month=12, page_size=3)

    # Canonical order: Feb 5..1 (5), Jan 3 (1), Jan 2 #1, Jan 2 #2, Dec 30.
    assert (year.found, year.page, year.entry_id) == (True, 3, first_jan.entry_id)
    assert (month.found, month.page, month.entry_id) == (True, 3, first_jan.entry_id)
    assert december.found and december.page == 3
    assert year.available_years == [2024, 2023]
    assert year.available_months == ["2024-02", "2024-01", "2023-12"]


def test_first_for_empty_period_or_missing_year(service):
    _create(service, date(2024, 5, 1))

    empty = service.resolve_first("alice", year=2022, page_size=10)
    no_year = service.resolve_first("alice", page_size=10)

    assert not empty.found and empty.page == 1 and empty.entry_id is None
    assert not no_year.found and no_year.page == 1
    assert no_year.available_years == [2024]
    assert no_year.available_months == ["2024-05"]


def test_repeated_resolution_is_stable(service):
    for i in range(7):
        _create(service, date(2024, 1, 1 + i % 3))
    entries = service.list_entries("alice", page=1, page_size=10).entries
    target = entries[4]

    results = {
        service.resolve_by_id("alice", target.entry_id, page_size=3) for _ in range(3)
    }

    assert len(results) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"year": 2024, "month": 13},
        {"year": 2024, "month": 0},
        {"year": 0},
        {"year": 2024, "page_size": 101},
        {"year": 2024, "page_size": 0},
    ],
)
def test_invalid_resolution_arguments_are_rejected(service, kwargs):
    with pytest.raises(ValidationError):
        service.resolve_first("alice", **kwargs)


def test_period_bounds_cover_december_rollover():
    assert period_bounds(2024, 12) == (date(2024, 12, 1), date(2025, 1, 1))
    assert period_bounds(2024, None) == (date(2024, 1, 1), date(2025, 1, 1))
    assert page_for_rank(0, 10) == 1
    assert page_for_rank(10, 10) == 2

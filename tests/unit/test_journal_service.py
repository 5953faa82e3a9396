"""Tests for the caller-facing journal service."""

from __future__ import annotations

from datetime import date
from http import HTTPStatus

import pytest

from diary_backend.app.config import EntriesConfig
from diary_backend.app.domain.entrystore.errors import NotFoundError, ValidationError
from diary_backend.app.domain.entrystore.models import Visibility, today
from diary_backend.app.domain.entrystore.query import EntryFilters
from diary_backend.app.domain.journal import JournalService
from diary_backend.app.domain.journal import service as service_module
from tests.helpers.logging import RecordingLogger, assert_extra_contains, find_log
from tests.helpers.stores import StubMetrics, build_store

pytestmark = [pytest.mark.journal]


@pytest.fixture()
def metrics() -> StubMetrics:
    return StubMetrics()


@pytest.fixture()
def service(metrics) -> JournalService:
    return JournalService(
        gateway=build_store("memory"),
        config=EntriesConfig(max_tags=3, max_tag_length=8, max_content_length=40),
        metrics=metrics,
    )


def test_create_defaults_to_today_and_private(service, metrics):
    result = service.create_entry("alice", content="Hello", tags=[" a ", "", "b"])

    assert result.success
    assert result.entry.entry_date == today()
    assert result.entry.visibility is Visibility.PRIVATE
    assert result.entry.tags == ["a", "b"]
    assert result.entry.ordinal == 1
    assert metrics.total("entries_created_total") == 1


def test_create_accepts_iso_date_and_public_visibility(service):
    entry = service.create_entry(
        "alice", content="x", entry_date="2024-01-15", visibility="PUBLIC"
    ).entry

    assert entry.entry_date == date(2024, 1, 15)
    assert entry.visibility is Visibility.PUBLIC


def test_blank_tags_do_not_count_towards_the_limit(service):
    entry = service.create_entry(
        "alice", content="x", tags=["a"] + [" "] * 20 + ["b", ""]
    ).entry

    assert entry.tags == ["a", "b"]


def test_create_accepts_full_timestamp_and_keeps_its_date(service):
    entry = service.create_entry(
        "alice", content="x", entry_date="2024-01-15T08:30:00+00:00"
    ).entry

    assert entry.entry_date == date(2024, 1, 15)


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"content": "   "}, "content"),
        ({"content": None}, "content"),
        ({"content": "x" * 41}, "content"),
        ({"content": "ok", "tags": ["a", "b", "c", "d"]}, "tags"),
        ({"content": "ok", "tags": ["much-too-long"]}, "tags"),
        ({"content": "ok", "tags": "a,b"}, "tags"),
        ({"content": "ok", "visibility": "friends"}, "visibility"),
        ({"content": "ok", "entry_date": "15/01/2024"}, "entry_date"),
        ({"content": "ok", "entry_date": "2024-01-15garbage"}, "entry_date"),
        ({"content": "ok", "entry_date": "2024-01-15T25:00"}, "entry_date"),
    ],
)
def test_create_rejects_invalid_input(service, kwargs, field):
    with pytest.raises(ValidationError) as excinfo:
        service.create_entry("alice", **kwargs)

    assert excinfo.value.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert excinfo.value.error_code == "DIARY-INVALID-REQUEST"
    assert excinfo.value.details == {"field": field}


def test_update_entry_defaults_visibility_to_private(service):
    entry = service.create_entry(
        "alice", content="x", entry_date="2024-01-15", visibility="public"
    ).entry

    updated = service.update_entry(
        "alice", entry.entry_id, content="y", tags=[], entry_date="2024-01-15"
    ).entry

    assert updated.visibility is Visibility.PRIVATE
    assert updated.content == "y"


def test_update_entry_logs_event(service, monkeypatch):
    log = RecordingLogger()
    monkeypatch.setattr(service_module, "logger", log)
    entry = service.create_entry("alice", content="x", entry_date="2024-01-15").entry

    service.update_entry(
        "alice", entry.entry_id, content="y", tags=None, entry_date="2024-01-16"
    )

    record = find_log(log.records, level="info", message="entry_updated")
    assert_extra_contains(
        record, entry_id=entry.entry_id, entry_date="2024-01-16", ordinal=1
    )


def test_update_visibility_requires_a_value(service):
    entry = service.create_entry("alice", content="x").entry

    with pytest.raises(ValidationError):
        service.update_visibility("alice", entry.entry_id, None)

    result = service.update_visibility("alice", entry.entry_id, "public")
    assert result.entry.visibility is Visibility.PUBLIC


def test_delete_entry_and_not_found_mapping(service, metrics):
    entry = service.create_entry("alice", content="x").entry

    assert service.delete_entry("alice", entry.entry_id).success
    with pytest.raises(NotFoundError) as excinfo:
        service.delete_entry("alice", entry.entry_id)

    assert excinfo.value.status_code == HTTPStatus.NOT_FOUND
    assert excinfo.value.error_code == "DIARY-NOT-FOUND"
    assert excinfo.value.details == {"entry_id": entry.entry_id}
    assert metrics.total("entries_deleted_total") == 1


def test_delete_all_reports_count(service):
    for _ in range(3):
        service.create_entry("alice", content="x", partition_id="p1")
    service.create_entry("alice", content="x", partition_id="p2")

    partition = service.delete_all_entries("alice", "p1")
    everything = service.delete_all_entries("alice")

    assert (partition.success, partition.deleted_count) == (True, 3)
    assert everything.deleted_count == 1


def test_list_dates_are_iso_strings(service):
    service.create_entry("alice", content="x", entry_date="2024-01-15")
    service.create_entry("alice", content="x", entry_date="2024-02-01")

    assert service.list_dates("alice") == ["2024-02-01", "2024-01-15"]


def test_list_entries_applies_default_page_size(service, metrics):
    for day in range(1, 13):
        service.create_entry("alice", content="x", entry_date=date(2024, 1, day))

    page = service.list_entries("alice")

    assert page.page == 1
    assert page.page_size == 10
    assert len(page.entries) == 10
    assert page.total_pages == 2
    assert metrics.total("entries_list_total") == 1


@pytest.mark.parametrize("page, page_size", [(0, 10), (1, 0), (1, 101), (True, 10)])
def test_list_entries_rejects_bad_paging(service, page, page_size):
    with pytest.raises(ValidationError):
        service.list_entries("alice", EntryFilters(), page=page, page_size=page_size)


def test_resolve_counts_metrics(service, metrics):
    service.resolve_by_id("alice", "missing")
    service.resolve_first("alice", year=2024)

    assert metrics.total("entries_resolve_total") == 2
    assert metrics.total("entries_resolve_miss_total") == 2

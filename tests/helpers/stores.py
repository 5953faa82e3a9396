"""Entry store builders shared by the journal test modules."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, List, Tuple

import sqlalchemy as sa

from diary_backend.app.domain.entrystore.gateway import (
    EntryStoreGateway,
    InMemoryEntryStoreGateway,
    PostgresEntryStoreGateway,
)
from diary_backend.app.domain.entrystore.models import Entry
from diary_backend.app.domain.entrystore.query import EntryQuery
from diary_backend.app.infra.metrics import MetricsClient

STORE_KINDS = ("memory", "sqlite")


def build_store(kind: str) -> EntryStoreGateway:
    if kind == "memory":
        return InMemoryEntryStoreGateway()
    if kind == "sqlite":
        engine = sa.create_engine("sqlite+pysqlite:///:memory:", future=True)
        gateway = PostgresEntryStoreGateway(engine)
        gateway.create_schema()
        return gateway
    raise ValueError(f"unknown store kind {kind!r}")


def sqlite_file_engine(path) -> sa.Engine:
    """Engine for a file database shared by several threads."""

    return sa.create_engine(
        f"sqlite+pysqlite:///{path}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )


def all_entries(gateway: EntryStoreGateway, owner_id: str) -> List[Entry]:
    with gateway.transaction(read_only=True) as tx:
        return tx.fetch(EntryQuery(owner_id))


def ordinals_by_date(
    gateway: EntryStoreGateway, owner_id: str
) -> Dict[date, List[int]]:
    grouped: Dict[date, List[int]] = defaultdict(list)
    for entry in all_entries(gateway, owner_id):
        grouped[entry.entry_date].append(entry.ordinal)
    return dict(grouped)


def assert_groups_dense(gateway: EntryStoreGateway, owner_id: str) -> None:
    for day, ordinals in ordinals_by_date(gateway, owner_id).items():
        assert sorted(ordinals) == list(range(1, len(ordinals) + 1)), (
            f"group {day.isoformat()} has ordinals {sorted(ordinals)}"
        )


class StubMetrics(MetricsClient):
    def __init__(self) -> None:
        self.increments: List[Tuple[str, int]] = []
        self.gauges: List[Tuple[str, int]] = []

    def increment(self, metric: str, value: int = 1) -> None:
        self.increments.append((metric, value))

    def gauge(self, metric: str, value: int) -> None:
        self.gauges.append((metric, value))

    def total(self, metric: str) -> int:
        return sum(value for name, value in self.increments if name == metric)

"""EntryStore gateway implementations."""

from __future__ import annotations

import hashlib
from contextlib import contextmanager
from datetime import date, datetime, timezone
from threading import RLock
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

from sqlalchemy import (
    MetaData,
    delete,
    extract,
    func,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from ...infra.db import get_engine
from ...infra.logging import get_logger
from .errors import ConflictError, StoreUnavailable
from .models import Entry, Visibility
from .query import EntryQuery, IdIs, canonical_sort_key
from .schema import EntryTables, define_entry_tables

__all__ = [
    "EntryStoreGateway",
    "EntryStoreSession",
    "GroupKey",
    "InMemoryEntryStoreGateway",
    "PostgresEntryStoreGateway",
    "build_entry_store_gateway",
    "ordered_lock_groups",
]

logger = get_logger(__name__)

GroupKey = Tuple[str, date]


class EntryStoreSession(Protocol):  # pragma: no cover - interface only
    """Store primitives available inside one transaction."""

    def lock_groups(self, groups: Iterable[GroupKey]) -> None: ...

    def lock_owner(self, owner_id: str) -> None: ...

    def count(self, query: EntryQuery) -> int: ...

    def fetch(
        self,
        query: EntryQuery,
        *,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Entry]: ...

    def first_date(self, query: EntryQuery) -> Optional[date]: ...

    def get(self, owner_id: str, entry_id: str) -> Optional[Entry]: ...

    def insert(self, entry: Entry) -> Entry: ...

    def update(self, entry: Entry) -> Entry: ...

    def set_ordinal(
        self, entry_id: str, ordinal: int, *, updated_at: datetime
    ) -> None: ...

    def delete(self, entry_id: str) -> None: ...

    def delete_matching(self, query: EntryQuery) -> int: ...

    def distinct_tags(self, query: EntryQuery) -> List[str]: ...

    def distinct_dates(self, query: EntryQuery) -> List[date]: ...

    def distinct_months(self, query: EntryQuery) -> List[Tuple[int, int]]: ...


class EntryStoreGateway(Protocol):  # pragma: no cover - interface only
    """Transactional record store the journal components rely on."""

    def transaction(
        self,
        *,
        lock_groups: Iterable[GroupKey] = (),
        read_only: bool = False,
    ) -> Any:
        """Context manager yielding an :class:`EntryStoreSession`.

        Everything done through the session commits together or not at all.
        """


def ordered_lock_groups(groups: Iterable[GroupKey]) -> List[GroupKey]:
    """Deduplicate groups and sort them into the global acquisition order."""

    return sorted(set(groups), key=lambda group: (group[0], group[1].isoformat()))


# ----------------------------------------------------------------------
# In-memory adapter
# ----------------------------------------------------------------------
class _InMemorySession(EntryStoreSession):
    def __init__(self, entries: Dict[str, Entry]) -> None:
        self._entries = entries

    def lock_groups(self, groups: Iterable[GroupKey]) -> None:
        # The owning gateway already serializes whole transactions.
        return None

    def lock_owner(self, owner_id: str) -> None:
        return None

    def count(self, query: EntryQuery) -> int:
        return sum(1 for entry in self._entries.values() if query.matches(entry))

    def fetch(
        self,
        query: EntryQuery,
        *,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Entry]:
        rows = sorted(
            (entry for entry in self._entries.values() if query.matches(entry)),
            key=canonical_sort_key,
        )
        end = None if limit is None else offset + limit
        return rows[offset:end]

    def first_date(self, query: EntryQuery) -> Optional[date]:
        return min(
            (e.entry_date for e in self._entries.values() if query.matches(e)),
            default=None,
        )

    def get(self, owner_id: str, entry_id: str) -> Optional[Entry]:
        entry = self._entries.get(entry_id)
        if entry is None or entry.owner_id != owner_id:
            return None
        return entry

    def insert(self, entry: Entry) -> Entry:
        if entry.entry_id in self._entries:
            raise ConflictError(
                f"Entry '{entry.entry_id}' already exists",
                details={"entry_id": entry.entry_id},
            )
        self._ensure_slot_free(entry.owner_id, entry.entry_date, entry.ordinal, None)
        self._entries[entry.entry_id] = _detached(entry)
        return self._entries[entry.entry_id]

    def update(self, entry: Entry) -> Entry:
        if entry.entry_id not in self._entries:
            raise KeyError(f"Entry {entry.entry_id} not found")
        self._ensure_slot_free(
            entry.owner_id, entry.entry_date, entry.ordinal, entry.entry_id
        )
        self._entries[entry.entry_id] = _detached(entry)
        return self._entries[entry.entry_id]

    def set_ordinal(self, entry_id: str, ordinal: int, *, updated_at: datetime) -> None:
        current = self._entries[entry_id]
        self._ensure_slot_free(current.owner_id, current.entry_date, ordinal, entry_id)
        self._entries[entry_id] = current.with_position(
            entry_date=current.entry_date, ordinal=ordinal, timestamp=updated_at
        )

    def delete(self, entry_id: str) -> None:
        self._entries.pop(entry_id, None)

    def delete_matching(self, query: EntryQuery) -> int:
        doomed = [key for key, entry in self._entries.items() if query.matches(entry)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def distinct_tags(self, query: EntryQuery) -> List[str]:
        tags = {
            tag
            for entry in self._entries.values()
            if query.matches(entry)
            for tag in entry.tags
        }
        return sorted(tags)

    def distinct_dates(self, query: EntryQuery) -> List[date]:
        dates = {e.entry_date for e in self._entries.values() if query.matches(e)}
        return sorted(dates, reverse=True)

    def distinct_months(self, query: EntryQuery) -> List[Tuple[int, int]]:
        months = {
            (e.entry_date.year, e.entry_date.month)
            for e in self._entries.values()
            if query.matches(e)
        }
        return sorted(months, reverse=True)

    def _ensure_slot_free(
        self,
        owner_id: str,
        entry_date: date,
        ordinal: int,
        exclude_id: Optional[str],
    ) -> None:
        for entry_id, entry in self._entries.items():
            if entry_id == exclude_id:
                continue
            if (
                entry.owner_id == owner_id
                and entry.entry_date == entry_date
                and entry.ordinal == ordinal
            ):
                raise ConflictError(
                    "Ordinal already taken",
                    details={
                        "entry_date": entry_date.isoformat(),
                        "ordinal": ordinal,
                    },
                )


class InMemoryEntryStoreGateway(EntryStoreGateway):
    """Simple in-memory EntryStore used for local development and tests.

    Transactions are serialized behind one re-entrant lock and roll back by
    restoring a snapshot taken when they started.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._entries: Dict[str, Entry] = {}

    @contextmanager
    def transaction(
        self,
        *,
        lock_groups: Iterable[GroupKey] = (),
        read_only: bool = False,
    ) -> Iterator[EntryStoreSession]:
        with self._lock:
            snapshot = dict(self._entries)
            try:
                yield _InMemorySession(self._entries)
            except BaseException:
                self._entries.clear()
                self._entries.update(snapshot)
                raise

    def snapshot(self) -> List[Entry]:
        """Return every stored entry; test and debugging helper."""

        with self._lock:
            return list(self._entries.values())


def _detached(entry: Entry) -> Entry:
    return Entry(
        entry_id=entry.entry_id,
        owner_id=entry.owner_id,
        entry_date=entry.entry_date,
        ordinal=entry.ordinal,
        content=entry.content,
        visibility=entry.visibility,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        tags=list(entry.tags),
        partition_id=entry.partition_id,
    )


# ----------------------------------------------------------------------
# SQL adapter
# ----------------------------------------------------------------------
class _SqlSession(EntryStoreSession):
    def __init__(self, conn: Connection, tables: EntryTables) -> None:
        self._conn = conn
        self._tables = tables
        self._dialect = conn.dialect.name.lower()

    def lock_groups(self, groups: Iterable[GroupKey]) -> None:
        ordered = ordered_lock_groups(groups)
        if not ordered:
            return
        if self._dialect == "sqlite":
            self._begin_sqlite_write()
            return
        if self._dialect != "postgresql":
            return
        # Shared owner locks precede group locks; lock_owner takes it exclusively.
        for owner_id in sorted({owner for owner, _ in ordered}):
            self._conn.execute(
                select(func.pg_advisory_xact_lock_shared(_owner_lock_key(owner_id)))
            )
        for owner_id, entry_date in ordered:
            self._conn.execute(
                select(func.pg_advisory_xact_lock(_group_lock_key(owner_id, entry_date)))
            )

    def lock_owner(self, owner_id: str) -> None:
        """Hold every group of ``owner_id`` with a single lock."""

        if self._dialect == "sqlite":
            self._begin_sqlite_write()
        elif self._dialect == "postgresql":
            self._conn.execute(
                select(func.pg_advisory_xact_lock(_owner_lock_key(owner_id)))
            )

    def _begin_sqlite_write(self) -> None:
        # pysqlite defers BEGIN until the first write; take the write lock now.
        if not self._conn.connection.dbapi_connection.in_transaction:
            self._conn.exec_driver_sql("BEGIN IMMEDIATE")

    def count(self, query: EntryQuery) -> int:
        entries = self._tables.entries
        stmt = (
            select(func.count())
            .select_from(entries)
            .where(*query.to_sql(self._tables))
        )
        return int(self._conn.execute(stmt).scalar_one())

    def fetch(
        self,
        query: EntryQuery,
        *,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Entry]:
        entries = self._tables.entries
        stmt = (
            select(entries)
            .where(*query.to_sql(self._tables))
            .order_by(entries.c.entry_date.desc(), entries.c.ordinal.asc())
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = self._conn.execute(stmt).mappings().all()
        tags_by_entry = self._load_tags([row["entry_id"] for row in rows])
        return [_row_to_entry(row, tags_by_entry.get(row["entry_id"], [])) for row in rows]

    def first_date(self, query: EntryQuery) -> Optional[date]:
        entries = self._tables.entries
        stmt = select(func.min(entries.c.entry_date)).where(
            *query.to_sql(self._tables)
        )
        return _coerce_date(self._conn.execute(stmt).scalar_one_or_none())

    def get(self, owner_id: str, entry_id: str) -> Optional[Entry]:
        rows = self.fetch(EntryQuery(owner_id).where(IdIs(entry_id)), limit=1)
        return rows[0] if rows else None

    def insert(self, entry: Entry) -> Entry:
        self._conn.execute(
            insert(self._tables.entries).values(**_entry_values(entry))
        )
        self._write_tags(entry)
        return entry

    def update(self, entry: Entry) -> Entry:
        entries = self._tables.entries
        values = _entry_values(entry)
        values.pop("entry_id")
        values.pop("created_at")
        result = self._conn.execute(
            update(entries).where(entries.c.entry_id == entry.entry_id).values(**values)
        )
        if result.rowcount == 0:
            raise KeyError(f"Entry {entry.entry_id} not found")
        tags = self._tables.tags
        self._conn.execute(delete(tags).where(tags.c.entry_id == entry.entry_id))
        self._write_tags(entry)
        return entry

    def set_ordinal(self, entry_id: str, ordinal: int, *, updated_at: datetime) -> None:
        entries = self._tables.entries
        self._conn.execute(
            update(entries)
            .where(entries.c.entry_id == entry_id)
            .values(ordinal=ordinal, updated_at=updated_at)
        )

    def delete(self, entry_id: str) -> None:
        entries, tags = self._tables
        self._conn.execute(delete(tags).where(tags.c.entry_id == entry_id))
        self._conn.execute(delete(entries).where(entries.c.entry_id == entry_id))

    def delete_matching(self, query: EntryQuery) -> int:
        entries, tags = self._tables
        conditions = query.to_sql(self._tables)
        doomed = select(entries.c.entry_id).where(*conditions)
        self._conn.execute(delete(tags).where(tags.c.entry_id.in_(doomed)))
        result = self._conn.execute(delete(entries).where(*conditions))
        return int(result.rowcount or 0)

    def distinct_tags(self, query: EntryQuery) -> List[str]:
        entries, tags = self._tables
        stmt = (
            select(tags.c.tag)
            .distinct()
            .select_from(tags.join(entries, tags.c.entry_id == entries.c.entry_id))
            .where(*query.to_sql(self._tables))
            .order_by(tags.c.tag)
        )
        return [row[0] for row in self._conn.execute(stmt)]

    def distinct_dates(self, query: EntryQuery) -> List[date]:
        entries = self._tables.entries
        stmt = (
            select(entries.c.entry_date)
            .distinct()
            .where(*query.to_sql(self._tables))
            .order_by(entries.c.entry_date.desc())
        )
        return [_coerce_date(row[0]) for row in self._conn.execute(stmt)]

    def distinct_months(self, query: EntryQuery) -> List[Tuple[int, int]]:
        entries = self._tables.entries
        year = extract("year", entries.c.entry_date).label("year")
        month = extract("month", entries.c.entry_date).label("month")
        stmt = (
            select(year, month)
            .distinct()
            .where(*query.to_sql(self._tables))
            .order_by(year.desc(), month.desc())
        )
        return [(int(row[0]), int(row[1])) for row in self._conn.execute(stmt)]

    def _write_tags(self, entry: Entry) -> None:
        if not entry.tags:
            return
        self._conn.execute(
            insert(self._tables.tags),
            [
                {
                    "entry_id": entry.entry_id,
                    "position": position,
                    "owner_id": entry.owner_id,
                    "tag": tag,
                }
                for position, tag in enumerate(entry.tags)
            ],
        )

    def _load_tags(self, entry_ids: Sequence[str]) -> Dict[str, List[str]]:
        if not entry_ids:
            return {}
        tags = self._tables.tags
        stmt = (
            select(tags.c.entry_id, tags.c.tag)
            .where(tags.c.entry_id.in_(list(entry_ids)))
            .order_by(tags.c.entry_id, tags.c.position)
        )
        grouped: Dict[str, List[str]] = {}
        for entry_id, tag in self._conn.execute(stmt):
            grouped.setdefault(entry_id, []).append(tag)
        return grouped


class PostgresEntryStoreGateway(EntryStoreGateway):
    """SQLAlchemy-backed adapter that persists entries to PostgreSQL.

    Mutating transactions take a shared owner advisory lock followed by one
    advisory lock per touched group, always in :func:`ordered_lock_groups`
    order. Bulk deletes take the owner lock exclusively instead of locking
    every group. On SQLite (tests) any lock request takes the database write
    lock up front. The ``(owner_id, entry_date, ordinal)`` unique constraint
    backs both.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        *,
        tables: Optional[EntryTables] = None,
        read_isolation: str = "REPEATABLE READ",
    ) -> None:
        self._engine = engine or get_engine()
        self._tables = tables or define_entry_tables(MetaData())
        self._read_isolation = read_isolation

    @property
    def tables(self) -> EntryTables:
        return self._tables

    def create_schema(self) -> None:
        """Create the entry tables if missing (dev and test databases)."""

        self._tables.entries.metadata.create_all(self._engine)

    def ping(self) -> None:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except (OperationalError, InterfaceError) as exc:
            raise StoreUnavailable(
                "Entry store is unavailable",
                details={"reason": type(exc.orig).__name__},
            ) from exc

    @contextmanager
    def transaction(
        self,
        *,
        lock_groups: Iterable[GroupKey] = (),
        read_only: bool = False,
    ) -> Iterator[EntryStoreSession]:
        try:
            with self._engine.connect() as conn:
                if read_only and conn.dialect.name.lower() == "postgresql":
                    conn.execution_options(isolation_level=self._read_isolation)
                with conn.begin():
                    session = _SqlSession(conn, self._tables)
                    session.lock_groups(lock_groups)
                    yield session
        except IntegrityError as exc:
            logger.warning(
                "entry_store_integrity_conflict",
                extra={"error": str(exc.orig)},
            )
            raise ConflictError(
                "Concurrent write collided on an entry ordinal",
                details={"reason": "integrity_error"},
            ) from exc
        except (OperationalError, InterfaceError) as exc:
            logger.error(
                "entry_store_unavailable",
                extra={"error": str(exc.orig)},
            )
            raise StoreUnavailable(
                "Entry store is unavailable",
                details={"reason": type(exc.orig).__name__},
            ) from exc


def build_entry_store_gateway(
    *,
    prefer_postgres: bool = True,
    fallback_to_memory: bool = False,
    read_isolation: str = "REPEATABLE READ",
) -> EntryStoreGateway:
    """Factory that returns the desired EntryStore gateway implementation."""

    if prefer_postgres:
        try:
            gateway = PostgresEntryStoreGateway(read_isolation=read_isolation)
            if fallback_to_memory:
                gateway.ping()
            return gateway
        except Exception:
            if not fallback_to_memory:
                raise
            logger.warning(
                "postgres_entry_store_unavailable_falling_back",
                exc_info=True,
            )
    return InMemoryEntryStoreGateway()


def _group_lock_key(owner_id: str, entry_date: date) -> int:
    digest = hashlib.blake2b(
        f"{owner_id}|{entry_date.isoformat()}".encode("utf-8"), digest_size=8
    ).digest()
    return int.from_bytes(digest, "big", signed=True)


def _owner_lock_key(owner_id: str) -> int:
    digest = hashlib.blake2b(
        owner_id.encode("utf-8"), digest_size=8, person=b"diary-owner"
    ).digest()
    return int.from_bytes(digest, "big", signed=True)


def _entry_values(entry: Entry) -> Dict[str, Any]:
    return {
        "entry_id": entry.entry_id,
        "owner_id": entry.owner_id,
        "partition_id": entry.partition_id,
        "entry_date": entry.entry_date,
        "ordinal": entry.ordinal,
        "content": entry.content,
        "visibility": entry.visibility.value,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
    }


def _coerce_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_entry(row: Mapping[str, Any], tags: List[str]) -> Entry:
    return Entry(
        entry_id=row["entry_id"],
        owner_id=row["owner_id"],
        partition_id=row.get("partition_id"),
        entry_date=_coerce_date(row["entry_date"]),
        ordinal=int(row["ordinal"]),
        content=row["content"],
        visibility=Visibility(row["visibility"]),
        created_at=_aware(row["created_at"]),
        updated_at=_aware(row["updated_at"]),
        tags=list(tags),
    )

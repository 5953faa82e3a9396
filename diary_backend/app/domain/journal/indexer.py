"""Ordinal bookkeeping for entry mutations.

Every mutation runs inside one store transaction holding the group locks of
the ``(owner_id, entry_date)`` groups it touches, or the owner lock for bulk
deletes. Ordinals are derived from a
count taken under that lock and vacated groups are re-enumerated before the
transaction commits, so readers only ever observe dense ``1..N`` groups.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Optional, TypeVar

from ...infra.logging import get_logger
from ...infra.metrics import MetricsClient, get_metrics_client
from ..entrystore.errors import ConflictError, NotFoundError
from ..entrystore.gateway import EntryStoreGateway, EntryStoreSession
from ..entrystore.models import Entry, Visibility, utcnow
from ..entrystore.query import EntryFilters, group_query
from .validation import EntryPayload

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_ATTEMPTS = 3


class EntryIndexMaintainer:
    """Applies create/update/delete while keeping per-date ordinals dense."""

    def __init__(
        self,
        gateway: EntryStoreGateway,
        *,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._gateway = gateway
        self._retry_attempts = max(1, retry_attempts)
        self._metrics = metrics or get_metrics_client()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(
        self,
        owner_id: str,
        *,
        entry_date: date,
        payload: EntryPayload,
        partition_id: Optional[str] = None,
    ) -> Entry:
        def _create() -> Entry:
            with self._gateway.transaction(
                lock_groups=[(owner_id, entry_date)]
            ) as tx:
                ordinal = tx.count(group_query(owner_id, entry_date)) + 1
                entry = Entry.new(
                    owner_id=owner_id,
                    entry_date=entry_date,
                    ordinal=ordinal,
                    content=payload.content,
                    tags=payload.tags,
                    visibility=payload.visibility,
                    partition_id=partition_id,
                )
                return tx.insert(entry)

        entry = self._with_retries("create", _create, owner_id=owner_id)
        logger.info(
            "entry_created",
            extra={
                "owner_id": owner_id,
                "entry_id": entry.entry_id,
                "entry_date": entry.entry_date.isoformat(),
                "ordinal": entry.ordinal,
            },
        )
        return entry

    def update(
        self,
        owner_id: str,
        entry_id: str,
        *,
        entry_date: date,
        payload: EntryPayload,
    ) -> Entry:
        def _update() -> Entry:
            source = self._locate(owner_id, entry_id)
            groups = {source.group, (owner_id, entry_date)}
            with self._gateway.transaction(lock_groups=groups) as tx:
                current = self._reload(tx, owner_id, entry_id, groups)
                timestamp = utcnow()
                changed = current.with_fields(
                    content=payload.content,
                    tags=payload.tags,
                    visibility=payload.visibility,
                    timestamp=timestamp,
                )
                if current.entry_date == entry_date:
                    return tx.update(changed)
                ordinal = tx.count(group_query(owner_id, entry_date)) + 1
                moved = tx.update(
                    changed.with_position(
                        entry_date=entry_date, ordinal=ordinal, timestamp=timestamp
                    )
                )
                self._renumber_group(tx, owner_id, current.entry_date)
                logger.info(
                    "entry_moved",
                    extra={
                        "owner_id": owner_id,
                        "entry_id": entry_id,
                        "from_date": current.entry_date.isoformat(),
                        "to_date": entry_date.isoformat(),
                        "ordinal": ordinal,
                    },
                )
                return moved

        return self._with_retries(
            "update", _update, owner_id=owner_id, entry_id=entry_id
        )

    def update_visibility(
        self, owner_id: str, entry_id: str, visibility: Visibility
    ) -> Entry:
        def _update_visibility() -> Entry:
            source = self._locate(owner_id, entry_id)
            groups = {source.group}
            with self._gateway.transaction(lock_groups=groups) as tx:
                current = self._reload(tx, owner_id, entry_id, groups)
                return tx.update(current.with_visibility(visibility))

        return self._with_retries(
            "update_visibility",
            _update_visibility,
            owner_id=owner_id,
            entry_id=entry_id,
        )

    def delete(self, owner_id: str, entry_id: str) -> Entry:
        def _delete() -> Entry:
            source = self._locate(owner_id, entry_id)
            groups = {source.group}
            with self._gateway.transaction(lock_groups=groups) as tx:
                current = self._reload(tx, owner_id, entry_id, groups)
                tx.delete(current.entry_id)
                self._renumber_group(tx, owner_id, current.entry_date)
                return current

        removed = self._with_retries(
            "delete", _delete, owner_id=owner_id, entry_id=entry_id
        )
        logger.info(
            "entry_deleted",
            extra={
                "owner_id": owner_id,
                "entry_id": entry_id,
                "entry_date": removed.entry_date.isoformat(),
                "ordinal": removed.ordinal,
            },
        )
        return removed

    def delete_all(self, owner_id: str, partition_id: Optional[str] = None) -> int:
        """Bulk delete the owner's entries, optionally limited to one partition.

        The owner lock is taken exclusively, which holds off every group
        writer of that owner without locking each date separately.
        Owner-wide deletes empty every group so nothing needs renumbering.
        A partition-scoped delete can leave other partitions' entries behind
        in a shared date group; those groups are re-enumerated before commit.
        """

        scope = EntryFilters(partition_id=partition_id).scope_query(owner_id)

        def _delete_all() -> int:
            with self._gateway.transaction() as tx:
                tx.lock_owner(owner_id)
                dates = tx.distinct_dates(scope) if partition_id is not None else []
                deleted = tx.delete_matching(scope)
                for day in dates:
                    self._renumber_group(tx, owner_id, day)
                return deleted

        deleted = self._with_retries(
            "delete_all",
            _delete_all,
            owner_id=owner_id,
            partition_id=partition_id,
        )
        logger.warning(
            "entries_deleted_all",
            extra={
                "owner_id": owner_id,
                "partition_id": partition_id,
                "deleted_count": deleted,
            },
        )
        return deleted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _locate(self, owner_id: str, entry_id: str) -> Entry:
        with self._gateway.transaction(read_only=True) as tx:
            entry = tx.get(owner_id, entry_id)
        if entry is None:
            raise NotFoundError.for_entry(entry_id)
        return entry

    @staticmethod
    def _reload(
        tx: EntryStoreSession,
        owner_id: str,
        entry_id: str,
        locked: set[tuple[str, date]],
    ) -> Entry:
        entry = tx.get(owner_id, entry_id)
        if entry is None:
            raise NotFoundError.for_entry(entry_id)
        if entry.group not in locked:
            raise ConflictError(
                "Entry moved to another date while the group lock was pending",
                details={"entry_id": entry_id},
            )
        return entry

    def _renumber_group(
        self, tx: EntryStoreSession, owner_id: str, entry_date: date
    ) -> int:
        """Reassign ``1..M`` in current ordinal order; returns rows changed."""

        timestamp = utcnow()
        changed = 0
        remaining = tx.fetch(group_query(owner_id, entry_date))
        for expected, entry in enumerate(remaining, start=1):
            if entry.ordinal == expected:
                continue
            tx.set_ordinal(entry.entry_id, expected, updated_at=timestamp)
            changed += 1
        if changed:
            self._safe_metrics_increment("entries_renumbered_total", changed)
            logger.info(
                "entry_group_renumbered",
                extra={
                    "owner_id": owner_id,
                    "entry_date": entry_date.isoformat(),
                    "group_size": len(remaining),
                    "changed": changed,
                },
            )
        return changed

    def _with_retries(self, operation: str, action: Callable[[], T], **context) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return action()
            except ConflictError:
                self._safe_metrics_increment("entries_ordinal_conflict_total")
                if attempt >= self._retry_attempts:
                    logger.error(
                        "entry_ordinal_conflict_exhausted",
                        extra={"operation": operation, "attempts": attempt, **context},
                    )
                    raise
                logger.warning(
                    "entry_ordinal_conflict_retry",
                    extra={"operation": operation, "attempt": attempt, **context},
                )

    def _safe_metrics_increment(self, metric: str, value: int = 1) -> None:
        try:
            self._metrics.increment(metric, value)
        except Exception:  # pragma: no cover - defensive
            logger.exception(
                "metrics_increment_failed",
                extra={"metric": metric, "value": value},
            )

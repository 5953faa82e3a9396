"""Journal service orchestrating validation, ordinal upkeep and reads."""

from __future__ import annotations

from datetime import date
from typing import Any, List, Optional, Sequence

from ...config import EntriesConfig
from ...infra.logging import get_logger
from ...infra.metrics import MetricsClient, get_metrics_client
from ..entrystore.errors import ValidationError
from ..entrystore.gateway import EntryStoreGateway, InMemoryEntryStoreGateway
from ..entrystore.models import today
from ..entrystore.query import EntryFilters
from .indexer import EntryIndexMaintainer
from .listing import EntryListingService
from .positions import EntryPositionResolver
from .types import (
    DeleteAllResult,
    EntryPage,
    EntryPosition,
    FirstEntryPosition,
    MutationResult,
)
from .validation import (
    EntryValidator,
    parse_date,
    parse_visibility,
    require_month,
    require_ordinal,
    require_page,
    require_year,
)

logger = get_logger(__name__)


class JournalService:
    """Caller-facing journal operations.

    Mutations go through :class:`EntryIndexMaintainer`; reads go through the
    listing and position components. Every operation is scoped to
    ``owner_id``.
    """

    def __init__(
        self,
        *,
        gateway: EntryStoreGateway | None = None,
        config: EntriesConfig | None = None,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._gateway = gateway or InMemoryEntryStoreGateway()
        self._config = config or EntriesConfig()
        self._metrics = metrics or get_metrics_client()
        self._validator = EntryValidator(self._config)
        self._indexer = EntryIndexMaintainer(
            self._gateway,
            retry_attempts=self._config.ordinal_retry_attempts,
            metrics=self._metrics,
        )
        self._listing = EntryListingService(self._gateway)
        self._positions = EntryPositionResolver(self._gateway)

    @property
    def gateway(self) -> EntryStoreGateway:
        return self._gateway

    @property
    def config(self) -> EntriesConfig:
        return self._config

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create_entry(
        self,
        owner_id: str,
        *,
        content: Any,
        tags: Optional[Sequence[Any]] = None,
        entry_date: Any = None,
        visibility: Any = None,
        partition_id: Optional[str] = None,
    ) -> MutationResult:
        payload = self._validator.payload(
            content=content, tags=tags, visibility=visibility
        )
        day = today() if entry_date is None else parse_date(entry_date)
        entry = self._indexer.create(
            owner_id, entry_date=day, payload=payload, partition_id=partition_id
        )
        self._safe_metrics_increment("entries_created_total")
        return MutationResult(success=True, entry=entry)

    def update_entry(
        self,
        owner_id: str,
        entry_id: str,
        *,
        content: Any,
        tags: Optional[Sequence[Any]],
        entry_date: Any,
        visibility: Any = None,
    ) -> MutationResult:
        payload = self._validator.payload(
            content=content, tags=tags, visibility=visibility
        )
        entry = self._indexer.update(
            owner_id,
            entry_id,
            entry_date=parse_date(entry_date),
            payload=payload,
        )
        self._safe_metrics_increment("entries_updated_total")
        logger.info(
            "entry_updated",
            extra={
                "owner_id": owner_id,
                "entry_id": entry_id,
                "entry_date": entry.entry_date.isoformat(),
                "ordinal": entry.ordinal,
            },
        )
        return MutationResult(success=True, entry=entry)

    def update_visibility(
        self, owner_id: str, entry_id: str, visibility: Any
    ) -> MutationResult:
        parsed = parse_visibility(visibility)
        if parsed is None:
            raise ValidationError(
                "visibility is required", details={"field": "visibility"}
            )
        entry = self._indexer.update_visibility(owner_id, entry_id, parsed)
        logger.info(
            "entry_visibility_updated",
            extra={
                "owner_id": owner_id,
                "entry_id": entry_id,
                "visibility": entry.visibility.value,
            },
        )
        return MutationResult(success=True, entry=entry)

    def delete_entry(self, owner_id: str, entry_id: str) -> MutationResult:
        self._indexer.delete(owner_id, entry_id)
        self._safe_metrics_increment("entries_deleted_total")
        return MutationResult(success=True)

    def delete_all_entries(
        self, owner_id: str, partition_id: Optional[str] = None
    ) -> DeleteAllResult:
        deleted = self._indexer.delete_all(owner_id, partition_id)
        self._safe_metrics_increment("entries_deleted_total", deleted)
        return DeleteAllResult(success=True, deleted_count=deleted)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_entries(
        self,
        owner_id: str,
        filters: EntryFilters | None = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> EntryPage:
        result = self._listing.list_entries(
            owner_id,
            filters or EntryFilters(),
            page=require_page(page),
            page_size=self._validator.page_size(page_size),
        )
        self._safe_metrics_increment("entries_list_total")
        return result

    def list_dates(self, owner_id: str) -> List[str]:
        return [day.isoformat() for day in self._listing.list_dates(owner_id)]

    def resolve_first(
        self,
        owner_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
        page_size: Optional[int] = None,
        filters: EntryFilters | None = None,
    ) -> FirstEntryPosition:
        result = self._positions.first(
            owner_id,
            year=require_year(year),
            month=require_month(month),
            page_size=self._validator.page_size(page_size),
            filters=filters or EntryFilters(),
        )
        self._record_resolve("first", result.found)
        return result

    def resolve_by_date_ordinal(
        self,
        owner_id: str,
        entry_date: Any,
        ordinal: Optional[int] = None,
        page_size: Optional[int] = None,
        filters: EntryFilters | None = None,
    ) -> EntryPosition:
        day: date = parse_date(entry_date)
        result = self._positions.by_date_ordinal(
            owner_id,
            day,
            require_ordinal(ordinal),
            page_size=self._validator.page_size(page_size),
            filters=filters or EntryFilters(),
        )
        self._record_resolve("by_date", result.found)
        return result

    def resolve_by_id(
        self,
        owner_id: str,
        entry_id: str,
        page_size: Optional[int] = None,
        filters: EntryFilters | None = None,
    ) -> EntryPosition:
        result = self._positions.by_id(
            owner_id,
            entry_id,
            page_size=self._validator.page_size(page_size),
            filters=filters or EntryFilters(),
        )
        self._record_resolve("by_id", result.found)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _record_resolve(self, mode: str, found: bool) -> None:
        self._safe_metrics_increment("entries_resolve_total")
        if not found:
            self._safe_metrics_increment("entries_resolve_miss_total")
        logger.debug("entry_position_lookup", extra={"mode": mode, "found": found})

    def _safe_metrics_increment(self, metric: str, value: int = 1) -> None:
        try:
            self._metrics.increment(metric, value)
        except Exception:  # pragma: no cover - defensive
            logger.exception(
                "metrics_increment_failed",
                extra={"metric": metric, "value": value},
            )

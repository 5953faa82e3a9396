"""Filtered, canonically ordered and paginated entry listings."""

from __future__ import annotations

from datetime import date
from typing import List

from ...infra.logging import get_logger
from ..entrystore.gateway import EntryStoreGateway
from ..entrystore.query import EntryFilters, EntryQuery
from .types import EntryPage

logger = get_logger(__name__)


class EntryListingService:
    """Read side for paginated listings; counts and slices in one snapshot."""

    def __init__(self, gateway: EntryStoreGateway) -> None:
        self._gateway = gateway

    def list_entries(
        self,
        owner_id: str,
        filters: EntryFilters,
        *,
        page: int,
        page_size: int,
    ) -> EntryPage:
        query = filters.to_query(owner_id)
        offset = (page - 1) * page_size
        with self._gateway.transaction(read_only=True) as tx:
            total = tx.count(query)
            entries = (
                tx.fetch(query, offset=offset, limit=page_size)
                if offset < total
                else []
            )
            distinct_tags = tx.distinct_tags(filters.scope_query(owner_id))
        logger.debug(
            "entries_listed",
            extra={
                "owner_id": owner_id,
                "page": page,
                "page_size": page_size,
                "total": total,
                "returned": len(entries),
            },
        )
        return EntryPage(
            entries=entries,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages(total, page_size),
            distinct_tags=distinct_tags,
        )

    def list_dates(self, owner_id: str) -> List[date]:
        with self._gateway.transaction(read_only=True) as tx:
            return tx.distinct_dates(EntryQuery(owner_id))


def total_pages(total: int, page_size: int) -> int:
    return (total + page_size - 1) // page_size

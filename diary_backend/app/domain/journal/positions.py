"""Jump-to resolution: which listing page holds a given entry.

The page is derived from the entry's rank in canonical order, counted with
the same filter query the listing uses::

    rank = count(date > d) + count(date == d and ordinal < o)
    page = rank // page_size + 1

No listing rows are materialized to find a position.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Tuple

from ...infra.logging import get_logger
from ..entrystore.gateway import EntryStoreGateway, EntryStoreSession
from ..entrystore.models import Entry
from ..entrystore.query import (
    DateInRange,
    DateIs,
    EntryFilters,
    EntryQuery,
    IdIs,
    OrdinalIs,
    SortsBefore,
)
from .types import EntryPosition, FirstEntryPosition

logger = get_logger(__name__)


class EntryPositionResolver:
    def __init__(self, gateway: EntryStoreGateway) -> None:
        self._gateway = gateway

    def first(
        self,
        owner_id: str,
        *,
        year: Optional[int],
        month: Optional[int],
        page_size: int,
        filters: EntryFilters,
    ) -> FirstEntryPosition:
        """Page of the earliest matching entry inside a year or month."""

        query = filters.to_query(owner_id)
        with self._gateway.transaction(read_only=True) as tx:
            periods = tx.distinct_months(filters.scope_query(owner_id))
            available_years, available_months = _available_periods(periods)
            if year is None:
                return FirstEntryPosition(
                    found=False,
                    available_years=available_years,
                    available_months=available_months,
                )
            start, end = period_bounds(year, month)
            target = tx.first_date(query.where(DateInRange(start, end)))
            if target is None:
                return FirstEntryPosition(
                    found=False,
                    available_years=available_years,
                    available_months=available_months,
                )
            rank = rank_before(tx, query, target, 0)
            leading = tx.fetch(query.where(DateIs(target)), limit=1)
        return FirstEntryPosition(
            found=True,
            page=page_for_rank(rank, page_size),
            entry_id=leading[0].entry_id if leading else None,
            available_years=available_years,
            available_months=available_months,
        )

    def by_date_ordinal(
        self,
        owner_id: str,
        entry_date: date,
        ordinal: int,
        *,
        page_size: int,
        filters: EntryFilters,
    ) -> EntryPosition:
        query = filters.to_query(owner_id)
        with self._gateway.transaction(read_only=True) as tx:
            matches = tx.fetch(
                query.where(DateIs(entry_date), OrdinalIs(ordinal)), limit=1
            )
            if not matches:
                return EntryPosition(found=False)
            return self._locate(tx, query, matches[0], page_size)

    def by_id(
        self,
        owner_id: str,
        entry_id: str,
        *,
        page_size: int,
        filters: EntryFilters,
    ) -> EntryPosition:
        query = filters.to_query(owner_id)
        with self._gateway.transaction(read_only=True) as tx:
            matches = tx.fetch(query.where(IdIs(entry_id)), limit=1)
            if not matches:
                return EntryPosition(found=False)
            return self._locate(tx, query, matches[0], page_size)

    @staticmethod
    def _locate(
        tx: EntryStoreSession, query: EntryQuery, entry: Entry, page_size: int
    ) -> EntryPosition:
        rank = rank_before(tx, query, entry.entry_date, entry.ordinal)
        logger.debug(
            "entry_position_resolved",
            extra={"entry_id": entry.entry_id, "rank": rank, "page_size": page_size},
        )
        return EntryPosition(
            found=True,
            page=page_for_rank(rank, page_size),
            entry_id=entry.entry_id,
        )


def rank_before(
    tx: EntryStoreSession, query: EntryQuery, entry_date: date, ordinal: int
) -> int:
    """Number of entries matching ``query`` that sort ahead of the position."""

    return tx.count(query.where(SortsBefore(entry_date, ordinal)))


def page_for_rank(rank: int, page_size: int) -> int:
    return rank // page_size + 1


def period_bounds(year: int, month: Optional[int]) -> Tuple[date, date]:
    """Half-open date window covering a year, or one month of it."""

    if month is None:
        return date(year, 1, 1), date(year + 1, 1, 1)
    if month == 12:
        return date(year, 12, 1), date(year + 1, 1, 1)
    return date(year, month, 1), date(year, month + 1, 1)


def _available_periods(
    periods: List[Tuple[int, int]],
) -> Tuple[List[int], List[str]]:
    years = sorted({year for year, _ in periods}, reverse=True)
    months = [f"{year:04d}-{month:02d}" for year, month in periods]
    return years, months

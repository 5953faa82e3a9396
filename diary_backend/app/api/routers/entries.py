"""Journal entry endpoints: mutations, listings and jump-to lookups."""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel, Field

from ...api.dependencies import get_journal_service, get_owner_id
from ...domain.entrystore.errors import EntryStoreError
from ...domain.entrystore.models import Entry
from ...domain.entrystore.query import EntryFilters
from ...domain.journal import JournalService
from ...domain.journal.validation import parse_visibility
from ...infra.logging import get_logger

router = APIRouter(prefix="/api/entries", tags=["entries"])
logger = get_logger(__name__)

MAX_QUERY_LENGTH = 256
EntryId = Annotated[str, Path(..., min_length=1, max_length=64)]


class EntryRecord(BaseModel):
    """API representation of a journal entry."""

    id: str
    entry_date: date
    ordinal: int
    content: str
    tags: List[str] = Field(default_factory=list)
    visibility: str
    partition_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class EntryListResponse(BaseModel):
    items: List[EntryRecord] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int
    total_pages: int = 0
    tags: List[str] = Field(
        default_factory=list,
        description="Every tag in use by the owner, sorted ascending.",
    )


class EntryCreateRequest(BaseModel):
    """Request body for POST /api/entries."""

    content: str
    tags: List[str] = Field(default_factory=list)
    entry_date: Optional[date] = Field(
        default=None, description="Defaults to today (UTC) when omitted."
    )
    visibility: Optional[str] = None
    partition_id: Optional[str] = Field(default=None, max_length=64)


class EntryUpdateRequest(BaseModel):
    """Request body for PUT /api/entries/{entry_id}."""

    content: str
    tags: List[str] = Field(default_factory=list)
    entry_date: date
    visibility: Optional[str] = None


class VisibilityUpdateRequest(BaseModel):
    visibility: str


class MutationResponse(BaseModel):
    success: bool
    entry: Optional[EntryRecord] = None


class DeleteAllResponse(BaseModel):
    success: bool
    deleted_count: int


class PositionResponse(BaseModel):
    found: bool
    page: Optional[int] = None
    entry_id: Optional[str] = None


class FirstPositionResponse(BaseModel):
    found: bool
    page: int = 1
    entry_id: Optional[str] = None
    available_years: List[int] = Field(default_factory=list)
    available_months: List[str] = Field(default_factory=list)


def _to_record(entry: Entry) -> EntryRecord:
    return EntryRecord(
        id=entry.entry_id,
        entry_date=entry.entry_date,
        ordinal=entry.ordinal,
        content=entry.content,
        tags=list(entry.tags),
        visibility=entry.visibility.value,
        partition_id=entry.partition_id,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def _handle_service_error(exc: EntryStoreError) -> HTTPException:
    if int(exc.status_code) >= 500 or exc.error_code == "DIARY-ORDINAL-CONFLICT":
        logger.warning(
            "entries_api_error",
            extra={"error_code": exc.error_code, "details": exc.details},
        )
    return HTTPException(
        status_code=int(exc.status_code),
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )


def _normalize_multi_value(values: List[str]) -> tuple[str, ...]:
    normalized: List[str] = []
    for chunk in values:
        for part in chunk.split(",") if chunk else []:
            cleaned = part.strip()
            if cleaned and cleaned not in normalized:
                normalized.append(cleaned)
    return tuple(normalized)


def _build_filters(
    q: Optional[str],
    tag: List[str],
    entry_date: Optional[date],
    visibility: Optional[str],
    partition_id: Optional[str],
) -> EntryFilters:
    return EntryFilters.build(
        search=(q or "")[:MAX_QUERY_LENGTH],
        tags=_normalize_multi_value(tag),
        entry_date=entry_date,
        visibility=parse_visibility(visibility),
        partition_id=(partition_id or "").strip() or None,
    )


SearchParam = Annotated[
    Optional[str],
    Query(description="Case-insensitive content substring or exact tag."),
]
TagParam = Annotated[
    List[str], Query(description="Required tags; repeat or comma-separate.")
]
DateParam = Annotated[Optional[date], Query(alias="date")]
VisibilityParam = Annotated[Optional[str], Query(pattern="^(public|private)$")]
PartitionParam = Annotated[Optional[str], Query(max_length=64)]
PageSizeParam = Annotated[Optional[int], Query(ge=1)]


@router.get(
    "",
    response_model=EntryListResponse,
    summary="List entries in canonical order",
)
def list_entries(
    q: SearchParam = None,
    tag: TagParam = [],
    entry_date: DateParam = None,
    visibility: VisibilityParam = None,
    partition_id: PartitionParam = None,
    page: Annotated[Optional[int], Query(ge=1)] = None,
    page_size: PageSizeParam = None,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> EntryListResponse:
    try:
        filters = _build_filters(q, tag, entry_date, visibility, partition_id)
        result = service.list_entries(
            owner_id, filters, page=page, page_size=page_size
        )
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return EntryListResponse(
        items=[_to_record(entry) for entry in result.entries],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        tags=result.distinct_tags,
    )


@router.get("/dates", response_model=List[str], summary="Dates that hold entries")
def list_dates(
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> List[str]:
    try:
        return service.list_dates(owner_id)
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc


@router.get(
    "/first",
    response_model=FirstPositionResponse,
    summary="Page of the first entry in a year or month",
)
def resolve_first(
    year: Annotated[Optional[int], Query()] = None,
    month: Annotated[Optional[int], Query()] = None,
    q: SearchParam = None,
    tag: TagParam = [],
    entry_date: DateParam = None,
    visibility: VisibilityParam = None,
    partition_id: PartitionParam = None,
    page_size: PageSizeParam = None,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> FirstPositionResponse:
    try:
        filters = _build_filters(q, tag, entry_date, visibility, partition_id)
        result = service.resolve_first(
            owner_id,
            year=year,
            month=month,
            page_size=page_size,
            filters=filters,
        )
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return FirstPositionResponse(
        found=result.found,
        page=result.page,
        entry_id=result.entry_id,
        available_years=result.available_years,
        available_months=result.available_months,
    )


@router.get(
    "/by-date",
    response_model=PositionResponse,
    summary="Page holding the entry at a date and ordinal",
)
def resolve_by_date(
    on: Annotated[date, Query(description="Entry date (YYYY-MM-DD).")],
    ordinal: Annotated[Optional[int], Query(ge=1)] = None,
    q: SearchParam = None,
    tag: TagParam = [],
    entry_date: DateParam = None,
    visibility: VisibilityParam = None,
    partition_id: PartitionParam = None,
    page_size: PageSizeParam = None,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> PositionResponse:
    try:
        filters = _build_filters(q, tag, entry_date, visibility, partition_id)
        result = service.resolve_by_date_ordinal(
            owner_id,
            on,
            ordinal=ordinal,
            page_size=page_size,
            filters=filters,
        )
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return PositionResponse(
        found=result.found, page=result.page, entry_id=result.entry_id
    )


@router.get(
    "/by-id/{entry_id}",
    response_model=PositionResponse,
    summary="Page holding an entry",
)
def resolve_by_id(
    entry_id: EntryId,
    q: SearchParam = None,
    tag: TagParam = [],
    entry_date: DateParam = None,
    visibility: VisibilityParam = None,
    partition_id: PartitionParam = None,
    page_size: PageSizeParam = None,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> PositionResponse:
    try:
        filters = _build_filters(q, tag, entry_date, visibility, partition_id)
        result = service.resolve_by_id(
            owner_id, entry_id, page_size=page_size, filters=filters
        )
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return PositionResponse(
        found=result.found, page=result.page, entry_id=result.entry_id
    )


@router.post(
    "",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an entry",
)
def create_entry(
    payload: EntryCreateRequest,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> MutationResponse:
    try:
        result = service.create_entry(
            owner_id,
            content=payload.content,
            tags=payload.tags,
            entry_date=payload.entry_date,
            visibility=payload.visibility,
            partition_id=payload.partition_id,
        )
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return MutationResponse(success=result.success, entry=_to_record(result.entry))


@router.put(
    "/{entry_id}",
    response_model=MutationResponse,
    summary="Replace an entry's fields, possibly moving it to another date",
)
def update_entry(
    entry_id: EntryId,
    payload: EntryUpdateRequest,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> MutationResponse:
    try:
        result = service.update_entry(
            owner_id,
            entry_id,
            content=payload.content,
            tags=payload.tags,
            entry_date=payload.entry_date,
            visibility=payload.visibility,
        )
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return MutationResponse(success=result.success, entry=_to_record(result.entry))


@router.patch(
    "/{entry_id}/visibility",
    response_model=MutationResponse,
    summary="Change an entry's visibility",
)
def update_visibility(
    entry_id: EntryId,
    payload: VisibilityUpdateRequest,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> MutationResponse:
    try:
        result = service.update_visibility(owner_id, entry_id, payload.visibility)
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return MutationResponse(success=result.success, entry=_to_record(result.entry))


@router.delete(
    "/all",
    response_model=DeleteAllResponse,
    summary="Delete every entry of the owner, optionally one partition only",
)
def delete_all_entries(
    partition_id: PartitionParam = None,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> DeleteAllResponse:
    try:
        result = service.delete_all_entries(
            owner_id, (partition_id or "").strip() or None
        )
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return DeleteAllResponse(
        success=result.success, deleted_count=result.deleted_count
    )


@router.delete(
    "/{entry_id}",
    response_model=MutationResponse,
    summary="Delete an entry and close the gap in its date",
)
def delete_entry(
    entry_id: EntryId,
    owner_id: str = Depends(get_owner_id),
    service: JournalService = Depends(get_journal_service),
) -> MutationResponse:
    try:
        result = service.delete_entry(owner_id, entry_id)
    except EntryStoreError as exc:
        raise _handle_service_error(exc) from exc
    return MutationResponse(success=result.success)

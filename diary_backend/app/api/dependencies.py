"""Shared API dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import HTTPException, Request

from ..config import Settings, load_settings
from ..domain.entrystore.errors import ValidationError
from ..domain.entrystore.gateway import (
    EntryStoreGateway,
    build_entry_store_gateway,
)
from ..domain.journal import JournalService

__all__ = [
    "OWNER_ID_HEADER",
    "get_entry_gateway",
    "get_journal_service",
    "get_owner_id",
    "get_settings",
]

OWNER_ID_HEADER = "x-owner-id"
MAX_OWNER_ID_LENGTH = 64


@lru_cache()
def get_settings() -> Settings:
    """Return the settings loaded once per process."""

    return load_settings()


@lru_cache()
def _entry_gateway_singleton() -> EntryStoreGateway:
    return build_entry_store_gateway(read_isolation=get_settings().read_isolation)


def get_entry_gateway() -> EntryStoreGateway:
    """Return the process-wide EntryStore gateway instance."""

    return _entry_gateway_singleton()


@lru_cache()
def _journal_service_singleton() -> JournalService:
    return JournalService(gateway=get_entry_gateway(), config=get_settings().entries)


def get_journal_service() -> JournalService:
    """Return the journal service singleton."""

    return _journal_service_singleton()


def get_owner_id(request: Request) -> str:
    """Owner scope from the request header, or the configured default."""

    owner_id = (request.headers.get(OWNER_ID_HEADER) or "").strip()
    if len(owner_id) > MAX_OWNER_ID_LENGTH:
        error = ValidationError(
            f"owner id exceeds {MAX_OWNER_ID_LENGTH} characters",
            details={"field": "owner_id"},
        )
        raise HTTPException(
            status_code=int(error.status_code),
            detail={
                "error_code": error.error_code,
                "message": error.message,
                "details": error.details,
            },
        )
    return owner_id or get_settings().default_owner_id

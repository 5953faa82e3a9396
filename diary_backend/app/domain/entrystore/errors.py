"""Domain exceptions propagated from the entry store to API handlers."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict

__all__ = [
    "EntryStoreError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StoreUnavailable",
]


class EntryStoreError(Exception):
    """Base error carrying the HTTP-equivalent status and a stable code."""

    default_status = HTTPStatus.INTERNAL_SERVER_ERROR
    default_code = "DIARY-INTERNAL"

    def __init__(
        self,
        message: str,
        *,
        details: Dict[str, Any] | None = None,
        status_code: HTTPStatus | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code or self.default_status
        self.error_code = error_code or self.default_code
        self.message = message
        self.details = details or {}


class ValidationError(EntryStoreError):
    """Malformed input; never retried."""

    default_status = HTTPStatus.UNPROCESSABLE_ENTITY
    default_code = "DIARY-INVALID-REQUEST"


class NotFoundError(EntryStoreError):
    """Entry missing or owned by another scope."""

    default_status = HTTPStatus.NOT_FOUND
    default_code = "DIARY-NOT-FOUND"

    @classmethod
    def for_entry(cls, entry_id: str) -> "NotFoundError":
        return cls(f"Entry '{entry_id}' not found", details={"entry_id": entry_id})


class ConflictError(EntryStoreError):
    """Duplicate ordinal detected at write time."""

    default_status = HTTPStatus.CONFLICT
    default_code = "DIARY-ORDINAL-CONFLICT"


class StoreUnavailable(EntryStoreError):
    """Transient backend failure."""

    default_status = HTTPStatus.SERVICE_UNAVAILABLE
    default_code = "DIARY-STORE-UNAVAILABLE"

"""System health endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from ...config import Settings
from ...domain.entrystore.errors import StoreUnavailable
from ...domain.entrystore.gateway import EntryStoreGateway
from ..dependencies import get_entry_gateway, get_settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/healthz")
def healthcheck(
    settings: Settings = Depends(get_settings),
    gateway: EntryStoreGateway = Depends(get_entry_gateway),
) -> dict[str, Any]:
    """Return coarse-grained backend readiness information."""

    entry_store = "ok"
    ping = getattr(gateway, "ping", None)
    if ping is not None:
        try:
            ping()
        except StoreUnavailable:
            entry_store = "unavailable"
    return {
        "status": "ok" if entry_store == "ok" else "degraded",
        "environment": settings.environment,
        "entryStore": entry_store,
        "entryStoreBackend": type(gateway).__name__,
    }

"""FastAPI entrypoint for the diary backend."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.dependencies import get_settings
from .api.routers import entries, health
from .infra.logging import configure_logging


def create_app() -> FastAPI:
    """Instantiate the FastAPI app and register routers."""

    settings = get_settings()
    configure_logging(settings.logging)
    application = FastAPI(title="Diary API", version="0.1.0")
    allowed_origins = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(allowed_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for router in (health.router, entries.router):
        application.include_router(router)
    return application


app = create_app()

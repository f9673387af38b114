import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routers import board, chat, events, ops
from api.state import AppServices, build_services
from astra.config import Settings, get_settings
from astra.errors import (
    AstraError,
    AuthorizationGap,
    RemoteFailure,
    UnknownStatusError,
    ValidationError,
)
from llm.llm_client import build_completion_provider
from storage.memory_store import InMemoryStore
from storage.remote_store import RemoteStore

logger = logging.getLogger(__name__)


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


async def _connect_store(settings: Settings) -> RemoteStore:
    if settings.store_backend == "postgres":
        from storage import db
        from storage.postgres_store import PostgresStore

        store = await PostgresStore.connect(
            settings.database_url,
            min_size=settings.db_pool_min,
            max_size=settings.db_pool_max,
        )
        if settings.init_schema:
            await db.init_schema(store.pool)
        return store

    if settings.store_backend != "memory":
        logger.warning(f"Unknown STORE_BACKEND {settings.store_backend!r}; using memory")
    logger.warning("Using in-memory store; data is lost on restart")
    return InMemoryStore()


def _status_for(exc: AstraError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, AuthorizationGap):
        return 401
    if isinstance(exc, UnknownStatusError):
        return 502
    if isinstance(exc, RemoteFailure):
        return 503
    return 500


async def _astra_error_handler(request: Request, exc: AstraError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """
    Build the API. Pass `services` to run against injected collaborators
    (tests); otherwise they are built from the environment at startup.
    """
    app = FastAPI(title="Astra")
    app.state.services = services

    app.add_exception_handler(AstraError, _astra_error_handler)

    app.include_router(board.router)
    app.include_router(events.router)
    app.include_router(chat.router)
    app.include_router(ops.router)

    @app.on_event("startup")
    async def startup() -> None:
        if app.state.services is not None:
            return
        settings = get_settings()
        _configure_logging(settings)
        store = await _connect_store(settings)
        completion = build_completion_provider(settings)
        app.state.services = build_services(settings, store, completion)
        logger.info("Astra API started")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        if app.state.services is not None:
            await app.state.services.close()
        logger.info("Astra API stopped")

    return app


app = create_app()

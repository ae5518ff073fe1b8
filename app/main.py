from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.middleware import BodySizeLimitMiddleware
from app.api.routes import router
from app.config import Settings, load_settings
from app.state import AppState

APP_NAME = "capes-emotes"
APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    # basicConfig is a no-op once the root logger has handlers (uvicorn, pytest).
    logging.getLogger().setLevel(settings.log_level)


def create_app(*, settings: Settings | None = None, state: AppState | None = None) -> FastAPI:
    """Build the API.

    Settings are read from the environment at startup unless given. Passing a
    ready `state` skips loading the snapshot (tests inject one this way).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sync: AppState | None = getattr(app.state, "sync", None)
        if sync is None:
            resolved = settings or load_settings()
            configure_logging(resolved)
            sync = app.state.sync = AppState.from_settings(resolved)
        else:
            configure_logging(sync.settings)
        logger.info(
            "%s ready: backend=%s emote_ttl=%ss long_poll=%ss",
            APP_NAME,
            sync.settings.storage_backend,
            sync.settings.emote_ttl_s,
            sync.settings.long_poll_timeout_s,
        )
        try:
            yield
        finally:
            sync.shutdown()

    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)
    app.state.sync = state
    app.include_router(router)
    limits = settings or (state.settings if state is not None else Settings())
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=limits.max_body_bytes)

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Malformed bodies/params are client errors (400), same as missing required fields.
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "invalid request", "detail": jsonable_encoder(exc.errors())},
        )

    @app.get("/info")
    async def info() -> dict[str, str]:
        return {"name": APP_NAME, "version": APP_VERSION}

    return app


app = create_app()

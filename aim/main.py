# aim/main.py
from __future__ import annotations

"""
# AIM Media API — Application Entrypoint (FastAPI)

App factory and lifecycle for the tiered-bitrate music storage service.

## Wiring
- request id → rate limits (SlowAPI) → problem+json exception handlers.
- One `MusicStorageService` and one asset registry per process, built in the
  lifespan unless injected (tests pass fakes to `create_app`).

## Probes
- `/healthz` — liveness (process up).
- `/readyz` — readiness (cloud storage configured).
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging
import os

from fastapi import FastAPI
from starlette.responses import JSONResponse

# Importing configures loguru sinks and the stdlib intercept.
from aim.core import logger as _logsetup  # noqa: F401
from aim.core.config import settings
from aim.core.exception_handlers import install_exception_handlers
from aim.core.limiter import install_rate_limiter, rate_limit_exempt
from aim.middleware.request_id import RequestIDMiddleware
from aim.repositories.media_assets import InMemoryMediaAssetRepository, MediaAssetRepository
from aim.services.music_storage import MusicStorageService

logger = logging.getLogger("aim")


def create_app(
    service: Optional[MusicStorageService] = None,
    registry: Optional[MediaAssetRepository] = None,
) -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Args:
        service: storage service to use instead of one built from settings.
        registry: asset registry to use instead of a fresh in-memory one.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("AIM Media API starting up (env=%s)", settings.ENV)
        if getattr(app.state, "music_storage", None) is None:
            app.state.music_storage = MusicStorageService.from_settings(settings)
        if getattr(app.state, "asset_repository", None) is None:
            app.state.asset_repository = InMemoryMediaAssetRepository()
        try:
            yield
        finally:
            logger.info("AIM Media API shutting down")

    docs_url = "/docs" if settings.ENABLE_DOCS else None
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url=docs_url,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.ENABLE_DOCS else None,
        lifespan=lifespan,
    )
    # Injected objects are visible even when the lifespan is not run.
    app.state.music_storage = service
    app.state.asset_repository = registry

    app.add_middleware(RequestIDMiddleware)
    install_rate_limiter(app)
    install_exception_handlers(app)

    from aim.api.v1.routers import router as api_v1_router

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    @app.get("/healthz", tags=["meta"])
    @rate_limit_exempt()
    async def healthz() -> dict[str, bool]:
        """Liveness probe; no external checks."""
        return {"ok": True}

    @app.get("/readyz", tags=["meta"])
    @rate_limit_exempt()
    async def readyz() -> JSONResponse:
        """Readiness: 200 when cloud storage is configured, else 503."""
        storage: Optional[MusicStorageService] = getattr(app.state, "music_storage", None)
        storage_ok = bool(storage is not None and storage.is_available())
        body = {
            "ready": storage_ok,
            "checks": {"storage": storage_ok, "cdn": bool(storage and storage.cdn_enabled)},
        }
        return JSONResponse(body, status_code=200 if storage_ok else 503)

    return app


app = create_app()
__all__ = ["create_app", "app"]


# Local dev runner (prefer: `uvicorn aim.main:app --reload`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "aim.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )

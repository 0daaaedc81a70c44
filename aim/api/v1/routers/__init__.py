"""
AIM • API v1 Router Aggregator
==============================

    from aim.api.v1.routers import build_v1_router
    app.include_router(build_v1_router(), prefix="/api/v1")

Auth and rate limits live in the child routers.
"""

from fastapi import APIRouter

from .music import router as music_router


def build_v1_router() -> APIRouter:
    router = APIRouter()
    router.include_router(music_router)
    return router


router = build_v1_router()

__all__ = ["router", "build_v1_router", "music_router"]

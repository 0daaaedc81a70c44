from __future__ import annotations

"""
Problem+JSON exception handlers (RFC 7807).

`install_exception_handlers(app)` wires them in `aim.main`. Storage domain
errors are mapped to status codes here; the storage service never formats
HTTP responses. Per-variant causes are logged, never returned to clients.
"""

from typing import Any, Dict, Optional, Tuple, Type

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from aim.core.exceptions import (
    AppException,
    DeleteFailed,
    InvalidMediaRequest,
    MediaStorageError,
    NoVariantsAvailable,
    StorageUnavailable,
    UploadFailed,
)

# error type → (status, title, public detail or None to use str(exc))
_STORAGE_ERRORS: Tuple[Tuple[Type[MediaStorageError], int, str, Optional[str]], ...] = (
    (StorageUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "Storage Unavailable", "Cloud storage is not configured"),
    (UploadFailed, status.HTTP_502_BAD_GATEWAY, "Upload Failed", "Upload failed"),
    (DeleteFailed, status.HTTP_502_BAD_GATEWAY, "Delete Failed", "Delete failed"),
    (NoVariantsAvailable, status.HTTP_404_NOT_FOUND, "Not Playable", None),
    (InvalidMediaRequest, status.HTTP_400_BAD_REQUEST, "Invalid Media Request", None),
)


def _problem(
    title: str,
    detail: str,
    status_code: int,
    request: Request,
    *,
    extra: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "type": "about:blank",
        "title": title,
        "detail": detail,
        "status": status_code,
        "instance": str(request.url),
    }
    if extra:
        content.update(extra)
    return JSONResponse(
        status_code=status_code,
        content=content,
        media_type="application/problem+json",
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:  # type: ignore
    body = exc.to_problem(instance=str(request.url))
    return JSONResponse(
        status_code=exc.status_code,
        content=body,
        media_type="application/problem+json",
        headers=getattr(exc, "headers", None),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore
    title = exc.__class__.__name__.replace("Exception", "").strip() or "Error"
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _problem(title, detail, exc.status_code, request, headers=getattr(exc, "headers", None))


async def storage_exception_handler(request: Request, exc: MediaStorageError) -> JSONResponse:  # type: ignore
    for err_type, code, title, public_detail in _STORAGE_ERRORS:
        if isinstance(exc, err_type):
            break
    else:
        code, title, public_detail = status.HTTP_502_BAD_GATEWAY, "Storage Error", "Storage operation failed"

    if code >= 500:
        cause = getattr(exc, "cause", None) or exc.__cause__
        logger.error("storage error on {} {}: {!r} (cause={!r})", request.method, request.url.path, exc, cause)
    return _problem(title, public_detail or str(exc), code, request)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore
    detail = "Validation error"
    return _problem(
        detail,
        detail,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        request,
        extra={"errors": jsonable_encoder(exc.errors())},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore
    logger.exception("unhandled error on {} {}", request.method, request.url.path)
    return _problem("Internal Server Error", "An unexpected error occurred.", status.HTTP_500_INTERNAL_SERVER_ERROR, request)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(MediaStorageError, storage_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]


__all__ = [
    "app_exception_handler",
    "http_exception_handler",
    "storage_exception_handler",
    "validation_exception_handler",
    "global_exception_handler",
    "install_exception_handlers",
]

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gps_tracker.core.database import StorageError
from gps_tracker.core.logging import log_error, log_warning
from gps_tracker.services.assets import AssetNotFoundError


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request payload"


async def _handle_not_found(request: Request, exc: AssetNotFoundError) -> JSONResponse:
    log_warning("Asset not found", path=request.url.path, asset_id=exc.asset_id)
    return _error_response(status.HTTP_404_NOT_FOUND, str(exc))


async def _handle_storage_error(request: Request, exc: StorageError) -> JSONResponse:
    log_error("Storage failure", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Payloads the type coercion rejects are reported like any other store rejection.
    message = _validation_message(exc)
    log_error("Request payload rejected", path=request.url.path, error=message)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = _error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    log_error("Unhandled error", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"error": message}``."""
    app.add_exception_handler(AssetNotFoundError, _handle_not_found)
    app.add_exception_handler(StorageError, _handle_storage_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(Exception, _handle_unexpected)

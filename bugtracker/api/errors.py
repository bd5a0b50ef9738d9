"""Exception handlers rendering every failure as ``{"error": ..., "details": ...}``."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bugtracker.errors import BugTrackerError

logger = logging.getLogger(__name__)


def _envelope(status_code: int, error: str, details: list[dict[str, Any]] | None = None) -> JSONResponse:
    content: dict[str, Any] = {"error": error}
    if details:
        content["details"] = details
    return JSONResponse(content, status_code=status_code)


def _clean_errors(errors: Any) -> list[dict[str, Any]]:
    """Keep only the JSON-safe parts of pydantic error dicts."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in errors
    ]


async def handle_service_error(request: Request, exc: BugTrackerError) -> JSONResponse:
    return _envelope(exc.status_code, exc.message, exc.details)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        logger.warning("Malformed JSON in request to %s", request.url.path)
        return _envelope(400, "Bad JSON format")
    return _envelope(400, "Invalid request data", _clean_errors(errors))


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = _envelope(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error on %s %s", request.method, request.url.path)
    return _envelope(500, "Internal Server Error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BugTrackerError, handle_service_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

# backend/therapport/errors.py
"""
Unified error envelope.

Every error response body is ``{"message", "code", "details"}`` whether it
started as a DomainException, an HTTPException raised by a route, or a
request validation failure.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import HTTP_422_UNPROCESSABLE, DomainException, RepositoryException

logger = logging.getLogger(__name__)


def _envelope(message: str, code: Optional[str] = None, details: Optional[Any] = None) -> Dict[str, Any]:
    return {
        "message": message,
        "code": code or "ERROR",
        "details": jsonable_encoder(details) if details is not None else {},
    }


def _from_detail(detail: Any) -> Dict[str, Any]:
    if isinstance(detail, dict):
        message = detail.get("message") or detail.get("detail") or ""
        return _envelope(str(message), detail.get("code"), detail.get("details"))
    if detail is None:
        return _envelope("")
    return _envelope(str(detail))


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            _from_detail(exc.detail), status_code=exc.status_code, headers=exc.headers
        )

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}", extra={"path": request.url.path})
        return JSONResponse(jsonable_encoder(exc.to_payload()), status_code=exc.status_code)

    @app.exception_handler(RepositoryException)
    async def repository_exception_handler(request: Request, exc: RepositoryException) -> JSONResponse:
        logger.error(f"Repository failure: {exc}", extra={"path": request.url.path})
        return JSONResponse(
            _envelope("A database error occurred", "DATABASE_ERROR"), status_code=500
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            _envelope("Request validation failed", "REQUEST_VALIDATION", {"errors": exc.errors()}),
            status_code=HTTP_422_UNPROCESSABLE,
        )

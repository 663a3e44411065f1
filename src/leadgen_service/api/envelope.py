"""Uniform response envelope and the exception handlers that render it.

Success and error results are distinct models serialized the same way at
the boundary::

    {"code": 201, "status": "success", "success": true, "data": {...}}
    {"code": 404, "status": "error", "success": false,
     "error": {"type": "not_found", "message": "Not found"}}
"""

from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import (
    BaseModel,
    Field,
    SerializerFunctionWrapHandler,
    model_serializer,
)
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from leadgen_service.errors import InternalFailure, ServiceError

logger = structlog.get_logger()

DataT = TypeVar("DataT")


class SuccessEnvelope(BaseModel, Generic[DataT]):
    code: int = 200
    status: Literal["success"] = "success"
    success: Literal[True] = True
    data: DataT


class ListEnvelope(BaseModel, Generic[DataT]):
    """List page. ``next_cursor`` is present only when more pages exist."""

    code: int = 200
    status: Literal["success"] = "success"
    success: Literal[True] = True
    data: list[DataT]
    next_cursor: str | None = Field(
        default=None,
        description="Opaque cursor for the next page; absent on the last page.",
    )

    @model_serializer(mode="wrap")
    def _drop_empty_cursor(
        self, handler: SerializerFunctionWrapHandler
    ) -> dict[str, Any]:
        data: dict[str, Any] = handler(self)
        if data.get("next_cursor") is None:
            data.pop("next_cursor", None)
        return data


class ErrorDetail(BaseModel):
    type: str
    message: str


class ErrorEnvelope(BaseModel):
    code: int
    status: Literal["error"] = "error"
    success: Literal[False] = False
    error: ErrorDetail


def error_response(
    status_code: int,
    error_type: str,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorEnvelope(
        code=status_code,
        error=ErrorDetail(type=error_type, message=message),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers=headers,
    )


_HTTP_ERROR_TYPES: dict[int, str] = {
    400: "validation_error",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limit",
}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, InternalFailure):
        logger.error("internal_failure", path=request.url.path, error=exc.message)
        return error_response(500, exc.error_type, InternalFailure.default_message)
    return error_response(exc.status_code, exc.error_type, exc.message, exc.headers)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Body/query validation problems are client errors (400)."""
    problems = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    message = "; ".join(str(p) for p in problems) or "Invalid request"
    return error_response(400, "validation_error", message)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    error_type = _HTTP_ERROR_TYPES.get(exc.status_code, "http_error")
    headers = dict(exc.headers) if exc.headers else None
    return error_response(exc.status_code, error_type, str(exc.detail), headers)


async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Storage failures are not retried here; log with context, answer 500."""
    logger.error(
        "storage_error",
        exc_info=exc,
        method=request.method,
        path=request.url.path,
        tenant_id=str(getattr(request.state, "tenant_id", None)),
    )
    return error_response(500, "internal_error", InternalFailure.default_message)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions."""
    logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
    return error_response(500, "internal_error", InternalFailure.default_message)


def install_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(ServiceError)(service_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(SQLAlchemyError)(storage_error_handler)
    app.exception_handler(Exception)(unhandled_exception_handler)

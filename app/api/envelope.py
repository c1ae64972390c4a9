"""Uniform response envelope.

Success:    {"success": true, "message": ..., "data": ...}
Paginated:  the same plus "pagination": {page, limit, total, totalPages, hasMore}
Failure:    {"success": false, "message": ..., "errors": ...}

Clients branch on `success` alone, whatever the endpoint or status code.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated, Any, Generic, TypeVar

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import SETTINGS
from app.core.errors import ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int
    hasMore: bool


class Paginated(BaseModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: list[T]
    pagination: Pagination


class PageParams:
    """Query-string paging: ?page=1&limit=20."""

    def __init__(
        self,
        page: Annotated[int, Query(ge=1)] = 1,
        limit: Annotated[int, Query(ge=1, le=100)] = 20,
    ) -> None:
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def paginated(
    items: list[Any], params: PageParams, total: int, message: str | None = None
) -> dict[str, Any]:
    total_pages = math.ceil(total / params.limit) if total else 0
    return {
        "success": True,
        "message": message,
        "data": items,
        "pagination": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "totalPages": total_pages,
            "hasMore": params.page < total_pages,
        },
    }


def error_response(
    status_code: int,
    message: str,
    errors: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "errors": errors},
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


async def _service_error(request: Request, exc: ServiceError) -> JSONResponse:
    logger.warning(
        "Rejected %s %s -> %d: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return error_response(exc.status_code, exc.message, exc.errors)


async def _validation_error(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            # drop the leading "body"/"query"/"path" segment
            "field": ".".join(str(p) for p in err["loc"][1:]) or str(err["loc"][0]),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return error_response(400, "Validation failed", errors)


async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(
        exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None)
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if SETTINGS.is_dev else "Internal server error"
    return error_response(500, message)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error)

from __future__ import annotations

from http import HTTPStatus
from logging import getLogger
from typing import Mapping

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from icocodec.core.config import settings
from icocodec.core.logging import get_request_id
from icocodec.models.responses import ProblemDetails

logger = getLogger(__name__)


def _status_title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "HTTP Error"


def problem_response(
    request: Request,
    status_code: int,
    detail: str | None = None,
    title: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Render an RFC 7807 problem body tagged with the current request ID."""

    request_id = getattr(request.state, "request_id", None) or get_request_id()
    problem = ProblemDetails(
        title=title or _status_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url),
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=problem.model_dump(),
        headers={**(headers or {}), settings.request_id_header: request_id},
    )


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return problem_response(request, exc.status_code, detail, headers=exc.headers)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
    return problem_response(
        request,
        HTTPStatus.UNPROCESSABLE_ENTITY.value,
        f"Invalid request fields: {fields}",
        title="Validation Failed",
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return problem_response(
        request,
        HTTPStatus.INTERNAL_SERVER_ERROR.value,
        "An unexpected error occurred. Please try again later.",
        title="Internal Server Error",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

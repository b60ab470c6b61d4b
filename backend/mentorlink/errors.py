# backend/mentorlink/errors.py
"""
Problem-document error responses.

Every error leaves the API as ``application/json`` shaped like RFC 7807
plus the stable machine code clients branch on::

    {"type", "title", "status", "detail", "instance", "code", "error", "errors"}

``code`` and ``error`` carry the same value (e.g. ``NO_MENTORSHIP_CONNECTION``).
Unhandled exceptions are logged with their traceback and rendered as a
bare 500; their text never reaches the client.
"""

from http import HTTPStatus
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "validation_error"
INTERNAL_SERVER_ERROR = "internal_server_error"


def _title(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def problem_response(
    request: Request,
    status: int,
    *,
    detail: Any = None,
    code: Optional[str] = None,
    errors: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "type": "about:blank",
        "title": _title(status),
        "status": status,
        "detail": detail if detail is not None else "",
        "instance": request.url.path,
    }
    if code:
        body["code"] = code
        body["error"] = code
    if errors:
        body["errors"] = jsonable_encoder(errors)
    return JSONResponse(body, status_code=status, headers=dict(headers) if headers else None)


def _unpack_detail(detail: Any) -> Tuple[Optional[str], Optional[str], Any]:
    """Split an HTTPException detail into (message, code, errors)."""
    if isinstance(detail, dict):
        code = detail.get("code")
        message = detail.get("message") or detail.get("detail")
        return (
            message if isinstance(message, str) else None,
            code if isinstance(code, str) else None,
            detail.get("details") or detail.get("errors"),
        )
    if detail is None:
        return None, None, None
    return str(detail), None, None


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message, code, errors = _unpack_detail(exc.detail)
        return problem_response(
            request,
            exc.status_code,
            detail=message,
            code=code,
            errors=errors,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        # to_http_exception decides what is safe to show (ServiceException hides its message)
        http_exc = exc.to_http_exception()
        message, code, errors = _unpack_detail(http_exc.detail)
        return problem_response(
            request, http_exc.status_code, detail=message, code=code, errors=errors
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = jsonable_encoder(exc.errors())
        return problem_response(
            request, 422, detail=errors, code=VALIDATION_ERROR, errors=errors
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled error on {request.method} {request.url.path}: {str(exc)}",
            exc_info=True,
        )
        return problem_response(
            request, 500, detail="Internal Server Error", code=INTERNAL_SERVER_ERROR
        )

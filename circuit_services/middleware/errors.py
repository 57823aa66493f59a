from __future__ import annotations

"""
Exception -> JSON mappers for FastAPI.

Every error response has the same body:

    {
      "success": false,
      "error": "<message>",
      "code": "<stable machine code>",
      "errors": [...],            # pipeline errors: verbatim tool lines
      "formattedErrors": "...",   # pipeline errors: grouped rendering
      "details": {...},           # optional
      "request_id": "<id>"
    }

- ``ApiError`` subclasses render through their own ``to_body()``.
- HTTP and request-validation errors are mapped to ``http_error`` /
  ``validation_error``.
- Anything else becomes a 500 with a generic message; the stack trace goes to
  the log, never to the client.
"""

from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import ApiError
from ..logging import get_logger

log = get_logger(__name__)


def _with_request_id(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    body["request_id"] = getattr(request.state, "request_id", "") or ""
    return body


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    body = _with_request_id(request, exc.to_body())
    event = {"path": request.url.path, "status": exc.status_code, "code": exc.code, "error": exc.message}
    if exc.status_code >= 500:
        log.error("api_error", **event)
    else:
        log.warning("api_error", **event)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body))


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = _with_request_id(
        request,
        {"success": False, "error": str(exc.detail or "HTTP error"), "code": "http_error"},
    )
    (log.warning if exc.status_code < 500 else log.error)(
        "http_exception", path=request.url.path, status=exc.status_code
    )
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = jsonable_encoder(exc.errors())
    lines = [f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in problems]
    body = _with_request_id(
        request,
        {
            "success": False,
            "error": "Request validation failed",
            "code": "validation_error",
            "errors": lines,
            "details": {"errors": problems},
        },
    )
    log.warning("validation_error", path=request.url.path, errors=lines)
    return JSONResponse(status_code=422, content=body)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    err = ApiError.from_unexpected(exc)
    body = _with_request_id(request, {"success": False, "error": err.message, "code": err.code})
    log.exception("unhandled_exception", path=request.url.path, exc_type=exc.__class__.__name__)
    return JSONResponse(status_code=500, content=body)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _handle_api_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected_error)


__all__ = ["install_error_handlers"]

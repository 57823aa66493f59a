from __future__ import annotations

"""
Request id middleware.

- Reuses an inbound ``X-Request-Id`` (when it looks sane) or generates one.
- Stores it on ``request.state.request_id`` so error bodies can echo it.
- Binds it into structlog's contextvars for the duration of the request, so
  every log line emitted while serving the request carries it.
- Echoes it back in the ``X-Request-Id`` response header.
"""

import re
import uuid

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from structlog.contextvars import bind_contextvars, unbind_contextvars

HEADER = "X-Request-Id"
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, header: str = HEADER):
        super().__init__(app)
        self.header = header

    async def dispatch(self, request: Request, call_next):
        inbound = request.headers.get(self.header)
        req_id = inbound if inbound and _SAFE_ID.match(inbound) else uuid.uuid4().hex

        request.state.request_id = req_id
        bind_contextvars(request_id=req_id)
        try:
            response: Response = await call_next(request)
        finally:
            unbind_contextvars("request_id")

        response.headers[self.header] = req_id
        return response


def install_request_id_middleware(app: FastAPI, *, header: str = HEADER) -> None:
    app.add_middleware(RequestIdMiddleware, header=header)


__all__ = ["RequestIdMiddleware", "install_request_id_middleware", "HEADER"]

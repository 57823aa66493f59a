from __future__ import annotations

"""
Access logging middleware.

One structured line per request: method, path, route template, status,
latency_ms, rx/tx bytes, client ip. The request id is merged in by the
structlog contextvars processor.
"""

import time
from typing import Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ..logging import get_logger

log = get_logger("circuit_services.access")

# Probe and scrape endpoints are logged at debug level only.
_QUIET_PATHS = frozenset({"/healthz", "/readyz", "/metrics"})


def _client_ip(request: Request) -> str:
    fwd = request.headers.get("x-forwarded-for")
    if fwd:
        return fwd.split(",")[0].strip()
    return request.client.host if request.client else ""


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    if route is None:
        return ""
    return getattr(route, "path_format", None) or getattr(route, "path", "") or ""


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_ns = time.perf_counter_ns()
        try:
            rx_bytes = int(request.headers.get("content-length") or 0)
        except ValueError:
            rx_bytes = 0

        response: Response = await call_next(request)

        latency_ms = (time.perf_counter_ns() - start_ns) / 1e6
        try:
            tx_bytes = int(response.headers.get("content-length") or 0)
        except ValueError:
            tx_bytes = 0

        path = request.url.path
        emit = log.debug if path in _QUIET_PATHS else log.info
        emit(
            "http_access",
            method=request.method,
            path=path,
            route=_route_template(request),
            status=response.status_code,
            latency_ms=round(latency_ms, 2),
            rx_bytes=rx_bytes,
            tx_bytes=tx_bytes,
            client_ip=_client_ip(request),
        )
        return response


def install_access_log_middleware(app: FastAPI) -> None:
    app.add_middleware(AccessLogMiddleware)


__all__ = ["AccessLogMiddleware", "install_access_log_middleware"]

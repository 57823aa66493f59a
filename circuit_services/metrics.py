from __future__ import annotations

"""
Prometheus metrics for Circuit Services.

Two groups of series live in one registry:

- HTTP: ``http_requests_total{method,path,status}``,
  ``http_request_duration_seconds`` and ``http_inprogress_requests``, recorded
  by ``PrometheusMiddleware`` with route templates as ``path``.
- Pipeline: ``zk_stage_duration_seconds{stage,proving_system,outcome}`` for
  compile / setup / witness / prove / verify, recorded by the services through
  ``stage_timer``.

Usage
-----
    from circuit_services.metrics import setup_metrics

    metrics = setup_metrics(app, service_version="0.3.0")   # mounts /metrics

    with stage_timer(metrics, "prove", "groth16"):
        ...

Env
---
- PROMETHEUS_MULTIPROC_DIR: use the multiprocess collector (gunicorn workers).
- METRICS_PATH: override the default ``/metrics`` path.
"""

import os
import time
from contextlib import contextmanager, nullcontext
from typing import Any, ContextManager, Dict, Iterator, Optional

from fastapi import APIRouter, FastAPI
from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Gauge, Histogram, Info, PlatformCollector,
                               ProcessCollector, generate_latest, multiprocess)
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

HTTP_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
# Compile/setup of larger circuits takes minutes.
STAGE_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0)


class Metrics:
    """Registry plus metric objects; exposed as ``app.state.metrics``."""

    def __init__(self, service_name: str = "circuit-services", service_version: Optional[str] = None) -> None:
        self.multiproc_dir = os.getenv("PROMETHEUS_MULTIPROC_DIR")
        self.registry = CollectorRegistry()
        if self.multiproc_dir:
            multiprocess.MultiProcessCollector(self.registry)
        else:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)

        gauge_kwargs: Dict[str, Any] = {"registry": self.registry}
        if self.multiproc_dir:
            gauge_kwargs["multiprocess_mode"] = "livesum"

        self.http_inprogress = Gauge(
            "http_inprogress_requests", "In-progress HTTP requests", ["method", "path"], **gauge_kwargs
        )
        self.http_requests_total = Counter(
            "http_requests_total", "Total HTTP requests", ["method", "path", "status"], registry=self.registry
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "path", "status"],
            buckets=HTTP_BUCKETS,
            registry=self.registry,
        )
        self.stage_duration_seconds = Histogram(
            "zk_stage_duration_seconds",
            "Duration of artifact-pipeline stages in seconds",
            ["stage", "proving_system", "outcome"],
            buckets=STAGE_BUCKETS,
            registry=self.registry,
        )

        if not self.multiproc_dir:
            info = Info("service", "Service metadata", registry=self.registry)
            payload = {"name": service_name}
            if service_version:
                payload["version"] = service_version
            info.info(payload)

    def observe_stage(self, stage: str, proving_system: str, outcome: str, seconds: float) -> None:
        self.stage_duration_seconds.labels(stage, proving_system, outcome).observe(seconds)

    def render_latest(self) -> bytes:
        return generate_latest(self.registry)


@contextmanager
def _timed(metrics: Metrics, stage: str, proving_system: str) -> Iterator[None]:
    start = time.perf_counter()
    outcome = "error"
    try:
        yield
        outcome = "ok"
    finally:
        metrics.observe_stage(stage, proving_system, outcome, time.perf_counter() - start)


def stage_timer(metrics: Optional[Metrics], stage: str, proving_system: str = "none") -> ContextManager[None]:
    """Time a pipeline stage; a no-op when no metrics are wired (CLI, tests)."""
    if metrics is None:
        return nullcontext()
    return _timed(metrics, stage, proving_system)


# ------------------------------ Middleware -----------------------------------


def _path_template(scope: Scope) -> str:
    route = scope.get("route")
    for attr in ("path_format", "path"):
        val = getattr(route, attr, None) if route is not None else None
        if isinstance(val, str) and val:
            return val
    return scope.get("path") or "unknown"


class PrometheusMiddleware:
    def __init__(self, app: ASGIApp, metrics: Metrics):
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        start = time.perf_counter()
        status_code = 500

        async def send_wrapped(message: Dict[str, Any]) -> None:
            nonlocal status_code
            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
            await send(message)

        # The route is only resolved once routing ran, so labels are read afterwards.
        inprogress_path = scope.get("path") or "unknown"
        self.metrics.http_inprogress.labels(method, inprogress_path).inc()
        try:
            await self.app(scope, receive, send_wrapped)
        finally:
            self.metrics.http_inprogress.labels(method, inprogress_path).dec()
            labels = (method, _path_template(scope), str(status_code))
            self.metrics.http_requests_total.labels(*labels).inc()
            self.metrics.http_request_duration_seconds.labels(*labels).observe(time.perf_counter() - start)


def create_metrics_router(metrics: Metrics, path: str = "/metrics") -> APIRouter:
    router = APIRouter()

    @router.get(path, include_in_schema=False)
    async def metrics_endpoint() -> Response:
        return Response(content=metrics.render_latest(), media_type=CONTENT_TYPE_LATEST)

    return router


def setup_metrics(
    app: FastAPI,
    *,
    service_name: str = "circuit-services",
    service_version: Optional[str] = None,
    path: Optional[str] = None,
) -> Metrics:
    """Create the registry, add the middleware, mount the exporter, store on ``app.state``."""
    metrics = Metrics(service_name=service_name, service_version=service_version)
    app.add_middleware(PrometheusMiddleware, metrics=metrics)
    app.include_router(create_metrics_router(metrics, path or os.getenv("METRICS_PATH") or "/metrics"))
    app.state.metrics = metrics
    return metrics


__all__ = ["Metrics", "PrometheusMiddleware", "create_metrics_router", "setup_metrics", "stage_timer"]

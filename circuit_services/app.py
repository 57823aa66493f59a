from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from .config import Config, load_config
from .logging import get_logger, setup_logging
from .metrics import setup_metrics
from .middleware.errors import install_error_handlers
from .middleware.logging import install_access_log_middleware
from .middleware.request_id import HEADER as REQUEST_ID_HEADER
from .middleware.request_id import install_request_id_middleware
from .routers import build_router
from .services import Services, build_services
from .version import __version__

log = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log startup, close the ledger client on shutdown."""
    services: Services = app.state.services
    log.info(
        "service_started",
        version=__version__,
        workspace=str(services.workspace.root),
        ledger=type(services.ledger).__name__,
    )
    try:
        yield
    finally:
        close = getattr(services.ledger, "close", None)
        if callable(close):
            close()
        log.info("service_stopped")


def create_app(config: Optional[Config] = None, *, services: Optional[Services] = None) -> FastAPI:
    """
    FastAPI factory. Mounts routers, middleware, metrics and error mapping.

    ``services`` may be injected (tests pass a bundle built around a fake
    process runner); otherwise one is built from ``config``.
    """
    cfg = config or load_config()
    setup_logging(level=cfg.log_level, log_format=cfg.log_format)

    app = FastAPI(
        title="Circuit Services",
        version=__version__,
        description="Circom compile, key ceremony, proving, verification and ledger submission.",
        lifespan=_lifespan,
    )
    app.state.config = cfg

    # Core middleware stack; the last one added runs first.
    install_access_log_middleware(app)
    install_request_id_middleware(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
        allow_credentials=False,
        max_age=600,
    )

    install_error_handlers(app)

    metrics = setup_metrics(app, service_name="circuit-services", service_version=__version__)
    app.state.services = services or build_services(cfg, metrics=metrics)

    app.include_router(build_router())
    return app


__all__ = ["create_app"]

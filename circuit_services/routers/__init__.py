"""
Routers package: aggregates all HTTP routes into a single APIRouter.

Usage (from app factory):
    from circuit_services.routers import build_router
    app.include_router(build_router())
"""

from __future__ import annotations

from fastapi import APIRouter

from .circuits import router as circuits_router
from .health import router as health_router
from .ledger import router as ledger_router
from .proofs import router as proofs_router

# Order controls route declaration order and OpenAPI grouping.
ROUTERS = (health_router, circuits_router, proofs_router, ledger_router)


def build_router() -> APIRouter:
    root = APIRouter()
    for r in ROUTERS:
        root.include_router(r)
    return root


__all__ = ["ROUTERS", "build_router"]

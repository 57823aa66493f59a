from __future__ import annotations

from fastapi import Request

from ..services import Services


def get_services(request: Request) -> Services:
    """Service bundle wired by the app factory."""
    return request.app.state.services


__all__ = ["get_services"]

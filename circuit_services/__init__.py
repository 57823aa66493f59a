"""
Circuit Services
================

Circom/snarkjs artifact pipeline behind a FastAPI surface and a typer CLI:
precheck + compile, key ceremony, witness/proof, verification and ledger
submission.

Entry points: ``circuit_services.app:create_app`` (ASGI factory),
``circuit_services.cli:app`` (``circuit-services`` command) and
``circuit_services.services.build_services`` for library use.
"""

from __future__ import annotations

from .version import __version__

__all__ = ["__version__"]

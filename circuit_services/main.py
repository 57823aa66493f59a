"""
Uvicorn launcher for Circuit Services.

Usage:
  python -m circuit_services.main [--host 0.0.0.0] [--port 8080]
                                  [--workers 1] [--reload]
                                  [--log-level info]

Defaults come from the service settings (HOST, PORT, LOG_LEVEL).
"""

from __future__ import annotations

import argparse
import os
from typing import Optional

import uvicorn

from .config import load_config


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "y", "on")


def main(argv: Optional[list[str]] = None) -> None:
    cfg = load_config()

    parser = argparse.ArgumentParser(description="Run Circuit Services (uvicorn)")
    parser.add_argument("--host", default=cfg.host, help="Bind address (default: %(default)s)")
    parser.add_argument("--port", type=int, default=cfg.port, help="Port (default: %(default)s)")
    parser.add_argument("--workers", type=int, default=int(os.getenv("WORKERS") or 1), help="Number of workers (default: %(default)s)")
    parser.add_argument("--reload", action="store_true", default=_env_bool("RELOAD", False), help="Enable autoreload (dev only)")
    parser.add_argument("--log-level", default=cfg.log_level.lower(), help="Log level for uvicorn (default: %(default)s)")
    parser.add_argument("--proxy-headers", action="store_true", default=True, help="Use X-Forwarded-* headers (default: on)")
    parser.add_argument("--forwarded-allow-ips", default="*", help="Comma list of trusted proxies (default: *)")

    args = parser.parse_args(argv)

    # reload and workers>1 are mutually exclusive; prefer reload for dev.
    if args.reload and args.workers != 1:
        print("[circuit-services] --reload implies --workers=1; overriding.")
        args.workers = 1

    # Factory import string: each worker builds its own app and services.
    uvicorn.run(
        "circuit_services.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        proxy_headers=args.proxy_headers,
        forwarded_allow_ips=args.forwarded_allow_ips,
        reload=args.reload,
        workers=args.workers,
    )


if __name__ == "__main__":
    main()

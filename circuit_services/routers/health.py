from __future__ import annotations

import os
import shutil
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from fastapi import APIRouter, Request, Response, status

from .. import version as svc_version
from ..config import Config
from ..errors import ToolUnavailableError
from ..logging import get_logger

log = get_logger(__name__)
router = APIRouter(tags=["health"])

_PROCESS_START = time.time()


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uptime_seconds() -> float:
    return max(0.0, time.time() - _PROCESS_START)


def _check_workspace(root) -> Tuple[bool, Dict[str, Any]]:
    """
    Workspace liveness: the root exists and is writable. Readiness never
    creates the directory.
    """
    info: Dict[str, Any] = {"path": str(root)}
    if not os.path.isdir(root):
        info.update(error="directory missing")
        return False, info
    probe = os.path.join(root, ".rw_probe")
    try:
        with open(probe, "wb") as f:
            f.write(b"ok")
        os.remove(probe)
    except OSError as e:
        info.update(error=str(e))
        return False, info
    return True, info


def _check_tool(command: str) -> Tuple[bool, Dict[str, Any]]:
    found = shutil.which(command)
    if found is None:
        return False, {"command": command, "error": "not found on PATH"}
    return True, {"command": command, "path": found}


def _version_blob() -> Dict[str, Any]:
    return {
        "service": "circuit-services",
        "version": svc_version.__version__,
        "build": svc_version.build_version(),
        "git": svc_version.git_describe(),
        "python": {
            "version": "{}.{}.{}".format(*sys.version_info[:3]),
            "impl": sys.implementation.name,
        },
        "started_at": datetime.fromtimestamp(_PROCESS_START, tz=timezone.utc).isoformat(),
        "now": _utcnow_iso(),
        "uptime_seconds": round(_uptime_seconds(), 3),
    }


@router.get("/healthz", summary="Liveness probe", response_model=None)
def healthz() -> Dict[str, Any]:
    """Always 200 while the process is serving requests."""
    return {"status": "ok", **_version_blob()}


@router.get("/version", summary="Service version", response_model=None)
def version(request: Request) -> Dict[str, Any]:
    meta = _version_blob()
    services = getattr(request.app.state, "services", None)
    if services is not None:
        try:
            meta["circom"] = services.compiler.circom.version()
        except ToolUnavailableError:
            meta["circom"] = None
    return meta


@router.get("/readyz", summary="Readiness probe", response_model=None)
def readyz(request: Request, response: Response) -> Dict[str, Any]:
    """
    Workspace writable and both toolchains resolvable on PATH.
    200 when every check passes; 503 otherwise.
    """
    cfg: Config = request.app.state.config
    checks: Dict[str, Dict[str, Any]] = {}

    ok, info = _check_workspace(cfg.workspace_dir)
    checks["workspace"] = {"ok": ok, **info}

    ok, info = _check_tool(cfg.circom_bin)
    checks["circom"] = {"ok": ok, **info}

    snarkjs_argv = cfg.snarkjs_argv
    ok, info = _check_tool(snarkjs_argv[0] if snarkjs_argv else "snarkjs")
    checks["snarkjs"] = {"ok": ok, **info}

    ok_all = all(c["ok"] for c in checks.values())
    if not ok_all:
        log.warning("readiness_degraded", failing=[k for k, c in checks.items() if not c["ok"]])
    response.status_code = status.HTTP_200_OK if ok_all else status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ok" if ok_all else "degraded",
        "now": _utcnow_iso(),
        "uptime_seconds": round(_uptime_seconds(), 3),
        "checks": checks,
    }


__all__ = ["router"]

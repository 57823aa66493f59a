from __future__ import annotations

"""
Circuit routes

Endpoints:
  - POST   /zk/compile                  : precheck + compile a circuit source
  - POST   /zk/validate-circuit         : diagnostics only, no artifacts kept
  - GET    /zk/artifacts/{name}         : artifact paths and stored stats
  - POST   /zk/setup-circuit            : derive (or reuse) proving/verification keys
  - GET    /zk/verification-key/{name}  : stored verification key
  - DELETE /zk/cleanup/{name}           : remove source, artifacts, keys, witnesses

Handlers are plain ``def`` so FastAPI runs them in its threadpool; the
services block on external processes.
"""

from fastapi import APIRouter, Depends, Path, Query

from ..models.circuits import (
    ArtifactPaths,
    ArtifactsResponse,
    CircuitStatsModel,
    CleanupResponse,
    CompileRequest,
    CompileResponse,
    SetupRequest,
    SetupResponse,
    ValidateCircuitRequest,
    ValidateCircuitResponse,
    VerificationKeyResponse,
)
from ..models.common import CIRCUIT_NAME_PATTERN, ErrorBody, ProvingSystemName
from ..services import Services
from .deps import get_services

router = APIRouter(prefix="/zk", tags=["circuits"], responses={400: {"model": ErrorBody}, 404: {"model": ErrorBody}})

NamePath = Path(..., pattern=CIRCUIT_NAME_PATTERN, description="Circuit name")


@router.post("/compile", summary="Compile a Circom circuit", response_model=CompileResponse)
def compile_circuit(req: CompileRequest, svc: Services = Depends(get_services)) -> CompileResponse:
    result = svc.compiler.compile(req.circuit_code, req.circuit_name, req.options.to_options())
    return CompileResponse(
        message="Circuit compiled",
        circuit_name=result.circuit_name,
        artifacts=ArtifactPaths.from_artifacts(result.artifacts),
        stats=CircuitStatsModel.from_stats(result.stats),
        warnings=result.warnings,
        compilation_time_ms=round(result.duration_ms, 1),
    )


@router.post(
    "/validate-circuit",
    summary="Validate circuit syntax without keeping artifacts",
    response_model=ValidateCircuitResponse,
)
def validate_circuit(req: ValidateCircuitRequest, svc: Services = Depends(get_services)) -> ValidateCircuitResponse:
    out = svc.compiler.validate_syntax(req.circuit_code, req.circuit_name)
    return ValidateCircuitResponse(
        valid=out["valid"],
        errors=out["errors"],
        warnings=out["warnings"],
        formatted_errors=out["formatted"],
    )


@router.get(
    "/artifacts/{name}",
    summary="List compiled artifacts for a circuit",
    response_model=ArtifactsResponse,
)
def get_artifacts(name: str = NamePath, svc: Services = Depends(get_services)) -> ArtifactsResponse:
    artifacts = svc.compiler.get_artifacts(name)
    return ArtifactsResponse(
        circuit_name=name,
        artifacts=ArtifactPaths.from_artifacts(artifacts),
        stats=CircuitStatsModel.from_stats(svc.compiler.get_stats(name)),
    )


@router.post(
    "/setup-circuit",
    summary="Run (or reuse) the key ceremony for a compiled circuit",
    response_model=SetupResponse,
)
def setup_circuit(req: SetupRequest, svc: Services = Depends(get_services)) -> SetupResponse:
    artifacts = svc.compiler.require(req.circuit_name, "r1cs")
    if req.force:
        key = svc.ceremony.setup_circuit(req.circuit_name, artifacts.r1cs, req.proving_system)
    else:
        key = svc.ceremony.get_or_create_key(req.circuit_name, artifacts.r1cs, req.proving_system)
    return SetupResponse(
        message="Keys generated" if key.regenerated else "Existing keys are current",
        circuit_name=key.circuit_name,
        proving_system=key.proving_system,
        zkey_path=str(key.proving_key),
        verification_key_path=str(key.verification_key),
        ptau_path=str(key.universal_setup) if key.universal_setup else None,
        ptau_power=key.ptau_power,
        regenerated=key.regenerated,
        duration_ms=round(key.duration_ms, 1),
    )


@router.get(
    "/verification-key/{name}",
    summary="Fetch the stored verification key",
    response_model=VerificationKeyResponse,
)
def get_verification_key(
    name: str = NamePath,
    proving_system: ProvingSystemName = Query("groth16", alias="provingSystem"),
    svc: Services = Depends(get_services),
) -> VerificationKeyResponse:
    vk = svc.ceremony.load_verification_key(name, proving_system)
    return VerificationKeyResponse(circuit_name=name, proving_system=proving_system, verification_key=vk)


@router.delete(
    "/cleanup/{name}",
    summary="Delete everything stored for a circuit",
    response_model=CleanupResponse,
)
def cleanup(name: str = NamePath, svc: Services = Depends(get_services)) -> CleanupResponse:
    removed = dict(svc.compiler.clean(name))
    removed["keys"] = svc.ceremony.clean(name)
    removed["witnesses"] = svc.prover.clean(name)
    return CleanupResponse(message="Circuit cleaned", circuit_name=name, removed=removed)


__all__ = ["router"]

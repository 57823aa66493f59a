from __future__ import annotations

"""
Proof routes

Endpoints:
  - POST /zk/calculate-witness         : run the wasm witness calculator
  - POST /zk/generate-proof            : prove (keys derived on demand)
  - POST /zk/verify-proof              : structural check, then snarkjs verify
  - POST /zk/validate-proof-structure  : structural check only
"""

from fastapi import APIRouter, Depends

from ..models.common import ErrorBody
from ..models.proofs import (
    GenerateProofRequest,
    ProofResponse,
    ValidateStructureRequest,
    ValidateStructureResponse,
    VerifyProofRequest,
    VerifyProofResponse,
    WitnessRequest,
    WitnessResponse,
)
from ..services import Services
from .deps import get_services

router = APIRouter(prefix="/zk", tags=["proofs"], responses={400: {"model": ErrorBody}, 404: {"model": ErrorBody}})


@router.post("/calculate-witness", summary="Calculate a witness for the given inputs", response_model=WitnessResponse)
def calculate_witness(req: WitnessRequest, svc: Services = Depends(get_services)) -> WitnessResponse:
    artifacts = svc.compiler.require(req.circuit_name, "wasm")
    witness = svc.prover.calculate_witness(req.circuit_name, artifacts.wasm, req.inputs)
    values = svc.prover.witness_values(witness) if req.include_values else None
    return WitnessResponse(circuit_name=req.circuit_name, witness_path=str(witness), witness=values)


@router.post("/generate-proof", summary="Generate a proof", response_model=ProofResponse)
def generate_proof(req: GenerateProofRequest, svc: Services = Depends(get_services)) -> ProofResponse:
    artifacts = svc.compiler.require(req.circuit_name, "r1cs", "wasm")
    key = svc.ceremony.get_or_create_key(req.circuit_name, artifacts.r1cs, req.proving_system)
    if req.mode == "witness":
        witness = svc.prover.calculate_witness(req.circuit_name, artifacts.wasm, req.inputs)
        result = svc.prover.prove(req.circuit_name, key.proving_key, witness, req.proving_system)
    else:
        result = svc.prover.full_prove(
            req.circuit_name, artifacts.wasm, key.proving_key, req.inputs, req.proving_system
        )
    return ProofResponse(
        circuit_name=req.circuit_name,
        proof=result.proof,
        public_signals=result.public_signals,
        proving_system=result.proving_system,
        generation_time_ms=round(result.duration_ms, 1),
    )


@router.post("/verify-proof", summary="Verify a proof", response_model=VerifyProofResponse)
def verify_proof(req: VerifyProofRequest, svc: Services = Depends(get_services)) -> VerifyProofResponse:
    svc.verifier.ensure_structure(req.proof, req.proving_system)
    if req.verification_key is not None:
        result = svc.verifier.verify(req.verification_key, req.public_signals, req.proof, req.proving_system)
    else:
        result = svc.verifier.verify_with_stored_key(
            req.circuit_name, req.public_signals, req.proof, req.proving_system
        )
    return VerifyProofResponse(
        message="Proof is valid" if result.verified else "Proof is invalid",
        verified=result.verified,
        verification_time_ms=round(result.duration_ms, 1),
        diagnostic=result.diagnostic,
        details=result.details,
    )


@router.post(
    "/validate-proof-structure",
    summary="Check a proof object's shape without verifying it",
    response_model=ValidateStructureResponse,
)
def validate_proof_structure(
    req: ValidateStructureRequest, svc: Services = Depends(get_services)
) -> ValidateStructureResponse:
    valid, errors = svc.verifier.validate_structure(req.proof, req.proving_system)
    return ValidateStructureResponse(valid=valid, errors=errors)


__all__ = ["router"]

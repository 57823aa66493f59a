from __future__ import annotations

"""
Ledger routes

Endpoints:
  - POST /zk/submit-to-ledger  : record a proof hash against a task
  - POST /zk/mint-achievement  : complete a task and mint its achievement token
  - POST /zk/complete          : compile -> key -> prove -> verify -> ledger in one call

The ledger only ever sees a sha256 digest of the canonical proof JSON.
"""

from fastapi import APIRouter, Depends

from ..adapters.ledger import ProofSubmission
from ..models.circuits import CircuitStatsModel
from ..models.common import ErrorBody
from ..models.proofs import (
    CompleteRequestModel,
    CompleteResponse,
    CompleteStats,
    LedgerSubmitRequest,
    LedgerSubmitResponse,
    MintAchievementRequest,
    MintAchievementResponse,
)
from ..services import Services
from ..services.pipeline import CompleteRequest
from ..services.verifier import json_digest
from .deps import get_services

router = APIRouter(
    prefix="/zk",
    tags=["ledger"],
    responses={400: {"model": ErrorBody}, 502: {"model": ErrorBody}},
)


@router.post("/submit-to-ledger", summary="Submit a proof hash to the ledger", response_model=LedgerSubmitResponse)
def submit_to_ledger(req: LedgerSubmitRequest, svc: Services = Depends(get_services)) -> LedgerSubmitResponse:
    proof_hash = json_digest(req.proof)
    tx = svc.ledger.submit_proof(
        ProofSubmission(task_id=req.task_id, user_id=req.user_id, proof_hash=proof_hash, metadata=req.metadata)
    )
    return LedgerSubmitResponse(message="Proof submitted", transaction_id=tx, proof_hash=proof_hash)


@router.post(
    "/mint-achievement",
    summary="Complete a task and mint its achievement",
    response_model=MintAchievementResponse,
)
def mint_achievement(req: MintAchievementRequest, svc: Services = Depends(get_services)) -> MintAchievementResponse:
    proof_hash = json_digest(req.proof)
    receipt = svc.ledger.complete_task(req.task_id, proof_hash, req.user_id, req.recipient)
    return MintAchievementResponse(
        message="Achievement minted",
        transaction_id=receipt.transaction_id,
        token_serial=receipt.token_serial,
        proof_hash=proof_hash,
    )


@router.post("/complete", summary="Run the whole pipeline for one circuit", response_model=CompleteResponse)
def complete(req: CompleteRequestModel, svc: Services = Depends(get_services)) -> CompleteResponse:
    result = svc.pipeline.complete(
        CompleteRequest(
            circuit_name=req.circuit_name,
            source=req.circuit_code,
            inputs=req.inputs,
            proving_system=req.proving_system,
            options=req.options.to_options(),
            task_id=req.task_id,
            user_id=req.user_id,
            recipient=req.recipient,
        )
    )
    receipt = result.receipt
    return CompleteResponse(
        message="Pipeline completed",
        circuit_name=req.circuit_name,
        proof=result.proof.proof,
        public_signals=result.proof.public_signals,
        verified=result.verification.verified,
        proof_hash=result.proof_hash,
        transaction_id=receipt.transaction_id if receipt else None,
        token_serial=receipt.token_serial if receipt else None,
        stats=CompleteStats(
            compilation=CircuitStatsModel.from_stats(result.compile.stats),
            timings_ms={k: round(v, 1) for k, v in result.timings_ms.items()},
        ),
    )


__all__ = ["router"]

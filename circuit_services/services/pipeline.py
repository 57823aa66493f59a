"""
Pipeline orchestrator: compile -> key -> full prove -> verification key ->
verify -> ledger.

Stops at the first failing stage by letting that stage's error propagate. A
proof that verifies cleanly to False is turned into ``VerificationFailure``.
Nothing is rolled back: a compiled circuit or derived key stays cached. A
retry with the same source and options skips compilation, so the r1cs keeps
its mtime and the key derived from it is reused.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ..adapters.circom import CompileOptions
from ..adapters.ledger import LedgerClient, LedgerReceipt
from ..adapters.snarkjs import ProvingSystem
from ..errors import ArtifactMissingError, VerificationFailure
from ..logging import get_logger
from .ceremony import CeremonyService
from .compiler import CompilerService, CompileResult
from .prover import ProofResult, ProverService, check_proving_system
from .verifier import VerificationResult, VerifierService, json_digest

log = get_logger(__name__)


@dataclass
class CompleteRequest:
    circuit_name: str
    source: str
    inputs: Mapping[str, Any]
    proving_system: ProvingSystem = "groth16"
    options: CompileOptions = field(default_factory=CompileOptions)
    task_id: Optional[str] = None
    user_id: Optional[str] = None
    recipient: Optional[str] = None


@dataclass
class CompleteResult:
    compile: CompileResult
    proof: ProofResult
    verification: VerificationResult
    verification_key: Dict[str, Any]
    proof_hash: str
    receipt: Optional[LedgerReceipt] = None
    timings_ms: Dict[str, float] = field(default_factory=dict)


class Pipeline:
    def __init__(
        self,
        compiler: CompilerService,
        ceremony: CeremonyService,
        prover: ProverService,
        verifier: VerifierService,
        ledger: Optional[LedgerClient] = None,
    ) -> None:
        self.compiler = compiler
        self.ceremony = ceremony
        self.prover = prover
        self.verifier = verifier
        self.ledger = ledger

    def complete(self, req: CompleteRequest) -> CompleteResult:
        system = check_proving_system(req.proving_system)
        timings: Dict[str, float] = {}
        log.info("pipeline_started", circuit=req.circuit_name, proving_system=system, task_id=req.task_id)

        t = time.perf_counter()
        compiled = self.compiler.ensure_compiled(req.source, req.circuit_name, req.options)
        timings["compile"] = (time.perf_counter() - t) * 1000.0
        if compiled.artifacts.r1cs is None or compiled.artifacts.wasm is None:
            raise ArtifactMissingError(
                "Pipeline needs both the r1cs and the wasm witness calculator",
                details={"circuitName": req.circuit_name, "artifacts": compiled.artifacts.to_dict()},
            )

        t = time.perf_counter()
        key = self.ceremony.get_or_create_key(req.circuit_name, compiled.artifacts.r1cs, system)
        timings["setup"] = (time.perf_counter() - t) * 1000.0

        proof = self.prover.full_prove(req.circuit_name, compiled.artifacts.wasm, key.proving_key, req.inputs, system)
        timings["prove"] = proof.duration_ms

        vk = self.ceremony.export_verification_key(key.proving_key, key.verification_key)

        verification = self.verifier.verify(vk, proof.public_signals, proof.proof, system)
        timings["verify"] = verification.duration_ms
        if not verification.verified:
            raise VerificationFailure(
                "Proof verification failed",
                errors=[verification.diagnostic or "The generated proof is invalid"],
                details={"circuitName": req.circuit_name, "provingSystem": system},
            )

        proof_hash = json_digest(proof.proof)
        receipt = None
        if self.ledger is not None and req.task_id and req.user_id:
            t = time.perf_counter()
            receipt = self.ledger.complete_task(req.task_id, proof_hash, req.user_id, req.recipient)
            timings["ledger"] = (time.perf_counter() - t) * 1000.0

        log.info(
            "pipeline_completed",
            circuit=req.circuit_name,
            proving_system=system,
            transaction_id=receipt.transaction_id if receipt else None,
            **{f"{k}_ms": round(v, 1) for k, v in timings.items()},
        )
        return CompleteResult(
            compile=compiled,
            proof=proof,
            verification=verification,
            verification_key=vk,
            proof_hash=proof_hash,
            receipt=receipt,
            timings_ms=timings,
        )


__all__ = ["CompleteRequest", "CompleteResult", "Pipeline"]

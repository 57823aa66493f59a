from __future__ import annotations

"""
Proof models: witness, proof generation, verification, structure checks,
ledger submission and the composite "complete" operation.

Proofs and verification keys are opaque JSON objects here; their shape is
checked by the verifier service, not by these models.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from .circuits import CircuitStatsModel, CompileOptionsModel
from .common import ApiModel, CircuitName, Envelope, Inputs, ProvingSystemName


class WitnessRequest(ApiModel):
    circuit_name: CircuitName
    inputs: Inputs
    include_values: bool = False


class WitnessResponse(Envelope):
    circuit_name: str
    witness_path: str
    witness: Optional[List[str]] = None


class GenerateProofRequest(ApiModel):
    circuit_name: CircuitName
    inputs: Inputs
    proving_system: ProvingSystemName = "groth16"
    mode: str = Field(default="full", pattern="^(full|witness)$")


class ProofResponse(Envelope):
    circuit_name: str
    proof: Dict[str, Any]
    public_signals: List[str]
    proving_system: str
    generation_time_ms: float


class VerifyProofRequest(ApiModel):
    proof: Dict[str, Any]
    public_signals: Any
    proving_system: ProvingSystemName = "groth16"
    verification_key: Optional[Dict[str, Any]] = None
    circuit_name: Optional[CircuitName] = None

    @model_validator(mode="after")
    def _need_key_source(self) -> "VerifyProofRequest":
        if self.verification_key is None and self.circuit_name is None:
            raise ValueError("Provide either verificationKey or circuitName")
        return self


class VerifyProofResponse(Envelope):
    verified: bool
    verification_time_ms: float
    diagnostic: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class ValidateStructureRequest(ApiModel):
    proof: Any
    proving_system: ProvingSystemName = "groth16"


class ValidateStructureResponse(Envelope):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class LedgerSubmitRequest(ApiModel):
    proof: Dict[str, Any]
    task_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LedgerSubmitResponse(Envelope):
    transaction_id: str
    proof_hash: str


class MintAchievementRequest(ApiModel):
    proof: Dict[str, Any]
    task_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    recipient: Optional[str] = None


class MintAchievementResponse(Envelope):
    transaction_id: str
    token_serial: Optional[str] = None
    proof_hash: str


class CompleteRequestModel(ApiModel):
    circuit_code: str = Field(min_length=1)
    circuit_name: CircuitName
    inputs: Inputs
    proving_system: ProvingSystemName = "groth16"
    options: CompileOptionsModel = Field(default_factory=CompileOptionsModel)
    task_id: Optional[str] = None
    user_id: Optional[str] = None
    recipient: Optional[str] = None


class CompleteStats(ApiModel):
    compilation: Optional[CircuitStatsModel] = None
    timings_ms: Dict[str, float] = Field(default_factory=dict)


class CompleteResponse(Envelope):
    circuit_name: str
    proof: Dict[str, Any]
    public_signals: List[str]
    verified: bool
    proof_hash: str
    transaction_id: Optional[str] = None
    token_serial: Optional[str] = None
    stats: CompleteStats


__all__ = [
    "WitnessRequest",
    "WitnessResponse",
    "GenerateProofRequest",
    "ProofResponse",
    "VerifyProofRequest",
    "VerifyProofResponse",
    "ValidateStructureRequest",
    "ValidateStructureResponse",
    "LedgerSubmitRequest",
    "LedgerSubmitResponse",
    "MintAchievementRequest",
    "MintAchievementResponse",
    "CompleteRequestModel",
    "CompleteStats",
    "CompleteResponse",
]

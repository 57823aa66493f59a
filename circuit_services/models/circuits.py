from __future__ import annotations

"""
Circuit models: compile / validate requests, artifact and key responses.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from ..adapters.circom import CircuitStats, CompiledArtifacts, CompileOptions
from .common import ApiModel, CircuitName, Envelope, ProvingSystemName


class CompileOptionsModel(ApiModel):
    include_r1cs: bool = Field(True, alias="includeR1cs")
    include_wasm: bool = True
    include_sym: bool = True
    include_cpp: bool = False
    optimize: bool = True
    verbose: bool = False
    inspect: bool = False
    prime: Literal["bn128", "bls12381", "goldilocks"] = "bn128"

    def to_options(self) -> CompileOptions:
        return CompileOptions(
            r1cs=self.include_r1cs,
            wasm=self.include_wasm,
            sym=self.include_sym,
            c=self.include_cpp,
            optimize=self.optimize,
            verbose=self.verbose,
            inspect=self.inspect,
            prime=self.prime,
        )


class CompileRequest(ApiModel):
    circuit_code: str = Field(min_length=1)
    circuit_name: CircuitName
    options: CompileOptionsModel = Field(default_factory=CompileOptionsModel)


class ValidateCircuitRequest(ApiModel):
    circuit_code: str = Field(min_length=1)
    circuit_name: CircuitName


class ArtifactPaths(ApiModel):
    # to_camel turns a digit boundary into "r1Cs"
    r1cs: Optional[str] = Field(None, alias="r1cs")
    wasm: Optional[str] = None
    wasm_js: Optional[str] = None
    sym: Optional[str] = None
    cpp: Optional[str] = None

    @classmethod
    def from_artifacts(cls, artifacts: CompiledArtifacts) -> "ArtifactPaths":
        return cls(**artifacts.to_dict())


class CircuitStatsModel(ApiModel):
    constraints: int = 0
    linear_constraints: int = 0
    wires: int = 0
    public_inputs: int = 0
    private_inputs: int = 0
    outputs: int = 0
    labels: int = 0

    @classmethod
    def from_stats(cls, stats: Optional[CircuitStats]) -> Optional["CircuitStatsModel"]:
        return cls(**stats.to_dict()) if stats is not None else None


class CompileResponse(Envelope):
    circuit_name: str
    artifacts: ArtifactPaths
    stats: Optional[CircuitStatsModel] = None
    warnings: List[str] = Field(default_factory=list)
    compilation_time_ms: float = 0.0


class ValidateCircuitResponse(Envelope):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    formatted_errors: str = ""


class ArtifactsResponse(Envelope):
    circuit_name: str
    artifacts: ArtifactPaths
    stats: Optional[CircuitStatsModel] = None


class SetupRequest(ApiModel):
    circuit_name: CircuitName
    proving_system: ProvingSystemName = "groth16"
    force: bool = False


class SetupResponse(Envelope):
    circuit_name: str
    proving_system: str
    zkey_path: str
    verification_key_path: str
    ptau_path: Optional[str] = None
    ptau_power: Optional[int] = None
    regenerated: bool = False
    duration_ms: float = 0.0


class VerificationKeyResponse(Envelope):
    circuit_name: str
    proving_system: str
    verification_key: Dict[str, Any]


class CleanupResponse(Envelope):
    circuit_name: str
    removed: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "CompileOptionsModel",
    "CompileRequest",
    "ValidateCircuitRequest",
    "ArtifactPaths",
    "CircuitStatsModel",
    "CompileResponse",
    "ValidateCircuitResponse",
    "ArtifactsResponse",
    "SetupRequest",
    "SetupResponse",
    "VerificationKeyResponse",
    "CleanupResponse",
]

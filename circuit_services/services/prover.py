"""
Witness and proof generation through the snarkjs CLI.

Two modes:

- step-wise: ``calculate_witness`` writes ``witness/<name>_witness.wtns``,
  then ``prove`` turns (zkey, witness) into a proof; useful when a failing
  input needs to be told apart from a failing prover.
- ``full_prove``: inputs straight to proof, the default path.

Proofs are treated as opaque JSON; only the public signals are normalized to
a list of decimal strings. Durations cover the external call only.
"""

from __future__ import annotations

import json
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..adapters.snarkjs import (PROVING_SYSTEMS, ProvingSystem, SnarkjsCli,
                                raise_for_result)
from ..errors import ArtifactMissingError, BadRequest, ProvingError
from ..logging import get_logger
from ..metrics import Metrics, stage_timer
from ..workspace import Workspace, check_circuit_name

log = get_logger(__name__)


@dataclass
class ProofResult:
    proof: Dict[str, Any]
    public_signals: List[str]
    proving_system: str
    duration_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof": self.proof,
            "publicSignals": self.public_signals,
            "provingSystem": self.proving_system,
            "generationTimeMs": round(self.duration_ms, 1),
        }


def check_proving_system(system: str) -> ProvingSystem:
    if system not in PROVING_SYSTEMS:
        raise BadRequest(
            f"Unsupported proving system: {system}",
            details={"supported": list(PROVING_SYSTEMS)},
        )
    return system  # type: ignore[return-value]


def _require_file(path: Path, what: str) -> Path:
    path = Path(path)
    if not path.is_file():
        raise ArtifactMissingError(f"{what} not found: {path.name}", details={"path": str(path)})
    return path


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ProvingError(f"{what} was not written by the prover", errors=[str(e)]) from e
    except ValueError as e:
        raise ProvingError(f"{what} is not valid JSON", errors=[str(e)]) from e


class ProverService:
    def __init__(self, workspace: Workspace, snarkjs: SnarkjsCli, *, metrics: Optional[Metrics] = None) -> None:
        self.workspace = workspace
        self.snarkjs = snarkjs
        self.metrics = metrics

    def input_path(self, name: str) -> Path:
        return self.workspace.witness_dir / f"{check_circuit_name(name)}_input.json"

    def witness_path(self, name: str) -> Path:
        return self.workspace.witness_dir / f"{check_circuit_name(name)}_witness.wtns"

    # ------------------------------------------------------------- witness

    def calculate_witness(self, name: str, wasm: Path, inputs: Mapping[str, Any]) -> Path:
        wasm = _require_file(wasm, "Witness calculator")
        self.workspace.witness_dir.mkdir(parents=True, exist_ok=True)
        input_json = self.input_path(name)
        input_json.write_text(json.dumps(dict(inputs)), encoding="utf-8")
        out = self.witness_path(name)
        out.unlink(missing_ok=True)

        with stage_timer(self.metrics, "witness"):
            res = self.snarkjs.wtns_calculate(wasm, input_json, out)
        raise_for_result(res, ProvingError, "Witness calculation failed")
        if not out.is_file():
            raise ProvingError("Witness calculation produced no witness file", errors=res.lines() or None)
        log.info("witness_calculated", circuit=name, witness=out.name, duration_ms=round(res.duration_ms, 1))
        return out

    def witness_values(self, witness: Path) -> List[str]:
        """Full witness as decimal strings; index 0 is the constant 1."""
        witness = _require_file(witness, "Witness")
        out = witness.with_suffix(".json")
        res = self.snarkjs.wtns_export_json(witness, out)
        raise_for_result(res, ProvingError, "Witness export failed")
        values = _read_json(out, "Witness export")
        if not isinstance(values, list):
            raise ProvingError("Witness export is not a list of values")
        return [str(v) for v in values]

    # -------------------------------------------------------------- proofs

    def _collect(self, res, tmp: Path, system: str) -> Tuple[Dict[str, Any], List[str]]:
        raise_for_result(res, ProvingError, "Proof generation failed")
        proof = _read_json(tmp / "proof.json", "Proof")
        public = _read_json(tmp / "public.json", "Public signals")
        if not isinstance(proof, dict) or not isinstance(public, list):
            raise ProvingError("Prover output has an unexpected shape", details={"provingSystem": system})
        return proof, [str(s) for s in public]

    def prove(self, name: str, zkey: Path, witness: Path, system: ProvingSystem = "groth16") -> ProofResult:
        check_circuit_name(name)
        system = check_proving_system(system)
        zkey = _require_file(zkey, "Proving key")
        witness = _require_file(witness, "Witness")
        self.workspace.witness_dir.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix=f"{name}_prove_", dir=self.workspace.witness_dir) as d, \
                stage_timer(self.metrics, "prove", system):
            tmp = Path(d)
            t0 = time.perf_counter()
            res = self.snarkjs.prove(system, zkey, witness, tmp / "proof.json", tmp / "public.json")
            duration_ms = (time.perf_counter() - t0) * 1000.0
            proof, public = self._collect(res, tmp, system)

        log.info("proof_generated", circuit=name, proving_system=system, mode="witness", duration_ms=round(duration_ms, 1))
        return ProofResult(proof=proof, public_signals=public, proving_system=system, duration_ms=duration_ms)

    def full_prove(
        self,
        name: str,
        wasm: Path,
        zkey: Path,
        inputs: Mapping[str, Any],
        system: ProvingSystem = "groth16",
    ) -> ProofResult:
        check_circuit_name(name)
        system = check_proving_system(system)
        wasm = _require_file(wasm, "Witness calculator")
        zkey = _require_file(zkey, "Proving key")
        self.workspace.witness_dir.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix=f"{name}_fullprove_", dir=self.workspace.witness_dir) as d, \
                stage_timer(self.metrics, "prove", system):
            tmp = Path(d)
            input_json = tmp / "input.json"
            input_json.write_text(json.dumps(dict(inputs)), encoding="utf-8")
            t0 = time.perf_counter()
            res = self.snarkjs.fullprove(system, input_json, wasm, zkey, tmp / "proof.json", tmp / "public.json")
            duration_ms = (time.perf_counter() - t0) * 1000.0
            proof, public = self._collect(res, tmp, system)

        log.info("proof_generated", circuit=name, proving_system=system, mode="full", duration_ms=round(duration_ms, 1))
        return ProofResult(proof=proof, public_signals=public, proving_system=system, duration_ms=duration_ms)

    # ------------------------------------------------------------- utility

    def export_solidity_verifier(self, zkey: Path, output_path: Optional[Path] = None) -> Path:
        zkey = _require_file(zkey, "Proving key")
        out = Path(output_path) if output_path else zkey.with_name(zkey.stem + "_verifier.sol")
        out.parent.mkdir(parents=True, exist_ok=True)
        raise_for_result(self.snarkjs.export_solidity_verifier(zkey, out), ProvingError, "Verifier export failed")
        if not out.is_file():
            raise ArtifactMissingError("Verifier export produced no file", details={"path": str(out)})
        return out

    def clean(self, name: str) -> int:
        name = check_circuit_name(name)
        removed = 0
        wtns = self.witness_path(name)
        for p in (self.input_path(name), wtns, wtns.with_suffix(".json")):
            if p.is_file():
                p.unlink()
                removed += 1
        return removed


__all__ = ["ProofResult", "ProverService", "check_proving_system"]

"""
Proof verification.

``verify`` hands (verification key, public signals, proof) to
``snarkjs <system> verify`` and reports a boolean. An invalid proof and
malformed public signals both come back as ``verified=False``; the tool's
message is kept as the diagnostic.

``validate_structure`` is a shape check only (no cryptography). Callers run
it before ``verify``; a proof that fails it never reaches snarkjs.
"""

from __future__ import annotations

import hashlib
import json
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..adapters.snarkjs import ProvingSystem, SnarkjsCli, verify_succeeded
from ..diagnostics import classify_lines
from ..errors import StructuralValidationError
from ..logging import get_logger
from ..metrics import Metrics, stage_timer
from .ceremony import CeremonyService
from .prover import check_proving_system

log = get_logger(__name__)


def json_digest(obj: Any) -> str:
    """sha256 over canonical JSON (sorted keys, no whitespace), 0x-prefixed."""
    blob = json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return "0x" + hashlib.sha256(blob).hexdigest()


@dataclass
class VerificationResult:
    verified: bool
    duration_ms: float = 0.0
    diagnostic: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


# -------------------------------- Shape checks ------------------------------ #


def _is_list(v: Any, length: Optional[int] = None) -> bool:
    return isinstance(v, list) and (length is None or len(v) == length)


def validate_structure(proof: Any, system: str = "groth16") -> Tuple[bool, List[str]]:
    errors: List[str] = []
    if not isinstance(proof, Mapping):
        return False, ["Proof must be an object"]

    if system == "groth16":
        for k in ("pi_a", "pi_b", "pi_c"):
            if not _is_list(proof.get(k), 3):
                errors.append(f"Invalid {k} in proof")
    elif system == "plonk":
        for k in ("A", "B", "C"):
            if not _is_list(proof.get(k)):
                errors.append(f"Invalid {k} in proof")
    elif system == "fflonk":
        for k in ("polynomials", "evaluations"):
            if not isinstance(proof.get(k), Mapping):
                errors.append(f"Invalid {k} in proof")
    else:
        return False, [f"Unsupported proving system: {system}"]

    if proof.get("protocol") != system:
        errors.append("Invalid or missing protocol field")
    return not errors, errors


_VK_FIELDS = {
    "groth16": ("vk_alpha_1", "vk_beta_2", "vk_gamma_2", "vk_delta_2"),
    "plonk": ("power", "Qm", "Ql", "Qr", "Qo", "Qc", "S1", "S2", "S3"),
    "fflonk": ("power", "C0", "X_2"),
}


def validate_verification_key_structure(vk: Any, system: str = "groth16") -> Tuple[bool, List[str]]:
    if not isinstance(vk, Mapping):
        return False, ["Verification key must be an object"]
    if system not in _VK_FIELDS:
        return False, [f"Unsupported proving system: {system}"]

    errors = [f"Missing {k}" for k in _VK_FIELDS[system] if k not in vk]
    if system == "groth16":
        ic = vk.get("IC")
        if not _is_list(ic):
            errors.append("Missing or invalid IC array")
        elif isinstance(vk.get("nPublic"), int) and len(ic) != vk["nPublic"] + 1:
            errors.append(f"IC has {len(ic)} points, expected nPublic + 1 = {vk['nPublic'] + 1}")
    if vk.get("protocol") != system:
        errors.append("Invalid or missing protocol field")
    return not errors, errors


def verification_stats(results: Sequence[VerificationResult]) -> Dict[str, Any]:
    times = [r.duration_ms for r in results if r.duration_ms]
    verified = sum(1 for r in results if r.verified)
    return {
        "total": len(results),
        "verified": verified,
        "failed": len(results) - verified,
        "averageTimeMs": round(sum(times) / len(times), 1) if times else 0.0,
    }


# ---------------------------------- Service --------------------------------- #


class VerifierService:
    def __init__(
        self,
        snarkjs: SnarkjsCli,
        ceremony: CeremonyService,
        *,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.snarkjs = snarkjs
        self.ceremony = ceremony
        self.metrics = metrics

    validate_structure = staticmethod(validate_structure)
    validate_verification_key_structure = staticmethod(validate_verification_key_structure)
    verification_stats = staticmethod(verification_stats)

    def ensure_structure(self, proof: Any, system: str = "groth16") -> None:
        ok, errors = validate_structure(proof, system)
        if not ok:
            raise StructuralValidationError(
                "Proof structure is invalid", errors=errors, details={"provingSystem": system}
            )

    def verify(
        self,
        vk: Mapping[str, Any],
        public_signals: Any,
        proof: Any,
        system: ProvingSystem = "groth16",
    ) -> VerificationResult:
        system = check_proving_system(system)
        details = {
            "publicSignals": public_signals,
            "proofHash": json_digest(proof),
            "verificationKeyHash": json_digest(vk),
        }
        zdir = self.ceremony.workspace.zkeys_dir
        zdir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="verify_", dir=zdir) as d, stage_timer(self.metrics, "verify", system):
            tmp = Path(d)
            paths = {"vk": tmp / "verification_key.json", "public": tmp / "public.json", "proof": tmp / "proof.json"}
            paths["vk"].write_text(json.dumps(vk), encoding="utf-8")
            paths["public"].write_text(json.dumps(public_signals), encoding="utf-8")
            paths["proof"].write_text(json.dumps(proof), encoding="utf-8")
            t0 = time.perf_counter()
            res = self.snarkjs.verify(system, paths["vk"], paths["public"], paths["proof"])
            duration_ms = (time.perf_counter() - t0) * 1000.0

        verified = verify_succeeded(res)
        diagnostic = None
        if not verified:
            errors, _ = classify_lines(res.lines())
            diagnostic = "; ".join(errors) or res.output.strip()[:500] or "Proof did not verify"
        log.info("proof_verified", proving_system=system, verified=verified, duration_ms=round(duration_ms, 1))
        return VerificationResult(verified=verified, duration_ms=duration_ms, diagnostic=diagnostic, details=details)

    def verify_with_stored_key(
        self,
        name: str,
        public_signals: Any,
        proof: Any,
        system: ProvingSystem = "groth16",
    ) -> VerificationResult:
        vk = self.ceremony.load_verification_key(name, system)
        return self.verify(vk, public_signals, proof, system)

    def batch_verify(
        self,
        vk: Mapping[str, Any],
        items: Iterable[Tuple[Any, Any]],
        system: ProvingSystem = "groth16",
    ) -> List[VerificationResult]:
        """Verify ``(public_signals, proof)`` pairs; malformed proofs fail without a tool call."""
        results: List[VerificationResult] = []
        for public_signals, proof in items:
            ok, errors = validate_structure(proof, system)
            if not ok:
                results.append(VerificationResult(verified=False, diagnostic="; ".join(errors)))
                continue
            results.append(self.verify(vk, public_signals, proof, system))
        return results


__all__ = [
    "VerificationResult",
    "VerifierService",
    "json_digest",
    "validate_structure",
    "validate_verification_key_structure",
    "verification_stats",
]

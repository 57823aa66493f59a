"""
Key ceremony management.

Per (circuit, proving system) the workspace holds:

    zkeys/<name>_<system>_<stamp>.zkey               proving key, stamp = time_ns
    zkeys/<name>_<system>_verification_key.json      exported verification key

Key derivation uses a universal setup (powers of tau) plus the circuit's
r1cs:

- groth16: ``groth16 setup`` into an intermediate key, one ``zkey contribute``
  into the final key, intermediate removed.
- plonk / fflonk: ``<system> setup`` writes the final key directly; these
  systems have no circuit-specific contribution phase.

A cached key is reused while the ``StalenessPredicate`` says it is fresh
(default: key mtime not older than the r1cs mtime). A regenerated key gets a
new stamp, so the previous path disappears and a new one appears.
"""

from __future__ import annotations

import hashlib
import json
import random
import re
import secrets
import string
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Protocol, Tuple

from ..adapters.circom import read_r1cs_header
from ..adapters.ptau import PtauStore
from ..adapters.snarkjs import ProvingSystem, SnarkjsCli, raise_for_result
from ..concurrency import KeyedLocks
from ..errors import ArtifactMissingError, KeySetupError, SetupPrerequisiteError
from ..logging import get_logger
from ..metrics import Metrics, stage_timer
from ..workspace import Workspace, check_circuit_name

log = get_logger(__name__)

EntropyKind = Literal["pseudo", "system"]


# --------------------------------- Staleness -------------------------------- #


class StalenessPredicate(Protocol):
    def is_stale(self, key: Path, r1cs: Path) -> bool:
        ...

    def record(self, key: Path, r1cs: Path) -> None:
        """Called after a key is (re)generated from ``r1cs``."""
        ...


class MtimeStaleness:
    """Stale when the r1cs was modified after the key was written."""

    def is_stale(self, key: Path, r1cs: Path) -> bool:
        return key.stat().st_mtime_ns < r1cs.stat().st_mtime_ns

    def record(self, key: Path, r1cs: Path) -> None:
        return None


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            h.update(chunk)
    return h.hexdigest()


class ContentHashStaleness:
    """
    Stale when the r1cs digest differs from the one recorded at setup time
    (``<key>.r1cs.sha256`` sidecar). Touching the r1cs without changing it
    keeps the key.
    """

    @staticmethod
    def sidecar(key: Path) -> Path:
        return key.with_name(key.name + ".r1cs.sha256")

    def is_stale(self, key: Path, r1cs: Path) -> bool:
        try:
            recorded = self.sidecar(key).read_text(encoding="utf-8").strip()
        except OSError:
            return True
        return recorded != _sha256_file(r1cs)

    def record(self, key: Path, r1cs: Path) -> None:
        self.sidecar(key).write_text(_sha256_file(r1cs) + "\n", encoding="utf-8")


def staleness_from_name(kind: str) -> StalenessPredicate:
    if kind == "content-hash":
        return ContentHashStaleness()
    return MtimeStaleness()


# ---------------------------------- Entropy --------------------------------- #


def make_entropy(kind: EntropyKind = "pseudo") -> str:
    """
    Contribution entropy. ``pseudo`` is a short base-36 string from the
    ``random`` module; ``system`` draws 32 bytes from the OS CSPRNG.
    """
    if kind == "system":
        return secrets.token_hex(32)
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choice(alphabet) for _ in range(12))


# ----------------------------------- Types ---------------------------------- #


@dataclass
class KeyMaterial:
    circuit_name: str
    proving_system: str
    proving_key: Path
    verification_key: Path
    universal_setup: Optional[Path] = None
    ptau_power: Optional[int] = None
    regenerated: bool = False
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "circuitName": self.circuit_name,
            "provingSystem": self.proving_system,
            "zkeyPath": str(self.proving_key),
            "verificationKeyPath": str(self.verification_key),
            "ptauPath": str(self.universal_setup) if self.universal_setup else None,
            "ptauPower": self.ptau_power,
            "regenerated": self.regenerated,
            "durationMs": round(self.duration_ms, 1),
        }


# ---------------------------------- Service --------------------------------- #


class CeremonyService:
    def __init__(
        self,
        workspace: Workspace,
        snarkjs: SnarkjsCli,
        ptau: PtauStore,
        *,
        locks: Optional[KeyedLocks] = None,
        staleness: Optional[StalenessPredicate] = None,
        entropy: EntropyKind = "pseudo",
        enforce_capacity: bool = False,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.workspace = workspace
        self.snarkjs = snarkjs
        self.ptau = ptau
        self.locks = locks or KeyedLocks()
        self.staleness = staleness or MtimeStaleness()
        self.entropy = entropy
        self.enforce_capacity = enforce_capacity
        self.metrics = metrics

    # ------------------------------------------------------------ paths

    def verification_key_path(self, name: str, system: ProvingSystem) -> Path:
        return self.workspace.zkeys_dir / f"{check_circuit_name(name)}_{system}_verification_key.json"

    def existing_keys(self, name: str, system: ProvingSystem) -> List[Path]:
        """Final proving keys for (name, system), newest stamp first."""
        pattern = re.compile(rf"^{re.escape(name)}_{system}_(\d+)\.zkey$")
        found: List[Tuple[int, Path]] = []
        zdir = self.workspace.zkeys_dir
        if not zdir.is_dir():
            return []
        for p in zdir.iterdir():
            m = pattern.match(p.name)
            if m and p.is_file():
                found.append((int(m.group(1)), p))
        return [p for _, p in sorted(found, reverse=True)]

    # --------------------------------------------------- universal setup

    def select_universal_setup(self) -> Tuple[int, Path]:
        return self.ptau.ensure()

    def _check_capacity(self, name: str, r1cs: Path, power: int) -> None:
        header = read_r1cs_header(r1cs)
        if header is None:
            return
        capacity = PtauStore.capacity(power)
        if header.constraints <= capacity:
            return
        msg = (
            f"Circuit {name} has {header.constraints} constraints but the selected universal setup "
            f"(2^{power}) supports at most {capacity}"
        )
        if self.enforce_capacity:
            raise SetupPrerequisiteError(
                msg + "; add a larger powersOfTau tier to the ptau directory",
                details={"constraints": header.constraints, "ptauPower": power},
            )
        log.warning("ptau_capacity_exceeded", circuit=name, constraints=header.constraints, ptau_power=power)

    # ------------------------------------------------------------ setup

    def setup_circuit(self, name: str, r1cs: Path, system: ProvingSystem = "groth16") -> KeyMaterial:
        name = check_circuit_name(name)
        r1cs = Path(r1cs)
        if not r1cs.is_file():
            raise ArtifactMissingError(f"Constraint system not found for circuit: {name}", details={"path": str(r1cs)})

        with self.locks.hold(name), stage_timer(self.metrics, "setup", system):
            t0 = time.perf_counter()
            power, ptau_path = self.select_universal_setup()
            self._check_capacity(name, r1cs, power)

            zdir = self.workspace.zkeys_dir
            zdir.mkdir(parents=True, exist_ok=True)
            previous = self.existing_keys(name, system)
            stamp = time.time_ns()
            final = zdir / f"{name}_{system}_{stamp}.zkey"

            log.info("key_setup_started", circuit=name, proving_system=system, ptau=ptau_path.name)
            if system == "groth16":
                intermediate = zdir / f"{name}_{system}_{stamp}.init.zkey"
                try:
                    raise_for_result(
                        self.snarkjs.setup(system, r1cs, ptau_path, intermediate),
                        KeySetupError,
                        "groth16 setup failed",
                    )
                    raise_for_result(
                        self.snarkjs.zkey_contribute(
                            intermediate, final, name="contribution1", entropy=make_entropy(self.entropy)
                        ),
                        KeySetupError,
                        "Ceremony contribution failed",
                    )
                finally:
                    intermediate.unlink(missing_ok=True)
            else:
                raise_for_result(
                    self.snarkjs.setup(system, r1cs, ptau_path, final),
                    KeySetupError,
                    f"{system} setup failed",
                )

            if not final.is_file():
                raise ArtifactMissingError(
                    "Key setup finished without writing a proving key", details={"path": str(final)}
                )

            vk_path = self.verification_key_path(name, system)
            self._export_vk_to(final, vk_path)
            self.staleness.record(final, r1cs)

            for old in previous:
                old.unlink(missing_ok=True)
                ContentHashStaleness.sidecar(old).unlink(missing_ok=True)

            duration_ms = (time.perf_counter() - t0) * 1000.0

        log.info(
            "key_setup_completed",
            circuit=name,
            proving_system=system,
            zkey=final.name,
            replaced=len(previous),
            duration_ms=round(duration_ms, 1),
        )
        return KeyMaterial(
            circuit_name=name,
            proving_system=system,
            proving_key=final,
            verification_key=vk_path,
            universal_setup=ptau_path,
            ptau_power=power,
            regenerated=True,
            duration_ms=duration_ms,
        )

    def get_or_create_key(self, name: str, r1cs: Path, system: ProvingSystem = "groth16") -> KeyMaterial:
        name = check_circuit_name(name)
        r1cs = Path(r1cs)
        with self.locks.hold(name):
            keys = self.existing_keys(name, system)
            if keys and r1cs.is_file() and not self.staleness.is_stale(keys[0], r1cs):
                vk_path = self.verification_key_path(name, system)
                if not vk_path.is_file():
                    self._export_vk_to(keys[0], vk_path)
                log.debug("key_cache_hit", circuit=name, proving_system=system, zkey=keys[0].name)
                return KeyMaterial(
                    circuit_name=name, proving_system=system, proving_key=keys[0], verification_key=vk_path
                )
            if keys:
                log.info("key_stale", circuit=name, proving_system=system, zkey=keys[0].name)
            return self.setup_circuit(name, r1cs, system)

    # -------------------------------------------------- verification key

    def _export_vk_to(self, zkey: Path, out: Path) -> None:
        raise_for_result(
            self.snarkjs.export_verification_key(zkey, out),
            KeySetupError,
            "Verification key export failed",
        )
        if not out.is_file():
            raise ArtifactMissingError("Verification key export produced no file", details={"path": str(out)})

    def export_verification_key(self, zkey: Path, out: Optional[Path] = None) -> Dict[str, Any]:
        """Export the verification key of ``zkey`` and return it as JSON."""
        zkey = Path(zkey)
        if not zkey.is_file():
            raise ArtifactMissingError(f"Proving key not found: {zkey.name}", details={"path": str(zkey)})
        if out is not None:
            self._export_vk_to(zkey, Path(out))
            return json.loads(Path(out).read_text(encoding="utf-8"))
        with tempfile.TemporaryDirectory(dir=self.workspace.zkeys_dir) as tmp:
            target = Path(tmp) / "verification_key.json"
            self._export_vk_to(zkey, target)
            return json.loads(target.read_text(encoding="utf-8"))

    def load_verification_key(self, name: str, system: ProvingSystem = "groth16") -> Dict[str, Any]:
        path = self.verification_key_path(name, system)
        if not path.is_file():
            raise ArtifactMissingError(
                f"Verification key not found for circuit: {name}",
                details={"circuitName": name, "provingSystem": system},
            )
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise ArtifactMissingError(f"Verification key for {name} is not valid JSON", details={"path": str(path)}) from e

    # ------------------------------------------------------------ cleanup

    def clean(self, name: str) -> int:
        """Remove every proving and verification key of ``name``; returns the count."""
        name = check_circuit_name(name)
        removed = 0
        with self.locks.hold(name):
            for system in ("groth16", "plonk", "fflonk"):
                for key in self.existing_keys(name, system):
                    key.unlink(missing_ok=True)
                    ContentHashStaleness.sidecar(key).unlink(missing_ok=True)
                    removed += 1
                vk = self.verification_key_path(name, system)
                if vk.is_file():
                    vk.unlink()
                    removed += 1
        return removed


__all__ = [
    "StalenessPredicate",
    "MtimeStaleness",
    "ContentHashStaleness",
    "staleness_from_name",
    "make_entropy",
    "KeyMaterial",
    "CeremonyService",
]

"""
snarkjs CLI adapter.

Thin argv builders over the snarkjs command line. Every method returns the
``ProcessResult``; deciding what a failure means is left to the services,
which use ``raise_for_result`` to convert a failed run into the matching
pipeline error with verbatim and grouped diagnostics.

Commands used:

    wtns calculate <wasm> <input.json> <out.wtns>
    wtns export json <wtns> <out.json>
    <system> setup <r1cs> <ptau> <out.zkey>
    zkey contribute <in.zkey> <out.zkey> --name=<n> -e=<entropy>
    zkey export verificationkey <zkey> <vk.json>
    zkey export solidityverifier <zkey> <out.sol>
    <system> prove <zkey> <wtns> <proof.json> <public.json>
    <system> fullprove <input.json> <wasm> <zkey> <proof.json> <public.json>
    <system> verify <vk.json> <public.json> <proof.json>
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Sequence, Type

from ..diagnostics import classify_lines, format_diagnostics
from ..errors import PipelineError
from .process import ProcessResult, ProcessRunner, redact_argv

ProvingSystem = Literal["groth16", "plonk", "fflonk"]
PROVING_SYSTEMS: tuple = ("groth16", "plonk", "fflonk")


class SnarkjsCli:
    def __init__(self, runner: ProcessRunner, argv: Sequence[str] = ("snarkjs",)) -> None:
        self.runner = runner
        self.prefix: List[str] = list(argv) or ["snarkjs"]

    def _run(self, *args, cwd=None) -> ProcessResult:
        return self.runner.run([*self.prefix, *(str(a) for a in args)], cwd=cwd)

    # witness
    def wtns_calculate(self, wasm: Path, input_json: Path, out_wtns: Path) -> ProcessResult:
        return self._run("wtns", "calculate", wasm, input_json, out_wtns)

    def wtns_export_json(self, wtns: Path, out_json: Path) -> ProcessResult:
        return self._run("wtns", "export", "json", wtns, out_json)

    # keys
    def setup(self, system: ProvingSystem, r1cs: Path, ptau: Path, out_zkey: Path) -> ProcessResult:
        return self._run(system, "setup", r1cs, ptau, out_zkey)

    def zkey_contribute(self, zkey_in: Path, zkey_out: Path, *, name: str, entropy: str) -> ProcessResult:
        return self._run("zkey", "contribute", zkey_in, zkey_out, f"--name={name}", f"-e={entropy}")

    def export_verification_key(self, zkey: Path, out_json: Path) -> ProcessResult:
        return self._run("zkey", "export", "verificationkey", zkey, out_json)

    def export_solidity_verifier(self, zkey: Path, out_sol: Path) -> ProcessResult:
        return self._run("zkey", "export", "solidityverifier", zkey, out_sol)

    # proofs
    def prove(self, system: ProvingSystem, zkey: Path, wtns: Path, proof: Path, public: Path) -> ProcessResult:
        return self._run(system, "prove", zkey, wtns, proof, public)

    def fullprove(
        self, system: ProvingSystem, input_json: Path, wasm: Path, zkey: Path, proof: Path, public: Path
    ) -> ProcessResult:
        return self._run(system, "fullprove", input_json, wasm, zkey, proof, public)

    def verify(self, system: ProvingSystem, vk: Path, public: Path, proof: Path) -> ProcessResult:
        return self._run(system, "verify", vk, public, proof)


def verify_succeeded(res: ProcessResult) -> bool:
    """snarkjs prints ``OK!`` on a valid proof and exits non-zero otherwise."""
    return res.ok and "OK" in res.output and "Invalid" not in res.output


def raise_for_result(res: ProcessResult, exc_cls: Type[PipelineError], message: str) -> None:
    if res.ok:
        return
    raw = res.lines()
    errors, _ = classify_lines(raw)
    lines = errors or raw or [f"{Path(res.argv[0]).name} exited with code {res.returncode}"]
    raise exc_cls(
        message,
        errors=lines,
        formatted=format_diagnostics(raw or lines),
        details={
            "returncode": res.returncode,
            "command": redact_argv(res.argv[:4]),
        },
    )


__all__ = [
    "ProvingSystem",
    "PROVING_SYSTEMS",
    "SnarkjsCli",
    "verify_succeeded",
    "raise_for_result",
]

"""
Compiler service: precheck, compile, syntax validation, artifact lookup and
cleanup for circuits kept in the workspace.

Compilation of one circuit name is serialized through ``KeyedLocks``; the
artifact directory for that name is removed and recreated on every compile,
so the last successful compile owns it. A small ``compile.json`` next to the
artifacts records the stats of that compile and a fingerprint of its source
and options; ``ensure_compiled`` reuses the artifacts when both still match.
"""

from __future__ import annotations

import hashlib
import json
import shutil
import tempfile
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..adapters.circom import (CircomCli, CircuitStats, CompiledArtifacts,
                               CompileOptions, PrecheckResult,
                               discover_artifacts, parse_stats, precheck)
from ..concurrency import KeyedLocks
from ..diagnostics import (DEFAULT_CLASSIFIER, LineClassifier, classify_lines,
                           format_diagnostics)
from ..errors import (ArtifactMissingError, BadRequest,
                      CompilerDiagnosticError, SyntaxPrecheckError)
from ..logging import get_logger
from ..metrics import Metrics, stage_timer
from ..workspace import Workspace, check_circuit_name

log = get_logger(__name__)

STATS_FILE = "compile.json"

# CompileOptions flag -> CompiledArtifacts attribute
_OPTION_ARTIFACTS = {"r1cs": "r1cs", "wasm": "wasm", "sym": "sym", "c": "cpp"}


def source_fingerprint(source: str, options: CompileOptions) -> str:
    """sha256 over the source text and the compile options."""
    h = hashlib.sha256(source.encode("utf-8"))
    h.update(json.dumps(asdict(options), sort_keys=True).encode("utf-8"))
    return h.hexdigest()


@dataclass
class CompileResult:
    circuit_name: str
    artifacts: CompiledArtifacts
    stats: CircuitStats
    warnings: List[str] = field(default_factory=list)
    duration_ms: float = 0.0
    reused: bool = False


class CompilerService:
    def __init__(
        self,
        workspace: Workspace,
        circom: CircomCli,
        *,
        locks: Optional[KeyedLocks] = None,
        classifier: LineClassifier = DEFAULT_CLASSIFIER,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.workspace = workspace
        self.circom = circom
        self.locks = locks or KeyedLocks()
        self.classifier = classifier
        self.metrics = metrics

    # -------------------------------------------------------------- precheck

    def precheck(self, source: str) -> PrecheckResult:
        """
        Structural checks first, without touching the compiler; the pragma is
        compared against the compiler version only once those pass.
        """
        res = precheck(source, None)
        if not res.ok:
            return res
        return precheck(source, self.circom.version())

    def _ensure_precheck(self, source: str, name: str) -> PrecheckResult:
        pre = self.precheck(source)
        if not pre.ok:
            log.info("precheck_failed", circuit=name, errors=pre.errors)
            raise SyntaxPrecheckError(
                "Circuit precheck failed",
                errors=pre.errors,
                details={"circuitName": name, "warnings": pre.warnings},
            )
        return pre

    # --------------------------------------------------------------- compile

    def compile(self, source: str, name: str, options: Optional[CompileOptions] = None) -> CompileResult:
        name = check_circuit_name(name)
        options = options or CompileOptions()
        if not options.wants_any_artifact():
            raise BadRequest("At least one of r1cs, wasm, sym or c must be requested")

        pre = self._ensure_precheck(source, name)

        with self.locks.hold(name), stage_timer(self.metrics, "compile"):
            src = self.workspace.source_path(name)
            src.parent.mkdir(parents=True, exist_ok=True)
            src.write_text(source, encoding="utf-8")

            out_dir = self.workspace.artifact_dir(name)
            if out_dir.exists():
                shutil.rmtree(out_dir)
            out_dir.mkdir(parents=True)

            t0 = time.perf_counter()
            res = self.circom.compile(src, out_dir, options)
            duration_ms = (time.perf_counter() - t0) * 1000.0
            if res.truncated:
                log.warning("compiler_output_truncated", circuit=name)

            raw = res.lines()
            errors, warnings = classify_lines(raw, self.classifier)
            if errors:
                log.info("compile_failed", circuit=name, errors=len(errors), returncode=res.returncode)
                raise CompilerDiagnosticError(
                    "Circuit compilation failed",
                    errors=errors,
                    formatted=format_diagnostics(raw, self.classifier),
                    details={"circuitName": name, "warnings": warnings},
                )

            artifacts = discover_artifacts(out_dir, name)
            if not artifacts.any():
                raise ArtifactMissingError(
                    "Compiler finished without producing any artifacts",
                    errors=raw or [f"circom exited with code {res.returncode} and no output"],
                    details={"circuitName": name, "outputDir": str(out_dir)},
                )

            stats = parse_stats(res.stdout, artifacts.sym)
            self._write_stats(out_dir, stats, options, source_fingerprint(source, options))

        log.info(
            "compile_ok",
            circuit=name,
            constraints=stats.constraints,
            wires=stats.wires,
            artifacts=sorted(artifacts.present()),
            duration_ms=round(duration_ms, 1),
        )
        return CompileResult(
            circuit_name=name,
            artifacts=artifacts,
            stats=stats,
            warnings=pre.warnings + warnings,
            duration_ms=duration_ms,
        )

    def compile_file(self, path: Path, options: Optional[CompileOptions] = None) -> CompileResult:
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ArtifactMissingError(f"Circuit source not readable: {path}") from e
        return self.compile(source, path.stem, options)

    def cached(self, source: str, name: str, options: Optional[CompileOptions] = None) -> Optional[CompileResult]:
        """
        The earlier compile of exactly this source and these options, if its
        ``compile.json`` matches (same fingerprint and compiler version) and
        every requested artifact is still on disk. ``None`` otherwise.
        """
        name = check_circuit_name(name)
        options = options or CompileOptions()
        out_dir = self.workspace.artifact_dir(name)
        try:
            data = json.loads((out_dir / STATS_FILE).read_text(encoding="utf-8"))
            stats = CircuitStats(**data["stats"])
        except (OSError, ValueError, KeyError, TypeError):
            return None
        if data.get("sourceHash") != source_fingerprint(source, options):
            return None
        if data.get("compilerVersion") != self.circom.version():
            return None

        artifacts = discover_artifacts(out_dir, name)
        for flag, attr in _OPTION_ARTIFACTS.items():
            if getattr(options, flag) and getattr(artifacts, attr) is None:
                return None
        return CompileResult(circuit_name=name, artifacts=artifacts, stats=stats, reused=True)

    def ensure_compiled(self, source: str, name: str, options: Optional[CompileOptions] = None) -> CompileResult:
        """Reuse a matching earlier compile, else compile."""
        name = check_circuit_name(name)
        with self.locks.hold(name):
            hit = self.cached(source, name, options)
            if hit is not None:
                log.info("compile_reused", circuit=name, constraints=hit.stats.constraints)
                return hit
            return self.compile(source, name, options)

    def _write_stats(self, out_dir: Path, stats: CircuitStats, options: CompileOptions, fingerprint: str) -> None:
        payload = {
            "sourceHash": fingerprint,
            "stats": stats.to_dict(),
            "prime": options.prime,
            "optimize": options.optimize,
            "compilerVersion": self.circom.version(),
            "compiledAt": int(time.time()),
        }
        (out_dir / STATS_FILE).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # -------------------------------------------------------------- validate

    def validate_syntax(self, source: str, name: str) -> Dict[str, Any]:
        """
        Precheck plus ``circom --inspect`` on a scratch copy. Diagnostics are
        returned, not raised.
        """
        name = check_circuit_name(name)
        pre = self.precheck(source)
        if not pre.ok:
            return {"valid": False, "errors": pre.errors, "warnings": pre.warnings, "formatted": "\n".join(pre.errors)}

        self.workspace.circuits_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=f"_validate_{name}_", dir=self.workspace.circuits_dir) as tmp:
            scratch = Path(tmp) / f"{name}.circom"
            scratch.write_text(source, encoding="utf-8")
            res = self.circom.inspect(scratch)

        raw = [ln.replace(str(scratch), f"{name}.circom") for ln in res.lines()]
        errors, warnings = classify_lines(raw, self.classifier)
        return {
            "valid": not errors,
            "errors": errors,
            "warnings": pre.warnings + warnings,
            "formatted": format_diagnostics(raw, self.classifier) if errors else "",
        }

    # ------------------------------------------------------------- artifacts

    def get_artifacts(self, name: str) -> CompiledArtifacts:
        out_dir = self.workspace.artifact_dir(name)
        if not out_dir.is_dir():
            raise ArtifactMissingError(f"No artifacts found for circuit: {name}", details={"circuitName": name})
        return discover_artifacts(out_dir, name)

    def get_stats(self, name: str) -> Optional[CircuitStats]:
        path = self.workspace.artifact_dir(name) / STATS_FILE
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return CircuitStats(**data["stats"])
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def require(self, name: str, *kinds: str) -> CompiledArtifacts:
        """Artifacts for ``name`` with every one of ``kinds`` present."""
        artifacts = self.get_artifacts(name)
        missing = [k for k in kinds if getattr(artifacts, k) is None]
        if missing:
            raise ArtifactMissingError(
                f"Circuit {name} is missing compiled artifacts: {', '.join(missing)}",
                details={"circuitName": name, "missing": missing},
            )
        return artifacts

    def clean(self, name: str) -> Dict[str, bool]:
        name = check_circuit_name(name)
        with self.locks.hold(name):
            src = self.workspace.source_path(name)
            out_dir = self.workspace.artifact_dir(name)
            removed = {"source": src.exists(), "artifacts": out_dir.exists()}
            if removed["source"]:
                src.unlink()
            if removed["artifacts"]:
                shutil.rmtree(out_dir)
        log.info("circuit_cleaned", circuit=name, **removed)
        return removed


__all__ = ["CompilerService", "CompileResult", "STATS_FILE", "source_fingerprint"]

"""
Command-line front end for Circuit Services.

Commands:
  - compile          : precheck + compile a .circom file into the workspace
  - validate         : diagnostics only (precheck + circom --inspect)
  - setup            : derive (or reuse) proving/verification keys
  - prove            : full prove from an inputs JSON file
  - verify           : verify proof.json/public.json against a stored or given key
  - export-verifier  : write a Solidity verifier for the current proving key
  - fetch-ptau       : download a universal setup file into the workspace
  - clean            : remove everything stored for a circuit
  - serve            : run the HTTP service (uvicorn)

Usage:
  python -m circuit_services.cli <command> [options]
  circuit-services <command> [options]

Pipeline failures print the grouped tool diagnostics and exit with status 1.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from .adapters.circom import CompileOptions
from .config import Config, load_config
from .errors import ApiError, PipelineError
from .logging import get_logger, setup_logging
from .services import Services, build_services
from .services.prover import check_proving_system

app = typer.Typer(add_completion=False, help="Circuit Services: Circom/snarkjs artifact pipeline")
log = get_logger(__name__)


@dataclass
class AppCtx:
    cfg: Config
    services: Optional[Services] = None


_ctx: Optional[AppCtx] = None


def _ctx_or_init() -> AppCtx:
    global _ctx
    if _ctx is None:
        _ctx = AppCtx(cfg=load_config())
    return _ctx


def _services() -> Services:
    ctx = _ctx_or_init()
    if ctx.services is None:
        ctx.services = build_services(ctx.cfg)
    return ctx.services


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        typer.secho(f"Cannot read {what} from {path}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)


def _report_errors(fn: Callable) -> Callable:
    """Render ApiError as text on stderr and exit 1."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ApiError as e:
            typer.secho(f"error[{e.code}]: {e.message}", fg=typer.colors.RED, err=True)
            if isinstance(e, PipelineError) and (e.formatted or e.errors):
                typer.echo(e.formatted or "\n".join(e.errors), err=True)
            raise typer.Exit(1)

    return wrapper


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
    log_format: str = typer.Option("console", "--log-format", help="json | console"),
):
    """
    Shared options for all subcommands.
    """
    ctx = _ctx_or_init()
    setup_logging(level=(log_level or ctx.cfg.log_level).upper(), log_format=log_format)


@app.command("compile")
@_report_errors
def compile_cmd(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Path to a .circom file"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Circuit name (default: file stem)"),
    wasm: bool = typer.Option(True, "--wasm/--no-wasm", help="Emit the wasm witness calculator"),
    sym: bool = typer.Option(True, "--sym/--no-sym", help="Emit the symbol table"),
    cpp: bool = typer.Option(False, "--c/--no-c", help="Emit the C++ witness calculator"),
    optimize: bool = typer.Option(True, "--O1/--O0", help="Constraint simplification level"),
    prime: str = typer.Option("bn128", "--prime", help="bn128 | bls12381 | goldilocks"),
):
    """
    Precheck and compile a circuit; prints artifact paths and stats.
    """
    options = CompileOptions(wasm=wasm, sym=sym, c=cpp, optimize=optimize, prime=prime)  # type: ignore[arg-type]
    svc = _services()
    if name:
        result = svc.compiler.compile(source.read_text(encoding="utf-8"), name, options)
    else:
        result = svc.compiler.compile_file(source, options)
    _echo_json(
        {
            "circuitName": result.circuit_name,
            "artifacts": result.artifacts.to_dict(),
            "stats": result.stats.to_dict() if result.stats else None,
            "warnings": result.warnings,
            "compilationTimeMs": round(result.duration_ms, 1),
        }
    )


@app.command("validate")
@_report_errors
def validate_cmd(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Path to a .circom file"),
):
    """
    Report diagnostics without keeping any artifacts. Exit 1 when invalid.
    """
    out = _services().compiler.validate_syntax(source.read_text(encoding="utf-8"), source.stem)
    for w in out["warnings"]:
        typer.secho(f"warning: {w}", fg=typer.colors.YELLOW, err=True)
    if not out["valid"]:
        typer.echo(out["formatted"], err=True)
        raise typer.Exit(1)
    typer.secho("✅ Circuit is valid.", fg=typer.colors.GREEN)


@app.command("setup")
@_report_errors
def setup_cmd(
    name: str = typer.Argument(..., help="Compiled circuit name"),
    system: str = typer.Option("groth16", "--system", "-s", help="groth16 | plonk | fflonk"),
    force: bool = typer.Option(False, "--force", help="Regenerate even if the key is current"),
):
    """
    Derive proving and verification keys (reused while newer than the r1cs).
    """
    system = check_proving_system(system)
    svc = _services()
    r1cs = svc.compiler.require(name, "r1cs").r1cs
    key = svc.ceremony.setup_circuit(name, r1cs, system) if force else svc.ceremony.get_or_create_key(name, r1cs, system)
    _echo_json(key.to_dict())


@app.command("prove")
@_report_errors
def prove_cmd(
    name: str = typer.Argument(..., help="Compiled circuit name"),
    inputs: Path = typer.Option(..., "--input", "-i", exists=True, dir_okay=False, help="Inputs JSON file"),
    system: str = typer.Option("groth16", "--system", "-s", help="groth16 | plonk | fflonk"),
    out_dir: Path = typer.Option(Path("."), "--out", "-o", file_okay=False, help="Where to write proof.json/public.json"),
):
    """
    Full prove: witness + proof in one step. Keys are derived if missing or stale.
    """
    system = check_proving_system(system)
    svc = _services()
    artifacts = svc.compiler.require(name, "r1cs", "wasm")
    key = svc.ceremony.get_or_create_key(name, artifacts.r1cs, system)
    result = svc.prover.full_prove(name, artifacts.wasm, key.proving_key, _read_json(inputs, "inputs"), system)

    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / "proof.json").write_text(json.dumps(result.proof, indent=2), encoding="utf-8")
    (out_dir / "public.json").write_text(json.dumps(result.public_signals, indent=2), encoding="utf-8")
    typer.secho(
        f"✅ Proof written to {out_dir / 'proof.json'} ({result.duration_ms:.0f} ms)", fg=typer.colors.GREEN
    )


@app.command("verify")
@_report_errors
def verify_cmd(
    name: str = typer.Argument(..., help="Circuit name (stored verification key)"),
    proof: Path = typer.Option(Path("proof.json"), "--proof", exists=True, dir_okay=False),
    public: Path = typer.Option(Path("public.json"), "--public", exists=True, dir_okay=False),
    vk: Optional[Path] = typer.Option(None, "--vk", exists=True, dir_okay=False, help="Verification key JSON"),
    system: str = typer.Option("groth16", "--system", "-s", help="groth16 | plonk | fflonk"),
):
    """
    Verify a proof. Exit 0 when valid, 1 otherwise.
    """
    system = check_proving_system(system)
    verifier = _services().verifier
    proof_obj = _read_json(proof, "proof")
    public_obj = _read_json(public, "public signals")
    verifier.ensure_structure(proof_obj, system)
    if vk is not None:
        result = verifier.verify(_read_json(vk, "verification key"), public_obj, proof_obj, system)
    else:
        result = verifier.verify_with_stored_key(name, public_obj, proof_obj, system)
    if not result.verified:
        typer.secho(f"❌ Invalid proof: {result.diagnostic}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.secho(f"✅ Proof is valid ({result.duration_ms:.0f} ms)", fg=typer.colors.GREEN)


@app.command("export-verifier")
@_report_errors
def export_verifier_cmd(
    name: str = typer.Argument(..., help="Circuit name"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", dir_okay=False, help="Output .sol path"),
    system: str = typer.Option("groth16", "--system", "-s", help="groth16 | plonk | fflonk"),
):
    """
    Write a Solidity verifier contract for the circuit's current proving key.
    """
    system = check_proving_system(system)
    svc = _services()
    r1cs = svc.compiler.require(name, "r1cs").r1cs
    key = svc.ceremony.get_or_create_key(name, r1cs, system)
    path = svc.prover.export_solidity_verifier(key.proving_key, out)
    typer.echo(str(path))


@app.command("fetch-ptau")
@_report_errors
def fetch_ptau_cmd(
    power: Optional[int] = typer.Option(None, "--power", "-p", min=1, max=28, help="Tier to fetch (default: PTAU_FETCH_POWER)"),
    force: bool = typer.Option(False, "--force", help="Download even if the file is already present"),
):
    """
    Download a powers-of-tau file into the workspace (no-op if present).
    """
    ptau = _services().ceremony.ptau
    power = power if power is not None else ptau.fetch_power
    path = ptau.path_for(power)
    if force or not path.is_file():
        path = ptau.fetch(power)
    typer.echo(str(path))


@app.command("clean")
@_report_errors
def clean_cmd(
    name: str = typer.Argument(..., help="Circuit name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not prompt"),
):
    """
    Remove source, artifacts, keys and witnesses for a circuit.
    """
    if not yes:
        typer.confirm(f"Delete everything stored for {name!r}?", abort=True)
    svc = _services()
    removed = dict(svc.compiler.clean(name))
    removed["keys"] = svc.ceremony.clean(name)
    removed["witnesses"] = svc.prover.clean(name)
    _echo_json({"circuitName": name, "removed": removed})


@app.command("serve")
def serve_cmd(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload"),
):
    """
    Run the HTTP service under uvicorn.
    """
    from .main import main as run_server

    argv = []
    if host:
        argv += ["--host", host]
    if port:
        argv += ["--port", str(port)]
    if reload:
        argv.append("--reload")
    run_server(argv)


if __name__ == "__main__":
    app()

"""
Service layer.

``build_services(cfg)`` wires one explicit instance of every service around a
single workspace, process runner and set of locks. The app factory stores the
result on ``app.state.services``; the CLI builds its own. Tests pass a fake
runner (and ledger) to exercise everything without circom or snarkjs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..adapters.circom import CircomCli
from ..adapters.ledger import LedgerClient, ledger_from_config
from ..adapters.process import ProcessRunner, SubprocessRunner
from ..adapters.ptau import PtauStore
from ..adapters.snarkjs import SnarkjsCli
from ..concurrency import KeyedLocks, ProcessSlots
from ..config import Config
from ..metrics import Metrics
from ..workspace import Workspace
from .ceremony import CeremonyService, staleness_from_name
from .compiler import CompilerService
from .pipeline import Pipeline
from .prover import ProverService
from .verifier import VerifierService


@dataclass
class Services:
    workspace: Workspace
    compiler: CompilerService
    ceremony: CeremonyService
    prover: ProverService
    verifier: VerifierService
    pipeline: Pipeline
    ledger: LedgerClient


def build_services(
    cfg: Config,
    *,
    runner: Optional[ProcessRunner] = None,
    ledger: Optional[LedgerClient] = None,
    metrics: Optional[Metrics] = None,
    ptau: Optional[PtauStore] = None,
) -> Services:
    workspace = Workspace.from_config(cfg).initialize()
    if runner is None:
        runner = SubprocessRunner(
            ProcessSlots(cfg.max_concurrent_processes),
            max_output_bytes=cfg.max_output_bytes,
            timeout=cfg.process_timeout,
        )
    locks = KeyedLocks()

    circom = CircomCli(
        runner,
        binary=cfg.circom_bin,
        library_paths=cfg.circom_library_paths,
        compiler_version=cfg.compiler_version,
    )
    snarkjs = SnarkjsCli(runner, cfg.snarkjs_argv)
    ptau = ptau or PtauStore(
        workspace.ptau_dir,
        powers=cfg.ptau_powers,
        fetch_power=cfg.ptau_fetch_power,
        urls=cfg.ptau_urls,
        timeout=cfg.ptau_download_timeout,
    )

    compiler = CompilerService(workspace, circom, locks=locks, metrics=metrics)
    ceremony = CeremonyService(
        workspace,
        snarkjs,
        ptau,
        locks=locks,
        staleness=staleness_from_name(cfg.key_staleness),
        entropy=cfg.ceremony_entropy,
        enforce_capacity=cfg.enforce_setup_capacity,
        metrics=metrics,
    )
    prover = ProverService(workspace, snarkjs, metrics=metrics)
    verifier = VerifierService(snarkjs, ceremony, metrics=metrics)
    ledger = ledger or ledger_from_config(cfg)
    pipeline = Pipeline(compiler, ceremony, prover, verifier, ledger)
    return Services(
        workspace=workspace,
        compiler=compiler,
        ceremony=ceremony,
        prover=prover,
        verifier=verifier,
        pipeline=pipeline,
        ledger=ledger,
    )


__all__ = ["Services", "build_services"]

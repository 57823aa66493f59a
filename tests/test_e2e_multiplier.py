from __future__ import annotations

import shutil

import pytest

from circuit_services.config import Settings
from circuit_services.services import build_services
from circuit_services.services.pipeline import CompleteRequest

# Runs the real toolchain: circom and snarkjs must be on PATH, and the first
# run downloads the PTAU_FETCH_POWER (default 2^15) universal setup file into
# the workspace.
pytestmark = [
    pytest.mark.e2e,
    pytest.mark.skipif(
        shutil.which("circom") is None or shutil.which("snarkjs") is None,
        reason="circom and snarkjs are required",
    ),
]


@pytest.fixture
def real_services(tmp_path):
    cfg = Settings(_env_file=None, workspace_dir=tmp_path / "ws", log_format="console")
    return build_services(cfg)


def test_multiplier_end_to_end(real_services, multiplier_source, adder_source):
    svc = real_services
    result = svc.pipeline.complete(
        CompleteRequest(circuit_name="Multiplier2", source=multiplier_source, inputs={"a": 3, "b": 4})
    )
    assert result.proof.public_signals == ["12"]
    assert result.verification.verified is True

    tampered = svc.verifier.verify(result.verification_key, ["13"], result.proof.proof)
    assert tampered.verified is False

    adder = svc.compiler.compile(adder_source, "Adder")
    svc.ceremony.get_or_create_key("Adder", adder.artifacts.r1cs)
    foreign = svc.ceremony.load_verification_key("Adder")
    assert svc.verifier.verify(foreign, result.proof.public_signals, result.proof.proof).verified is False

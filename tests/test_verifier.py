from __future__ import annotations

import copy

import pytest

from circuit_services.errors import ArtifactMissingError, StructuralValidationError
from circuit_services.services.verifier import (
    VerificationResult,
    json_digest,
    validate_structure,
    validate_verification_key_structure,
    verification_stats,
)


@pytest.fixture
def proved(services, compiled):
    key = services.ceremony.get_or_create_key("Multiplier2", compiled.artifacts.r1cs)
    result = services.prover.full_prove("Multiplier2", compiled.artifacts.wasm, key.proving_key, {"a": 3, "b": 4})
    vk = services.ceremony.export_verification_key(key.proving_key)
    return vk, result


def test_round_trip_verifies(services, proved):
    vk, result = proved
    out = services.verifier.verify(vk, result.public_signals, result.proof)
    assert out.verified is True
    assert out.diagnostic is None
    assert out.details["publicSignals"] == ["12"]
    assert out.details["proofHash"] == json_digest(result.proof)


def test_mutated_public_signal_fails(services, proved):
    vk, result = proved
    out = services.verifier.verify(vk, ["13"], result.proof)
    assert out.verified is False
    assert "Invalid proof" in out.diagnostic


def test_stored_key(services, proved):
    _, result = proved
    assert services.verifier.verify_with_stored_key("Multiplier2", result.public_signals, result.proof).verified


def test_stored_key_missing(services, proved):
    _, result = proved
    with pytest.raises(ArtifactMissingError):
        services.verifier.verify_with_stored_key("Unknown", result.public_signals, result.proof)


def test_key_from_other_circuit_fails(services, proved, adder_source):
    _, result = proved
    adder = services.compiler.compile(adder_source, "Adder")
    other = services.ceremony.get_or_create_key("Adder", adder.artifacts.r1cs)
    foreign_vk = services.ceremony.load_verification_key("Adder")
    assert other.verification_key.is_file()
    assert services.verifier.verify(foreign_vk, result.public_signals, result.proof).verified is False


def test_malformed_public_signals_are_not_an_exception(services, proved):
    vk, result = proved
    out = services.verifier.verify(vk, {"c": "12"}, result.proof)
    assert out.verified is False
    assert out.diagnostic


def test_structure_short_circuit(services, toolchain, proved):
    _, result = proved
    broken = copy.deepcopy(result.proof)
    del broken["pi_b"]
    before = len(toolchain.calls)

    ok, errors = validate_structure(broken, "groth16")
    assert not ok and errors == ["Invalid pi_b in proof"]
    with pytest.raises(StructuralValidationError) as ei:
        services.verifier.ensure_structure(broken, "groth16")
    assert ei.value.errors == ["Invalid pi_b in proof"]
    assert len(toolchain.calls) == before


@pytest.mark.parametrize(
    "proof, system, expected",
    [
        ("nope", "groth16", ["Proof must be an object"]),
        ({"pi_a": [1, 2], "pi_b": [1, 2, 3], "pi_c": [1, 2, 3], "protocol": "groth16"}, "groth16", ["Invalid pi_a in proof"]),
        ({"pi_a": [1, 2, 3], "pi_b": [1, 2, 3], "pi_c": [1, 2, 3]}, "groth16", ["Invalid or missing protocol field"]),
        ({"A": [], "B": [], "protocol": "plonk"}, "plonk", ["Invalid C in proof"]),
        ({"polynomials": {}, "evaluations": [], "protocol": "fflonk"}, "fflonk", ["Invalid evaluations in proof"]),
        ({}, "marlin", ["Unsupported proving system: marlin"]),
    ],
)
def test_structure_errors(proof, system, expected):
    ok, errors = validate_structure(proof, system)
    assert ok is False
    assert errors == expected


def test_verification_key_structure(proved):
    vk, _ = proved
    assert validate_verification_key_structure(vk, "groth16") == (True, [])
    bad = dict(vk, IC=[vk["IC"][0]])
    ok, errors = validate_verification_key_structure(bad, "groth16")
    assert not ok
    assert errors == ["IC has 1 points, expected nPublic + 1 = 2"]


def test_batch_verify(services, toolchain, proved):
    vk, result = proved
    results = services.verifier.batch_verify(
        vk,
        [
            (result.public_signals, result.proof),
            (["99"], result.proof),
            (result.public_signals, {"protocol": "groth16"}),
        ],
    )
    assert [r.verified for r in results] == [True, False, False]
    assert results[2].diagnostic.startswith("Invalid pi_a in proof")
    stats = verification_stats(results)
    assert stats["total"] == 3 and stats["verified"] == 1 and stats["failed"] == 2
    # Only the two well-formed proofs reached the verifier tool.
    assert len(toolchain.snarkjs_calls("groth16", "verify")) == 2


def test_verification_stats_empty():
    assert verification_stats([]) == {"total": 0, "verified": 0, "failed": 0, "averageTimeMs": 0.0}
    assert verification_stats([VerificationResult(verified=True, duration_ms=10.0)])["averageTimeMs"] == 10.0


def test_json_digest_is_key_order_independent():
    assert json_digest({"a": 1, "b": [1, 2]}) == json_digest({"b": [1, 2], "a": 1})
    assert json_digest({"a": 1}).startswith("0x") and len(json_digest({"a": 1})) == 66

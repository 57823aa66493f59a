from __future__ import annotations

import pytest

# These tests drive the HTTP surface through httpx's ASGI transport with the
# fake toolchain behind the services. Bodies use camelCase field names.


async def _compile(aclient, source, name="Multiplier2"):
    return await aclient.post("/zk/compile", json={"circuitCode": source, "circuitName": name})


@pytest.mark.asyncio
async def test_healthz_and_version(aclient):
    resp = await aclient.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers.get("x-request-id")

    resp = await aclient.get("/version")
    data = resp.json()
    assert data["service"] == "circuit-services"
    assert data["circom"] == "2.1.9"


@pytest.mark.asyncio
async def test_readyz_reports_checks(aclient):
    resp = await aclient.get("/readyz")
    assert resp.status_code in (200, 503)
    checks = resp.json()["checks"]
    assert checks["workspace"]["ok"] is True
    assert set(checks) == {"workspace", "circom", "snarkjs"}


@pytest.mark.asyncio
async def test_request_id_is_echoed(aclient):
    resp = await aclient.get("/healthz", headers={"X-Request-Id": "req-123"})
    assert resp.headers["x-request-id"] == "req-123"


@pytest.mark.asyncio
async def test_compile_and_artifacts(aclient, multiplier_source):
    resp = await _compile(aclient, multiplier_source)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["circuitName"] == "Multiplier2"
    assert body["artifacts"]["r1cs"].endswith("Multiplier2.r1cs")
    assert body["artifacts"]["wasmJs"].endswith("generate_witness.js")
    assert body["stats"]["constraints"] == 1
    assert "compilationTimeMs" in body

    resp = await aclient.get("/zk/artifacts/Multiplier2")
    assert resp.status_code == 200
    assert resp.json()["stats"]["wires"] == 4
    assert "r1Cs" not in resp.json()["artifacts"]


@pytest.mark.asyncio
async def test_compile_without_r1cs(aclient, toolchain, multiplier_source):
    payload = {"circuitCode": multiplier_source, "circuitName": "Multiplier2", "options": {"includeR1cs": False}}
    resp = await aclient.post("/zk/compile", json=payload)
    assert resp.status_code == 200, resp.text
    assert resp.json()["artifacts"]["r1cs"] is None
    compile_argv = [c for c in toolchain.tool_calls("circom") if "--version" not in c][-1]
    assert "--r1cs" not in compile_argv


@pytest.mark.asyncio
async def test_compile_precheck_error_body(aclient, toolchain):
    resp = await _compile(aclient, "signal input a;")
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "syntax_precheck_failed"
    assert "No template found" in body["errors"][0]
    assert "formattedErrors" in body
    assert body["request_id"]
    assert toolchain.calls == []


@pytest.mark.asyncio
async def test_compile_diagnostics_error_body(aclient, toolchain, multiplier_source):
    toolchain.compile_override = ("", "error[P1012]: illegal expression\n  --> x.circom:3:1\n", 1)
    resp = await _compile(aclient, multiplier_source)
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "compile_failed"
    assert body["formattedErrors"] == "error[P1012]: illegal expression\n  --> x.circom:3:1"


@pytest.mark.asyncio
async def test_request_validation_error(aclient):
    resp = await aclient.post("/zk/compile", json={"circuitCode": "x", "circuitName": "bad name!"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "validation_error"
    assert any("circuitName" in e for e in body["errors"])


@pytest.mark.asyncio
async def test_validate_circuit(aclient, toolchain, multiplier_source):
    resp = await aclient.post("/zk/validate-circuit", json={"circuitCode": multiplier_source, "circuitName": "M"})
    assert resp.status_code == 200
    assert resp.json()["valid"] is True

    toolchain.inspect_output = ("", "error[T2021]: undeclared symbol\n", 1)
    resp = await aclient.post("/zk/validate-circuit", json={"circuitCode": multiplier_source, "circuitName": "M"})
    body = resp.json()
    assert body["valid"] is False
    assert body["formattedErrors"] == "error[T2021]: undeclared symbol"


@pytest.mark.asyncio
async def test_artifacts_unknown_circuit(aclient):
    resp = await aclient.get("/zk/artifacts/Nope")
    assert resp.status_code == 404
    assert resp.json()["code"] == "artifact_missing"


@pytest.mark.asyncio
async def test_setup_then_verification_key(aclient, multiplier_source):
    await _compile(aclient, multiplier_source)
    resp = await aclient.post("/zk/setup-circuit", json={"circuitName": "Multiplier2"})
    assert resp.status_code == 200, resp.text
    first = resp.json()
    assert first["regenerated"] is True
    assert first["ptauPower"] == 10

    resp = await aclient.post("/zk/setup-circuit", json={"circuitName": "Multiplier2"})
    assert resp.json()["regenerated"] is False
    assert resp.json()["zkeyPath"] == first["zkeyPath"]

    resp = await aclient.post("/zk/setup-circuit", json={"circuitName": "Multiplier2", "force": True})
    assert resp.json()["zkeyPath"] != first["zkeyPath"]

    resp = await aclient.get("/zk/verification-key/Multiplier2", params={"provingSystem": "groth16"})
    assert resp.status_code == 200
    assert resp.json()["verificationKey"]["protocol"] == "groth16"

    resp = await aclient.get("/zk/verification-key/Multiplier2", params={"provingSystem": "plonk"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_setup_requires_compiled_circuit(aclient):
    resp = await aclient.post("/zk/setup-circuit", json={"circuitName": "Missing"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_witness_prove_verify(aclient, multiplier_source):
    await _compile(aclient, multiplier_source)

    resp = await aclient.post(
        "/zk/calculate-witness",
        json={"circuitName": "Multiplier2", "inputs": {"a": 3, "b": 4}, "includeValues": True},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["witness"][1] == "12"

    for mode in ("full", "witness"):
        resp = await aclient.post(
            "/zk/generate-proof", json={"circuitName": "Multiplier2", "inputs": {"a": 3, "b": 4}, "mode": mode}
        )
        assert resp.status_code == 200, resp.text
        proof = resp.json()
        assert proof["publicSignals"] == ["12"]

    verify = {"proof": proof["proof"], "publicSignals": proof["publicSignals"], "circuitName": "Multiplier2"}
    resp = await aclient.post("/zk/verify-proof", json=verify)
    assert resp.status_code == 200
    assert resp.json()["verified"] is True

    resp = await aclient.post("/zk/verify-proof", json=dict(verify, publicSignals=["13"]))
    assert resp.status_code == 200
    assert resp.json()["verified"] is False
    assert resp.json()["diagnostic"]

    vk = (await aclient.get("/zk/verification-key/Multiplier2")).json()["verificationKey"]
    resp = await aclient.post(
        "/zk/verify-proof",
        json={"proof": proof["proof"], "publicSignals": ["12"], "verificationKey": vk},
    )
    assert resp.json()["verified"] is True


@pytest.mark.asyncio
async def test_verify_proof_structural_rejection(aclient, toolchain):
    resp = await aclient.post(
        "/zk/verify-proof",
        json={"proof": {"protocol": "groth16"}, "publicSignals": ["1"], "circuitName": "Multiplier2"},
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "invalid_proof_structure"
    assert "Invalid pi_a in proof" in body["errors"]
    assert toolchain.snarkjs_calls("groth16", "verify") == []


@pytest.mark.asyncio
async def test_verify_proof_needs_key_source(aclient):
    resp = await aclient.post("/zk/verify-proof", json={"proof": {}, "publicSignals": []})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_validate_proof_structure(aclient):
    resp = await aclient.post(
        "/zk/validate-proof-structure",
        json={"proof": {"A": [], "B": [], "C": [], "protocol": "plonk"}, "provingSystem": "plonk"},
    )
    assert resp.json() == {"success": True, "message": None, "valid": True, "errors": []}

    resp = await aclient.post("/zk/validate-proof-structure", json={"proof": [1, 2, 3]})
    assert resp.json()["valid"] is False


@pytest.mark.asyncio
async def test_ledger_routes(aclient, ledger):
    proof = {"pi_a": ["1", "2", "1"], "pi_b": [], "pi_c": [], "protocol": "groth16"}
    resp = await aclient.post("/zk/submit-to-ledger", json={"proof": proof, "taskId": "t1", "userId": "alice"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["transactionId"].startswith("mem-")
    assert ledger.submissions[0].proof_hash == body["proofHash"]

    resp = await aclient.post(
        "/zk/mint-achievement", json={"proof": proof, "taskId": "t1", "userId": "alice", "recipient": "anim1x"}
    )
    assert resp.status_code == 200
    assert resp.json()["tokenSerial"] == "1"
    assert resp.json()["proofHash"] == body["proofHash"]


@pytest.mark.asyncio
async def test_complete_endpoint(aclient, multiplier_source, ledger):
    resp = await aclient.post(
        "/zk/complete",
        json={
            "circuitCode": multiplier_source,
            "circuitName": "Multiplier2",
            "inputs": {"a": 3, "b": 4},
            "taskId": "task-7",
            "userId": "bob",
        },
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["verified"] is True
    assert body["publicSignals"] == ["12"]
    assert body["transactionId"]
    assert body["tokenSerial"] == "1"
    assert body["stats"]["compilation"]["constraints"] == 1
    assert set(body["stats"]["timingsMs"]) == {"compile", "setup", "prove", "verify", "ledger"}


@pytest.mark.asyncio
async def test_cleanup(aclient, multiplier_source):
    await _compile(aclient, multiplier_source)
    await aclient.post("/zk/setup-circuit", json={"circuitName": "Multiplier2"})
    await aclient.post("/zk/calculate-witness", json={"circuitName": "Multiplier2", "inputs": {"a": 1, "b": 1}})

    resp = await aclient.delete("/zk/cleanup/Multiplier2")
    assert resp.status_code == 200
    removed = resp.json()["removed"]
    assert removed == {"source": True, "artifacts": True, "keys": 2, "witnesses": 2}

    assert (await aclient.get("/zk/artifacts/Multiplier2")).status_code == 404


@pytest.mark.asyncio
async def test_tool_unavailable_maps_to_503(aclient, toolchain, multiplier_source, monkeypatch):
    from circuit_services.errors import ToolUnavailableError

    def missing(argv, *, cwd=None):
        raise ToolUnavailableError(f"Executable not found: {argv[0]}")

    await _compile(aclient, multiplier_source)
    monkeypatch.setattr(toolchain, "run", missing)
    resp = await aclient.post("/zk/setup-circuit", json={"circuitName": "Multiplier2"})
    assert resp.status_code == 503
    assert resp.json()["code"] == "tool_unavailable"


@pytest.mark.asyncio
async def test_metrics_endpoint(aclient):
    await aclient.get("/healthz")
    resp = await aclient.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text

from __future__ import annotations

import json

import httpx
import pytest

from circuit_services.adapters.ledger import (
    HttpLedgerClient,
    InMemoryLedger,
    ProofSubmission,
    ledger_from_config,
)
from circuit_services.errors import LedgerError


def test_in_memory_ledger_records_submissions():
    ledger = InMemoryLedger()
    tx1 = ledger.submit_proof(ProofSubmission(task_id="t1", user_id="u", proof_hash="0xaa", timestamp=1000))
    tx2 = ledger.submit_proof(ProofSubmission(task_id="t1", user_id="u", proof_hash="0xbb", timestamp=1001))
    assert tx1 == "mem-1@1000"
    assert tx2 == "mem-2@1001"
    assert [s.proof_hash for s in ledger.submissions] == ["0xaa", "0xbb"]


def test_in_memory_serials_are_per_task():
    ledger = InMemoryLedger()
    assert ledger.complete_task("a", "0x1", "u").token_serial == "1"
    assert ledger.complete_task("a", "0x2", "u").token_serial == "2"
    assert ledger.complete_task("b", "0x3", "u").token_serial == "1"


def test_submission_wire_format():
    wire = ProofSubmission(task_id="t", user_id="u", proof_hash="0xff", timestamp=5, metadata={"k": 1}).to_wire()
    assert wire == {"taskId": "t", "userId": "u", "proofHash": "0xff", "timestamp": 5, "metadata": {"k": 1}}


def test_http_ledger_posts_json_with_bearer():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/api/submissions":
            return httpx.Response(200, json={"transactionId": "tx-9"})
        return httpx.Response(200, json={"transactionId": "tx-10", "tokenSerial": 3})

    client = HttpLedgerClient(
        "https://ledger.test/api/", api_key="secret", transport=httpx.MockTransport(handler)
    )
    try:
        tx = client.submit_proof(ProofSubmission(task_id="t", user_id="u", proof_hash="0xab", timestamp=7))
        receipt = client.complete_task("t", "0xab", "u", "anim1xyz")
    finally:
        client.close()

    assert tx == "tx-9"
    assert receipt.transaction_id == "tx-10" and receipt.token_serial == "3"
    assert seen[0].headers["authorization"] == "Bearer secret"
    assert json.loads(seen[0].content)["proofHash"] == "0xab"
    assert seen[1].url.path == "/api/tasks/t/complete"
    assert json.loads(seen[1].content)["recipient"] == "anim1xyz"


def test_http_ledger_quotes_task_id():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"transactionId": "tx-1"})

    client = HttpLedgerClient("https://ledger.test", transport=httpx.MockTransport(handler))
    try:
        client.complete_task("../admin/x?y", "0x", "u")
    finally:
        client.close()
    assert seen[0].url.raw_path == b"/tasks/..%2Fadmin%2Fx%3Fy/complete"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"ok": True}),
        httpx.Response(200, text="not json"),
    ],
)
def test_http_ledger_errors(response):
    client = HttpLedgerClient("https://ledger.test", transport=httpx.MockTransport(lambda request: response))
    with pytest.raises(LedgerError) as ei:
        client.submit_proof(ProofSubmission(task_id="t", user_id="u", proof_hash="0x"))
    assert ei.value.status_code == 502


def test_http_ledger_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = HttpLedgerClient("https://ledger.test", transport=httpx.MockTransport(handler))
    with pytest.raises(LedgerError) as ei:
        client.complete_task("t", "0x", "u")
    assert "unreachable" in ei.value.message


def test_ledger_from_config(settings):
    assert isinstance(ledger_from_config(settings), InMemoryLedger)
    settings.ledger_url = "https://ledger.test"
    client = ledger_from_config(settings)
    assert isinstance(client, HttpLedgerClient)
    client.close()
